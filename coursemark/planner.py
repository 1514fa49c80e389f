"""
Planner facade: the annotation registries bound to a course set and to
the sectioned state store.

This is what a UI talks to. It:
- re-attaches saved annotations to freshly loaded courses by identity
- snapshots annotations into the planner section payload
- saves/loads that section, falling back to cached copies when the
  service is unavailable
"""

import copy
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from .bookmarks import BookmarkIndex
from .cache import PLANNER_STATE_KEY
from .config import DEFAULT_SECTION
from .errors import RemoteError
from .notes import NoteStore
from .protocol import CacheProtocol
from .sections import SectionedStateStore
from .tags import TagRegistry
from .types import (
    Course,
    CourseItem,
    CourseWithTopics,
    TagCatalog,
    instance_key,
    iter_instances,
)

logger = logging.getLogger(__name__)

PLANNER_STATE_VERSION = 1


@dataclass
class SyncResult:
    """Outcome of a cloud action, shaped for a transient status line."""
    ok: bool
    message: str
    kind: str = ""  # "ok", "warn" or "error"


class Planner:
    """
    Bookmarks, planning tags and notes over one loaded course set.

    Args:
        catalog: Planning tag options
        store: Sectioned state store used for cloud sync (optional)
        cache: Local cache for the planner's own state (optional)
        section: Section name the planner owns
    """

    def __init__(
        self,
        catalog: Optional[TagCatalog] = None,
        *,
        store: Optional[SectionedStateStore] = None,
        cache: Optional[CacheProtocol] = None,
        section: str = DEFAULT_SECTION,
    ):
        self.catalog = catalog or TagCatalog()
        self.tags = TagRegistry(self.catalog)
        self.bookmarks = BookmarkIndex()
        self.notes = NoteStore()
        self._store = store
        self._cache = cache
        self._section = section
        self._courses: list[CourseItem] = []
        # Last restored or re-attached payload; holds entries for identities
        # that are not in the current course set
        self._retained: Optional[dict] = None

    @property
    def section(self) -> str:
        return self._section

    @property
    def courses(self) -> list[CourseItem]:
        return list(self._courses)

    # -------------------------------------------------------------------------
    # Item set
    # -------------------------------------------------------------------------

    def load_courses(self, courses: Iterable[CourseItem]) -> None:
        """
        Replace the item set, keeping annotations by identity.

        Instances are not persisted; their annotations are snapshotted,
        the registries are reset, and the snapshot is re-attached to the
        new instances that match by course id / topic placement. State read
        before any courses were loaded, and entries for courses missing from
        the new set, are kept for a later load.
        """
        state = self.snapshot()
        self._courses = list(courses)
        self.restore(state)

    def _reset_registries(self) -> None:
        self.tags.reset()
        self.bookmarks.reset()
        self.notes.reset()

    def clear_all_bookmarks(self) -> None:
        self.bookmarks.clear_all(iter_instances(self._courses))

    # -------------------------------------------------------------------------
    # Snapshot / restore
    # -------------------------------------------------------------------------

    def snapshot(self) -> dict:
        """Annotation state as the planner section payload."""
        state: dict[str, Any] = {
            "version": PLANNER_STATE_VERSION,
            "globalTopicTags": self.tags.memory_snapshot(),
            "globalTopicNotes": self.notes.topic_notes(),
            "courses": {},
            "topics": {},
        }

        for course in self._courses:
            course_tags = self.tags.tag_ids(course)
            is_bookmarked = self.bookmarks.is_bookmarked(course)
            note_text = self.notes.note_for(course) if isinstance(course, Course) else ""
            if is_bookmarked or note_text.strip() or course_tags:
                state["courses"][course.course_id] = {
                    "isBookmarked": is_bookmarked,
                    "noteText": note_text,
                    "tags": course_tags,
                }

            if not isinstance(course, CourseWithTopics):
                continue
            for topic in course.topics:
                if not topic.topic_id:
                    continue
                topic_tags = self.tags.tag_ids(topic)
                topic_bookmarked = self.bookmarks.is_bookmarked(topic)
                if topic_bookmarked or topic_tags:
                    state["topics"][instance_key(course, topic)] = {
                        "isBookmarked": topic_bookmarked,
                        "tags": topic_tags,
                    }

        if self._retained is not None:
            self._carry_unloaded(state, self._retained)
        return state

    def _carry_unloaded(self, state: dict, retained: dict) -> None:
        """Copy entries for identities outside the current course set."""
        loaded_courses = {course.course_id for course in self._courses}
        loaded_topics = {
            instance_key(course, topic)
            for course in self._courses
            if isinstance(course, CourseWithTopics)
            for topic in course.topics
            if topic.topic_id
        }
        for course_id, entry in (retained.get("courses") or {}).items():
            if course_id not in loaded_courses and isinstance(entry, dict):
                state["courses"][course_id] = copy.deepcopy(entry)
        for key, entry in (retained.get("topics") or {}).items():
            if key not in loaded_topics and isinstance(entry, dict):
                state["topics"][key] = copy.deepcopy(entry)

    def restore(self, state: Any) -> bool:
        """
        Re-attach a snapshot to the current course set.

        Identities that no longer exist and tag ids not in the catalog are
        skipped. Returns False if the payload is unusable.
        """
        if not isinstance(state, dict) or state.get("version") != PLANNER_STATE_VERSION:
            return False

        self._reset_registries()
        courses_state = state.get("courses") or {}
        topics_state = state.get("topics") or {}

        for course in self._courses:
            c_state = courses_state.get(course.course_id)
            if isinstance(c_state, dict):
                self._restore_instance(course, c_state)
                if isinstance(course, Course) and isinstance(c_state.get("noteText"), str):
                    self.notes.set_note_for(course, c_state["noteText"])

            if not isinstance(course, CourseWithTopics):
                continue
            for topic in course.topics:
                if not topic.topic_id:
                    continue
                t_state = topics_state.get(instance_key(course, topic))
                if isinstance(t_state, dict):
                    self._restore_instance(topic, t_state)

        # Live assignments first so remembered ids already in use are not ghosted
        self.tags.restore_memory(state.get("globalTopicTags"))
        self.notes.restore_topic_notes(state.get("globalTopicNotes"))
        self._retained = copy.deepcopy(state)
        return True

    def _restore_instance(self, instance, entry: dict) -> None:
        if isinstance(entry.get("isBookmarked"), bool):
            self.bookmarks.set(instance, entry["isBookmarked"])
        tag_ids = entry.get("tags")
        if isinstance(tag_ids, list):
            for tag_id in tag_ids:
                if isinstance(tag_id, str):
                    self.tags.assign(instance, tag_id)

    # -------------------------------------------------------------------------
    # Local persistence
    # -------------------------------------------------------------------------

    def persist_local(self) -> bool:
        if self._cache is None:
            return False
        self._cache.set_json(PLANNER_STATE_KEY, self.snapshot())
        return True

    def load_local(self) -> bool:
        if self._cache is None:
            return False
        return self.restore(self._cache.get_json(PLANNER_STATE_KEY))

    # -------------------------------------------------------------------------
    # Cloud
    # -------------------------------------------------------------------------

    def _require_store(self) -> SectionedStateStore:
        if self._store is None:
            raise RuntimeError("Planner has no state store configured")
        return self._store

    def save_to_cloud(self) -> SyncResult:
        """
        Save the planner section. AuthError and SaveInProgressError propagate.
        """
        store = self._require_store()
        try:
            receipt = store.save(self._section, self.snapshot())
        except RemoteError as e:
            logger.warning("Cloud save failed: %s", e.reason)
            return SyncResult(False, f"Save failed: {e.reason}", "error")
        self.persist_local()
        when = receipt.updated_at or "now"
        return SyncResult(True, f"Saved ({when})", "ok")

    def load_from_cloud(self) -> SyncResult:
        """
        Load the planner section and apply it.

        On RemoteError, falls back to the cached remote document and then to
        the local planner cache. AuthError propagates.
        """
        store = self._require_store()
        try:
            payload = store.load(self._section)
        except RemoteError as e:
            logger.warning("Cloud load failed, using cached state: %s", e.reason)
            cached = store.cached_section(self._section)
            if self.restore(cached) or self.load_local():
                return SyncResult(False, f"Offline ({e.reason}); showing cached plan", "warn")
            return SyncResult(False, f"Load failed: {e.reason}", "error")

        if payload is None:
            return SyncResult(True, "No saved plan found in account yet.", "warn")
        if not self.restore(payload):
            return SyncResult(False, "Saved plan has an unsupported format.", "error")
        self.persist_local()
        return SyncResult(True, "Loaded", "ok")
