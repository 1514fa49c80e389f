"""
Planning tag assignment with cross-instance memory.

Every instance has an ordered plan layer of tag snapshots. Instances that
share a topic id also share a memory of the tags currently held by any of
them, so the UI can offer "tags you used elsewhere for this topic".

The memory is kept in lockstep with a per-(topic, tag) reference count:
assigning bumps the count, removing drops it, and the tag leaves the
memory the moment its count reaches zero. No full-dataset scan is ever
needed to decide whether a tag is still in use.

Ghost entries (tags remembered from persisted state that no live instance
holds) are tracked separately and only surfaced as suggestions.
"""

from collections import defaultdict
from typing import Iterable, Optional

from .types import CourseItem, CourseWithTopics, Instance, TagCatalog, TagSnapshot


class TagRegistry:
    """
    Owns per-instance tag assignment and the per-topic tag memory.

    All operations absorb stale input: a None instance or an id that is not
    in the catalog is a silent no-op, because annotation calls can arrive
    for objects that a dataset reload has already replaced.
    """

    def __init__(self, catalog: TagCatalog):
        self._catalog = catalog
        # instance -> {tag_id: snapshot}, insertion ordered
        self._plan: dict[Instance, dict[str, TagSnapshot]] = {}
        # topic_id -> {tag_id: count}, insertion ordered by first application
        self._refcount: dict[str, dict[str, int]] = defaultdict(dict)
        # topic_id -> {tag_id: None}; ordered set of remembered-but-unheld ids
        self._ghosts: dict[str, dict[str, None]] = defaultdict(dict)

    @property
    def catalog(self) -> TagCatalog:
        return self._catalog

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def assign(self, instance: Optional[Instance], tag_id: Optional[str]) -> None:
        """Attach a tag to one instance. No-op if already held."""
        if instance is None:
            return
        option = self._catalog.get(tag_id)
        if option is None:
            return
        layer = self._plan.setdefault(instance, {})
        if option.id in layer:
            return
        layer[option.id] = TagSnapshot.of(option)

        topic_id = instance.shared_identity
        if topic_id:
            counts = self._refcount[topic_id]
            counts[option.id] = counts.get(option.id, 0) + 1
            # A ghost that gets applied becomes live
            self._ghosts[topic_id].pop(option.id, None)
            self._drop_empty(topic_id)

    def remove(self, instance: Optional[Instance], tag_id: Optional[str]) -> None:
        """Detach a tag from one instance, pruning memory when unused."""
        if instance is None or not tag_id:
            return
        layer = self._plan.get(instance)
        if not layer or tag_id not in layer:
            return
        del layer[tag_id]
        if not layer:
            del self._plan[instance]

        topic_id = instance.shared_identity
        if not topic_id:
            return
        counts = self._refcount.get(topic_id)
        if counts is None or tag_id not in counts:
            return
        remaining = counts[tag_id] - 1
        if remaining > 0:
            counts[tag_id] = remaining
        else:
            del counts[tag_id]
        self._drop_empty(topic_id)

    def toggle(self, instance: Optional[Instance], tag_id: Optional[str]) -> None:
        if instance is None or not tag_id:
            return
        if self.has_tag(instance, tag_id):
            self.remove(instance, tag_id)
        else:
            self.assign(instance, tag_id)

    def apply_global_tag(self, instance: Optional[Instance], tag_id: Optional[str]) -> None:
        """Adopt a remembered tag on this instance (catalog ids only)."""
        if tag_id not in self._catalog:
            return
        self.assign(instance, tag_id)

    def reset(self) -> None:
        """Forget every assignment and counter (the item set was reloaded)."""
        self._plan.clear()
        self._refcount.clear()
        self._ghosts.clear()

    def restore_memory(self, memory: Optional[dict]) -> None:
        """
        Install persisted topic memory as ghost entries.

        Ids already held live for a topic are skipped; ids missing from the
        catalog are dropped.
        """
        if not isinstance(memory, dict):
            return
        for raw_topic_id, tag_ids in memory.items():
            topic_id = str(raw_topic_id).strip()
            if not topic_id or not isinstance(tag_ids, (list, tuple)):
                continue
            live = self._refcount.get(topic_id, {})
            for tag_id in tag_ids:
                if tag_id in self._catalog and tag_id not in live:
                    self._ghosts[topic_id][tag_id] = None
            self._drop_empty(topic_id)

    def _drop_empty(self, topic_id: str) -> None:
        if topic_id in self._refcount and not self._refcount[topic_id]:
            del self._refcount[topic_id]
        if topic_id in self._ghosts and not self._ghosts[topic_id]:
            del self._ghosts[topic_id]

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def tags(self, instance: Optional[Instance]) -> list[TagSnapshot]:
        if instance is None:
            return []
        return list(self._plan.get(instance, {}).values())

    def tag_ids(self, instance: Optional[Instance]) -> list[str]:
        if instance is None:
            return []
        return list(self._plan.get(instance, {}))

    def has_tag(self, instance: Optional[Instance], tag_id: str) -> bool:
        if instance is None:
            return False
        return tag_id in self._plan.get(instance, {})

    def ref_count(self, topic_id: str, tag_id: str) -> int:
        return self._refcount.get(topic_id, {}).get(tag_id, 0)

    def global_tags(self, topic_id: Optional[str]) -> list[str]:
        """Tags currently held by at least one instance with this topic id."""
        if not topic_id:
            return []
        return list(self._refcount.get(topic_id, {}))

    def remembered_tags(self, topic_id: Optional[str]) -> list[str]:
        """Live memory followed by ghost entries."""
        if not topic_id:
            return []
        return self.global_tags(topic_id) + list(self._ghosts.get(topic_id, {}))

    def missing_global_tags(self, instance: Optional[Instance]) -> list[str]:
        """Remembered tags for the instance's topic that it does not hold."""
        if instance is None:
            return []
        topic_id = instance.shared_identity
        if not topic_id:
            return []
        local = self._plan.get(instance, {})
        return [t for t in self.remembered_tags(topic_id) if t not in local]

    def memory_snapshot(self) -> dict[str, list[str]]:
        """topic_id -> remembered tag ids, for persistence."""
        topic_ids = list(self._refcount) + [t for t in self._ghosts if t not in self._refcount]
        return {t: self.remembered_tags(t) for t in topic_ids}

    def matches_any(self, course: Optional[CourseItem], tag_ids: Iterable[str]) -> bool:
        """True if the course or any of its topics holds one of the ids."""
        wanted = set(tag_ids)
        if course is None or not wanted:
            return False
        held = set(self._plan.get(course, {}))
        if isinstance(course, CourseWithTopics):
            for topic in course.topics:
                held.update(self._plan.get(topic, {}))
        return bool(held & wanted)
