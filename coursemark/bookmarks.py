"""
Bookmark flags per instance, with a "bookmarked elsewhere" query.

The flag itself never propagates between placements of a topic; the
index only keeps a per-topic count of set flags so that a placement can
ask, in constant time, whether a sibling placement is bookmarked.
"""

from collections import Counter
from typing import Iterable, Optional

from .types import Course, CourseItem, CourseWithTopics, Instance


def _bookmarkable(instance: object) -> bool:
    # Courses with topics carry no flag of their own; their topics do
    return instance is not None and not isinstance(instance, CourseWithTopics)


class BookmarkIndex:
    """Owns bookmark flags and the per-topic count of set flags."""

    def __init__(self):
        self._flags: set[Instance] = set()
        self._count: Counter[str] = Counter()

    def _set(self, instance: Instance, value: bool) -> None:
        if value == (instance in self._flags):
            return
        topic_id = instance.shared_identity
        if value:
            self._flags.add(instance)
            if topic_id:
                self._count[topic_id] += 1
        else:
            self._flags.discard(instance)
            if topic_id:
                self._count[topic_id] -= 1
                if self._count[topic_id] <= 0:
                    del self._count[topic_id]

    def is_bookmarked(self, instance: Optional[Instance]) -> bool:
        return instance is not None and instance in self._flags

    def toggle(self, instance: Optional[Instance]) -> None:
        if not _bookmarkable(instance):
            return
        self._set(instance, instance not in self._flags)

    def set(self, instance: Optional[Instance], value: bool) -> None:
        if not _bookmarkable(instance):
            return
        self._set(instance, bool(value))

    def bookmarked_elsewhere(self, instance: Optional[Instance]) -> bool:
        """True iff another instance with the same topic id is bookmarked."""
        if instance is None:
            return False
        topic_id = instance.shared_identity
        if not topic_id:
            return False
        others = self._count.get(topic_id, 0)
        if instance in self._flags:
            others -= 1
        return others > 0

    def apply_from_elsewhere(self, instance: Optional[Instance]) -> None:
        """Turn a ghost bookmark into a real one on this instance only."""
        self.set(instance, True)

    def all_bookmarked(self, instances: Iterable[Optional[Instance]]) -> bool:
        group = [i for i in instances if i is not None]
        return bool(group) and all(i in self._flags for i in group)

    def toggle_all_for_group(self, instances: Iterable[Optional[Instance]]) -> None:
        """
        Bookmark the whole group unless every member already is, in which
        case clear them all.

        The direction is decided once, before any flag changes.
        """
        group = [i for i in instances if _bookmarkable(i)]
        if not group:
            return
        mark = not self.all_bookmarked(group)
        for instance in group:
            self._set(instance, mark)

    def toggle_all_topics(self, course: Optional[CourseItem]) -> None:
        if isinstance(course, CourseWithTopics):
            self.toggle_all_for_group(course.topics)

    def has_bookmark_in(self, course: Optional[CourseItem]) -> bool:
        """Course flag, or any of its topics' flags."""
        if isinstance(course, CourseWithTopics):
            return any(t in self._flags for t in course.topics)
        if isinstance(course, Course):
            return course in self._flags
        return False

    def clear_all(self, instances: Iterable[Optional[Instance]]) -> None:
        for instance in instances:
            if instance is not None:
                self._set(instance, False)

    def count(self, topic_id: str) -> int:
        return self._count.get(topic_id, 0)

    def reset(self) -> None:
        self._flags.clear()
        self._count.clear()
