"""
Free-text notes.

Topic notes are keyed by topic id and shared by every placement of the
topic. Leaf courses keep an instance-local note. Courses with topics have
no note of their own.
"""

from typing import Hashable, Optional, Union

from .types import Course, Instance, Topic

NoteKey = Union[str, Course]


def note_key(item: Optional[Instance]) -> Optional[NoteKey]:
    """The key a note for this item is stored under, or None if it has none."""
    if isinstance(item, Topic):
        return item.topic_id or None
    if isinstance(item, Course):
        return item
    return None


class NoteStore:
    """Notes keyed by topic id (shared) or by leaf-course instance."""

    def __init__(self):
        self._notes: dict[Hashable, str] = {}

    def get(self, identity: Optional[NoteKey]) -> str:
        if identity is None:
            return ""
        return self._notes.get(identity, "")

    def set(self, identity: Optional[NoteKey], text: Optional[str]) -> None:
        if identity is None or identity == "":
            return
        text = text or ""
        if text:
            self._notes[identity] = text
        else:
            self._notes.pop(identity, None)

    def has_note(self, identity: Optional[NoteKey]) -> bool:
        return len(self.get(identity).strip()) > 0

    def note_for(self, item: Optional[Instance]) -> str:
        return self.get(note_key(item))

    def set_note_for(self, item: Optional[Instance], text: Optional[str]) -> None:
        self.set(note_key(item), text)

    def has_note_for(self, item: Optional[Instance]) -> bool:
        return self.has_note(note_key(item))

    def topic_notes(self) -> dict[str, str]:
        """Shared (topic-keyed) notes only, for persistence."""
        return {k: v for k, v in self._notes.items() if isinstance(k, str)}

    def restore_topic_notes(self, notes: Optional[dict]) -> None:
        if not isinstance(notes, dict):
            return
        for topic_id, text in notes.items():
            if isinstance(text, str):
                self.set(str(topic_id).strip(), text)

    def reset(self) -> None:
        self._notes.clear()
