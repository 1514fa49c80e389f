"""
Data types for curriculum planning annotations.

Courses come in two shapes: a leaf course that owns its own bookmark and
note, and a course that groups topics (which carry the annotations
instead). Topics may appear under several courses; every placement is a
separate instance that shares one stable ``topic_id``.
"""

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional, Union


# Separator between course id and topic id in a persisted instance key
INSTANCE_KEY_SEP = "::"


@dataclass(frozen=True)
class PlanningTagOption:
    """Immutable catalog entry for a planning tag."""
    id: str
    label: str
    icon: str


@dataclass(frozen=True)
class TagSnapshot:
    """
    Copy of a catalog entry attached to one instance.

    Stored by value so a later catalog change never rewrites what an
    instance already holds.
    """
    id: str
    label: str
    icon: str

    @classmethod
    def of(cls, option: PlanningTagOption) -> "TagSnapshot":
        return cls(id=option.id, label=option.label, icon=option.icon)


DEFAULT_TAG_OPTIONS: tuple[PlanningTagOption, ...] = (
    PlanningTagOption("core", "Core", "img/Core%20Subjects.png"),
    PlanningTagOption("family", "Family", "img/Family%20Subjects.png"),
    PlanningTagOption("combine", "Combine", "img/Combine%20Subjects.png"),
    PlanningTagOption("high-interest", "High interest", "img/High%20Interest%20Subjects.png"),
    PlanningTagOption("additional", "Additional", "img/Additional%20Subjects.png"),
)


class TagCatalog:
    """Ordered, read-only lookup of planning tag options by id."""

    def __init__(self, options: Iterable[PlanningTagOption] = DEFAULT_TAG_OPTIONS):
        self._options: dict[str, PlanningTagOption] = {}
        for opt in options:
            self._options.setdefault(opt.id, opt)

    def get(self, tag_id: Optional[str]) -> Optional[PlanningTagOption]:
        if not tag_id:
            return None
        return self._options.get(tag_id)

    def label(self, tag_id: str) -> str:
        opt = self.get(tag_id)
        return opt.label if opt else tag_id

    def icon(self, tag_id: str) -> str:
        opt = self.get(tag_id)
        return opt.icon if opt else ""

    def ids(self) -> list[str]:
        return list(self._options)

    def __contains__(self, tag_id: object) -> bool:
        return isinstance(tag_id, str) and tag_id in self._options

    def __iter__(self) -> Iterator[PlanningTagOption]:
        return iter(self._options.values())

    def __len__(self) -> int:
        return len(self._options)


def normalize_topic_id(raw: object) -> str:
    """Trim a topic id; anything missing becomes the empty string."""
    if raw is None:
        return ""
    return str(raw).strip()


# Instances hash by identity (eq=False): two placements of the same topic
# are different objects that share a topic_id.

@dataclass(eq=False)
class Topic:
    """One placement of a topic under a course."""
    topic_id: str
    title: str = ""
    subject: str = ""

    def __post_init__(self):
        self.topic_id = normalize_topic_id(self.topic_id)

    @property
    def shared_identity(self) -> Optional[str]:
        """The cross-course identity, or None when the topic has no id."""
        return self.topic_id or None


@dataclass(eq=False)
class Course:
    """A leaf course with no topics. Owns its bookmark and note."""
    course_id: str
    title: str = ""
    subject: str = ""

    has_topics = False

    @property
    def shared_identity(self) -> Optional[str]:
        # Two course instances are never "the same course"
        return None


@dataclass(eq=False)
class CourseWithTopics:
    """A course grouping topics. Annotations live on its topics."""
    course_id: str
    title: str = ""
    subject: str = ""
    topics: list[Topic] = field(default_factory=list)

    has_topics = True

    @property
    def shared_identity(self) -> Optional[str]:
        return None


CourseItem = Union[Course, CourseWithTopics]
Instance = Union[Course, CourseWithTopics, Topic]


def instance_key(course: CourseItem, topic: Topic) -> str:
    """Persisted key of one topic placement: ``<course_id>::<topic_id>``."""
    return f"{course.course_id}{INSTANCE_KEY_SEP}{topic.topic_id}"


def course_from_dict(record: dict) -> CourseItem:
    """
    Build a course variant from a plain mapping.

    Accepts ``course_id`` (or ``id``), ``title``, ``subject`` and an optional
    ``topics`` list of mappings with ``topic_id`` (or ``Topic_ID``/``id``).
    A course with a non-empty topic list becomes a CourseWithTopics.
    """
    course_id = str(record.get("course_id") or record.get("id") or "").strip()
    if not course_id:
        raise ValueError(f"Course record has no id: {record!r}")
    title = record.get("title", "") or ""
    subject = record.get("subject", "") or ""

    raw_topics = record.get("topics") or []
    topics = []
    for t in raw_topics:
        if not isinstance(t, dict):
            continue
        topic_id = t.get("topic_id") or t.get("Topic_ID") or t.get("id")
        topics.append(Topic(
            topic_id=normalize_topic_id(topic_id),
            title=t.get("title") or t.get("Topic") or "",
            subject=t.get("subject", subject) or subject,
        ))

    if topics:
        return CourseWithTopics(course_id=course_id, title=title, subject=subject, topics=topics)
    return Course(course_id=course_id, title=title, subject=subject)


def iter_instances(courses: Iterable[CourseItem]) -> Iterator[Instance]:
    """Every annotatable instance: leaf courses and every topic placement."""
    for course in courses:
        if isinstance(course, CourseWithTopics):
            yield from course.topics
        elif isinstance(course, Course):
            yield course


@dataclass(frozen=True)
class Identity:
    """Opaque account identity from the login provider."""
    id: str
    email: str = ""

    def as_payload(self) -> dict[str, str]:
        return {"id": self.id, "email": self.email}
