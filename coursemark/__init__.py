"""
Coursemark

Bookmarks, planning tags and notes for curriculum items, synced across
devices through a sectioned planner document.

Quick Start:
    from coursemark import Planner, TagCatalog, course_from_dict

    planner = Planner(TagCatalog())
    planner.load_courses([course_from_dict(r) for r in records])
    topic = planner.courses[0].topics[0]
    planner.tags.assign(topic, "core")
    planner.tags.missing_global_tags(other_placement)   # ["core"]

CLI Usage:
    coursemark pull courses
    coursemark push schedule schedule.json

Default Store:
    ~/.coursemark/ (config, local cache, logs).
    Override with COURSEMARK_STORE_PATH or --store.

Environment Variables:
    COURSEMARK_STORE_PATH  - Override default store location
    COURSEMARK_API_URL     - State service base URL
    COURSEMARK_MEMBER_ID   - Account id used for sync
    COURSEMARK_EMAIL       - Account email used for sync
"""

from .bookmarks import BookmarkIndex
from .errors import AuthError, CoursemarkError, ParseError, RemoteError, SaveInProgressError
from .notes import NoteStore
from .planner import Planner, SyncResult
from .sections import CrossFeatureValue, LoadStatus, SaveStatus, SectionedStateStore
from .tags import TagRegistry
from .types import (
    Course,
    CourseWithTopics,
    Identity,
    PlanningTagOption,
    TagCatalog,
    Topic,
    course_from_dict,
)

__version__ = "0.1.0"
__all__ = [
    "AuthError",
    "BookmarkIndex",
    "Course",
    "CourseWithTopics",
    "CoursemarkError",
    "CrossFeatureValue",
    "Identity",
    "LoadStatus",
    "NoteStore",
    "ParseError",
    "Planner",
    "PlanningTagOption",
    "RemoteError",
    "SaveInProgressError",
    "SaveStatus",
    "SectionedStateStore",
    "SyncResult",
    "TagCatalog",
    "TagRegistry",
    "Topic",
    "course_from_dict",
]
