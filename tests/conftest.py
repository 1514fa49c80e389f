"""
Shared pytest fixtures for coursemark tests.

Provides an in-memory state service and a fixed identity so sync tests
never touch the network.
"""

import copy
from pathlib import Path

import pytest

from coursemark.cache import LocalCache
from coursemark.errors import RemoteError
from coursemark.protocol import RemoteState, SaveReceipt, StaticIdentityResolver
from coursemark.sections import SectionedStateStore
from coursemark.types import Course, CourseWithTopics, TagCatalog, Topic


class InMemoryRemote:
    """
    Stand-in for the state service.

    Stores a deep copy of whatever is written, and can be told to fail the
    next get or set with a RemoteError.
    """

    def __init__(self, state: dict | None = None):
        self.state = copy.deepcopy(state)
        self.get_calls = 0
        self.set_calls = 0
        self.fail_get: str | None = None
        self.fail_set: str | None = None
        self.identities = []

    def get_state(self, identity):
        self.get_calls += 1
        self.identities.append(identity)
        if self.fail_get:
            raise RemoteError(self.fail_get)
        return RemoteState(
            state=copy.deepcopy(self.state),
            planner_id="planner-1",
            last_updated="2026-01-01T00:00:00Z",
        )

    def set_state(self, identity, state):
        self.set_calls += 1
        self.identities.append(identity)
        if self.fail_set:
            raise RemoteError(self.fail_set)
        self.state = copy.deepcopy(state)
        return SaveReceipt(planner_id="planner-1", updated_at=f"2026-01-01T00:00:{self.set_calls:02d}Z")


@pytest.fixture
def remote():
    return InMemoryRemote()


@pytest.fixture
def identity():
    return StaticIdentityResolver("member-42", "parent@example.com")


@pytest.fixture
def cache(tmp_path: Path):
    c = LocalCache(tmp_path / "cache.db")
    yield c
    c.close()


@pytest.fixture
def store(remote, identity, cache):
    return SectionedStateStore(remote, identity, cache)


@pytest.fixture
def catalog():
    return TagCatalog()


@pytest.fixture
def courses():
    """
    Two courses that both place topic X1, plus a leaf course.

    history_a: topics X1, Y2
    history_b: topics X1, Z3
    art: leaf course
    """
    history_a = CourseWithTopics(
        course_id="HIST-A", title="Church History", subject="History",
        topics=[Topic("X1", "Early Church"), Topic("Y2", "Reformation")],
    )
    history_b = CourseWithTopics(
        course_id="HIST-B", title="World History", subject="History",
        topics=[Topic("X1", "Early Church"), Topic("Z3", "Exploration")],
    )
    art = Course(course_id="ART-1", title="Picture Study", subject="Art")
    return [history_a, history_b, art]
