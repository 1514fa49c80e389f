"""Tests for coursemark.types: item variants, catalog, record adapter."""

import pytest

from coursemark.types import (
    DEFAULT_TAG_OPTIONS,
    Course,
    CourseWithTopics,
    PlanningTagOption,
    TagCatalog,
    Topic,
    course_from_dict,
    instance_key,
    iter_instances,
)


class TestTagCatalog:
    def test_default_options(self):
        catalog = TagCatalog()
        assert catalog.ids() == ["core", "family", "combine", "high-interest", "additional"]
        assert len(catalog) == len(DEFAULT_TAG_OPTIONS)
        assert catalog.label("high-interest") == "High interest"
        assert catalog.icon("core").endswith(".png")

    def test_unknown_ids(self):
        catalog = TagCatalog()
        assert catalog.get("nope") is None
        assert catalog.get(None) is None
        assert catalog.label("nope") == "nope"
        assert catalog.icon("nope") == ""
        assert "nope" not in catalog
        assert 3 not in catalog

    def test_first_definition_wins(self):
        catalog = TagCatalog([
            PlanningTagOption("a", "First", "1.png"),
            PlanningTagOption("a", "Second", "2.png"),
        ])
        assert catalog.label("a") == "First"
        assert [o.id for o in catalog] == ["a"]


class TestInstances:
    def test_placements_are_distinct(self):
        a, b = Topic("X1"), Topic("X1")
        assert a != b
        assert len({a, b}) == 2
        assert a.shared_identity == b.shared_identity == "X1"

    def test_topic_id_trimmed(self):
        assert Topic("  X1 ").topic_id == "X1"
        assert Topic(" ").shared_identity is None

    def test_courses_have_no_shared_identity(self):
        assert Course("C").shared_identity is None
        assert CourseWithTopics("C").shared_identity is None
        assert not Course.has_topics
        assert CourseWithTopics.has_topics

    def test_instance_key(self):
        course = CourseWithTopics("HIST-A", topics=[Topic("X1")])
        assert instance_key(course, course.topics[0]) == "HIST-A::X1"

    def test_iter_instances(self):
        t1, t2 = Topic("A"), Topic("B")
        leaf = Course("L")
        items = list(iter_instances([CourseWithTopics("C", topics=[t1, t2]), leaf]))
        assert items == [t1, t2, leaf]


class TestCourseFromDict:
    def test_leaf_course(self):
        course = course_from_dict({"id": "ART-1", "title": "Picture Study", "subject": "Art"})
        assert isinstance(course, Course)
        assert course.course_id == "ART-1"

    def test_course_with_topics(self):
        course = course_from_dict({
            "course_id": "HIST-A",
            "subject": "History",
            "topics": [{"Topic_ID": " X1 ", "Topic": "Early Church"}, {"topic_id": "Y2"}, "junk"],
        })
        assert isinstance(course, CourseWithTopics)
        assert [t.topic_id for t in course.topics] == ["X1", "Y2"]
        assert course.topics[0].title == "Early Church"
        assert course.topics[1].subject == "History"

    def test_empty_topics_is_leaf(self):
        assert isinstance(course_from_dict({"id": "C", "topics": []}), Course)

    def test_missing_id(self):
        with pytest.raises(ValueError):
            course_from_dict({"title": "No id"})
