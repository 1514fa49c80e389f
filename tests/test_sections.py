"""Tests for coursemark.sections: merge engine, status machines, fallbacks."""

import copy

import pytest

from coursemark.cache import REMOTE_DOCUMENT_KEY, ROSTER_KEY
from coursemark.errors import AuthError, RemoteError, SaveInProgressError
from coursemark.protocol import StaticIdentityResolver
from coursemark.sections import (
    CrossFeatureValue,
    LoadStatus,
    SaveStatus,
    SectionedStateStore,
    merge_section,
    normalize_document,
    section_state,
)

from conftest import InMemoryRemote


def doc(**sections):
    return {
        "version": 1,
        "sections": {name: {"source": name, "state": state} for name, state in sections.items()},
    }


# -----------------------------------------------------------------------------
# Document helpers
# -----------------------------------------------------------------------------

class TestMergeSection:
    def test_other_sections_untouched(self):
        a = {"source": "A", "state": {"x": [1, 2]}}
        b = {"source": "B", "state": "opaque"}
        original = {"version": 1, "sections": {"A": a, "B": b}, "updatedAt": "t0"}
        before = copy.deepcopy(original)

        merged = merge_section(original, "S", {"anything": True})

        assert merged["sections"]["A"] is a
        assert merged["sections"]["B"] is b
        assert merged["sections"]["S"] == {"source": "S", "state": {"anything": True}}
        assert merged["updatedAt"] == "t0"
        # Input document is not mutated
        assert original == before

    def test_replaces_existing_section(self):
        merged = merge_section(doc(S={"old": 1}, A=1), "S", [1, 2, 3])
        assert section_state(merged, "S") == [1, 2, 3]
        assert section_state(merged, "A") == 1

    def test_payload_is_copied(self):
        payload = {"list": [1]}
        merged = merge_section(None, "S", payload)
        payload["list"].append(2)
        assert section_state(merged, "S") == {"list": [1]}

    @pytest.mark.parametrize("bad", [None, "text", [], {"sections": "nope"}])
    def test_normalizes_malformed_documents(self, bad):
        normalized = normalize_document(bad)
        assert normalized["version"] == 1
        assert normalized["sections"] == {}

    def test_section_state_absent(self):
        assert section_state(None, "S") is None
        assert section_state(doc(), "S") is None
        assert section_state({"sections": {"S": "not-a-dict"}}, "S") is None


# -----------------------------------------------------------------------------
# Load / save
# -----------------------------------------------------------------------------

class TestLoad:
    def test_returns_section_payload(self, remote, store):
        remote.state = doc(courses={"version": 1})
        assert store.load("courses") == {"version": 1}
        assert store.status("courses") == (LoadStatus.LOADED, SaveStatus.IDLE)

    def test_absent_section_is_none(self, remote, store):
        remote.state = doc(schedule={"a": 1})
        assert store.load("courses") is None

    def test_empty_remote(self, store):
        assert store.load("courses") is None
        assert store.sections() == []

    def test_sends_identity(self, remote, store):
        store.load("courses")
        assert remote.identities[0].id == "member-42"
        assert remote.identities[0].email == "parent@example.com"

    def test_remote_error_marks_failed(self, remote, store):
        remote.fail_get = "http_503"
        with pytest.raises(RemoteError) as exc:
            store.load("courses")
        assert exc.value.reason == "http_503"
        assert store.load_status("courses") is LoadStatus.LOAD_FAILED

    def test_auth_error_without_identity(self, remote, cache):
        store = SectionedStateStore(remote, StaticIdentityResolver(None), cache)
        with pytest.raises(AuthError):
            store.load("courses")
        assert remote.get_calls == 0
        assert store.load_status("courses") is LoadStatus.LOAD_FAILED

    def test_returned_payload_is_a_copy(self, remote, store):
        remote.state = doc(courses={"list": [1]})
        payload = store.load("courses")
        payload["list"].append(2)
        assert store.cached_section("courses") == {"list": [1]}


class TestSave:
    def test_merge_isolation(self, remote, store):
        remote.state = doc(A={"a": 1}, B=["b"])
        store.save("S", {"shape": "whatever"})

        assert remote.state == doc(A={"a": 1}, B=["b"], S={"shape": "whatever"})
        assert store.save_status("S") is SaveStatus.SAVED

    def test_round_trip(self, store):
        payload = {"version": 1, "topics": {"HIST-A::X1": {"isBookmarked": True, "tags": ["core"]}}}
        store.save("courses", payload)
        assert store.load("courses") == payload

    def test_consecutive_saves_without_load(self, remote, store):
        store.save("schedule", {"p": 1})
        store.save("courses", {"p": 2})

        assert section_state(remote.state, "schedule") == {"p": 1}
        assert section_state(remote.state, "courses") == {"p": 2}
        assert store.load("schedule") == {"p": 1}

    def test_fetches_once_when_no_cache(self, remote, store):
        remote.state = doc(books={"b": 1})
        store.save("schedule", {"p": 1})
        store.save("courses", {"p": 2})
        assert remote.get_calls == 1
        assert remote.set_calls == 2
        assert section_state(remote.state, "books") == {"b": 1}

    def test_cached_document_is_a_copy(self, remote, store):
        store.save("schedule", {"p": 1})

        document = store.cached_document()
        document["sections"]["schedule"]["state"]["p"] = 99
        document["sections"]["books"] = {"source": "books", "state": {}}

        assert store.cached_section("schedule") == {"p": 1}
        assert store.sections() == ["schedule"]

    def test_failure_leaves_cache_unchanged(self, remote, store, cache):
        store.save("schedule", {"p": 1})
        before = copy.deepcopy(store.cached_document())

        remote.fail_set = "quota_exceeded"
        with pytest.raises(RemoteError):
            store.save("schedule", {"p": 2})

        assert store.cached_document() == before
        assert cache.get_json(REMOTE_DOCUMENT_KEY) == before
        assert store.save_status("schedule") is SaveStatus.SAVE_FAILED
        assert remote.set_calls == 2  # no silent retry

    def test_failed_initial_fetch_is_not_submitted(self, remote, store):
        remote.fail_get = "http_500"
        with pytest.raises(RemoteError):
            store.save("schedule", {"p": 1})
        assert remote.set_calls == 0
        assert store.save_status("schedule") is SaveStatus.SAVE_FAILED

    def test_auth_error(self, remote, cache):
        store = SectionedStateStore(remote, StaticIdentityResolver(""), cache)
        with pytest.raises(AuthError):
            store.save("schedule", {})
        assert remote.set_calls == 0

    def test_save_after_failure_can_retry(self, remote, store):
        remote.fail_set = "http_502"
        with pytest.raises(RemoteError):
            store.save("courses", {"p": 1})
        remote.fail_set = None
        store.save("courses", {"p": 1})
        assert store.save_status("courses") is SaveStatus.SAVED


class ReentrantRemote(InMemoryRemote):
    """Issues a nested save while the outer one is still in flight."""

    def __init__(self):
        super().__init__()
        self.store = None
        self.nested_errors = []
        self.nested_section = "courses"

    def set_state(self, identity, state):
        if self.store is not None and self.set_calls == 0:
            self.set_calls += 1
            try:
                self.store.save(self.nested_section, {"nested": True})
            except SaveInProgressError as e:
                self.nested_errors.append(e)
            self.set_calls -= 1
        return super().set_state(identity, state)


class TestSingleInFlightSave:
    def test_second_save_same_section_rejected(self, identity, cache):
        remote = ReentrantRemote()
        store = SectionedStateStore(remote, identity, cache)
        remote.store = store

        store.save("courses", {"outer": True})

        assert len(remote.nested_errors) == 1
        assert remote.nested_errors[0].section == "courses"
        assert store.load("courses") == {"outer": True}


class TestStaleResponses:
    def test_older_response_does_not_replace_newer(self, store):
        old_seq = store._next_seq()
        store.save("courses", {"p": "new"})
        current = store._replace_document(doc(courses={"p": "old"}), old_seq)
        assert section_state(current, "courses") == {"p": "new"}
        assert store.cached_section("courses") == {"p": "new"}


# -----------------------------------------------------------------------------
# Cached fallbacks
# -----------------------------------------------------------------------------

class TestCachedDocument:
    def test_persisted_copy_used_by_new_store(self, remote, identity, cache, store):
        store.save("schedule", {"p": 1})

        remote.fail_get = "offline"
        fresh = SectionedStateStore(remote, identity, cache)
        with pytest.raises(RemoteError):
            fresh.load("schedule")
        assert fresh.cached_section("schedule") == {"p": 1}
        assert fresh.sections() == ["schedule"]

    def test_unparseable_cache_is_absent(self, remote, identity, cache):
        cache.set_raw(REMOTE_DOCUMENT_KEY, "{not json")
        store = SectionedStateStore(remote, identity, cache)
        assert store.cached_document() is None
        assert store.cached_section("schedule") is None

    def test_without_cache(self, remote, identity):
        store = SectionedStateStore(remote, identity)
        assert store.cached_document() is None
        store.save("schedule", {"p": 1})
        assert store.cached_section("schedule") == {"p": 1}


# -----------------------------------------------------------------------------
# Cross-feature hydration
# -----------------------------------------------------------------------------

class FixedRoster:
    def __init__(self, value):
        self.value = value

    def roster(self):
        return self.value


class TestCrossFeatureValue:
    def test_live_source_first(self, cache):
        cache.set_json(ROSTER_KEY, ["cached"])
        value = CrossFeatureValue(cache, ROSTER_KEY, FixedRoster(["live"]))
        assert value.resolve() == ["live"]

    def test_falls_back_to_cache_then_none(self, cache):
        value = CrossFeatureValue(cache, ROSTER_KEY, FixedRoster([]))
        assert value.resolve() is None
        cache.set_json(ROSTER_KEY, ["cached"])
        assert value.resolve() == ["cached"]
        assert CrossFeatureValue(cache, ROSTER_KEY).resolve() == ["cached"]

    def test_absorb_only_into_empty_cache(self, cache):
        value = CrossFeatureValue(cache, ROSTER_KEY)
        assert value.absorb(["Ann", "Ben"])
        assert not value.absorb(["Other"])
        assert cache.get_json(ROSTER_KEY) == ["Ann", "Ben"]

    def test_absorb_replaces_empty_list(self, cache):
        cache.set_json(ROSTER_KEY, [])
        assert CrossFeatureValue(cache, ROSTER_KEY).absorb(["Ann"])
        assert cache.get_json(ROSTER_KEY) == ["Ann"]

    def test_absorb_ignores_empty_value(self, cache):
        assert not CrossFeatureValue(cache, ROSTER_KEY).absorb([])
        assert cache.get_json(ROSTER_KEY) is None

    def test_load_hydrates_foreign_cache(self, remote, store, cache):
        remote.state = doc(schedule={"students": ["Ann"], "panels": []})
        roster = CrossFeatureValue(cache, ROSTER_KEY)
        payload = store.load("schedule", hydrate={"students": roster})
        assert payload["students"] == ["Ann"]
        assert cache.get_json(ROSTER_KEY) == ["Ann"]

    def test_load_never_overwrites_foreign_cache(self, remote, store, cache):
        cache.set_json(ROSTER_KEY, ["Existing"])
        remote.state = doc(schedule={"students": ["Ann"]})
        store.load("schedule", hydrate={"students": CrossFeatureValue(cache, ROSTER_KEY)})
        assert cache.get_json(ROSTER_KEY) == ["Existing"]
