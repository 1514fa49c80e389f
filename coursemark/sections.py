"""
Sectioned planner document and the store that syncs it.

The account's persisted state is one document:

    {"version": 1, "sections": {name: {"source": name, "state": ...}}}

Each feature owns one section and never looks inside the others. A save
replaces exactly one section of the last known full document and submits
the whole thing; every other key is passed through untouched.

Per section there are two status machines:
- load: UNLOADED -> LOADING -> LOADED | LOAD_FAILED
- save: IDLE -> SAVING -> SAVED | SAVE_FAILED

Only one save per section may be in flight; a second one is rejected with
SaveInProgressError. Saves to different sections are serialized so that
each one merges into the document the previous one produced.
"""

import copy
import logging
import threading
import time
from enum import Enum
from typing import Any, Mapping, Optional

from .cache import REMOTE_DOCUMENT_KEY, is_empty_value
from .errors import AuthError, SaveInProgressError
from .protocol import (
    CacheProtocol,
    IdentityResolver,
    RemoteStateService,
    RosterProvider,
    SaveReceipt,
)
from .types import Identity

logger = logging.getLogger(__name__)

SECTIONED_STATE_VERSION = 1


class LoadStatus(Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"
    LOAD_FAILED = "load_failed"


class SaveStatus(Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    SAVE_FAILED = "save_failed"


# -----------------------------------------------------------------------------
# Document helpers
# -----------------------------------------------------------------------------

def empty_document() -> dict:
    return {"version": SECTIONED_STATE_VERSION, "sections": {}}


def normalize_document(document: Any) -> dict:
    """
    Coerce anything the service returns into the sectioned shape.

    Returns a new top-level dict; section entries are the same objects.
    """
    if not isinstance(document, dict):
        return empty_document()
    result = dict(document)
    if not isinstance(result.get("sections"), dict):
        result["sections"] = {}
    if not result.get("version"):
        result["version"] = SECTIONED_STATE_VERSION
    return result


def merge_section(document: Any, section: str, payload: Any) -> dict:
    """
    Return a copy of ``document`` with exactly one section replaced.

    Other sections, and any other top-level keys, are carried over as the
    same objects.
    """
    base = normalize_document(document)
    sections = dict(base["sections"])
    sections[section] = {"source": section, "state": copy.deepcopy(payload)}
    base["sections"] = sections
    return base


def section_state(document: Any, section: str) -> Any:
    """The ``state`` payload of one section, or None if absent."""
    if not isinstance(document, dict):
        return None
    sections = document.get("sections")
    if not isinstance(sections, dict):
        return None
    entry = sections.get(section)
    if not isinstance(entry, dict):
        return None
    return entry.get("state")


# -----------------------------------------------------------------------------
# Cross-feature hydration
# -----------------------------------------------------------------------------

class CrossFeatureValue:
    """
    A value another feature owns (e.g. a student roster) that a section
    needs too.

    Reads fall back from the owner's live source to the owner's persisted
    cache to None. Writes back into the owner's cache are additive only:
    existing data there is never overwritten.
    """

    def __init__(
        self,
        cache: CacheProtocol,
        cache_key: str,
        provider: Optional[RosterProvider] = None,
    ):
        self._cache = cache
        self._cache_key = cache_key
        self._provider = provider

    @property
    def cache_key(self) -> str:
        return self._cache_key

    def resolve(self) -> Any:
        if self._provider is not None:
            live = self._provider.roster()
            if not is_empty_value(live):
                return live
        cached = self._cache.get_json(self._cache_key)
        if not is_empty_value(cached):
            return cached
        return None

    def absorb(self, value: Any) -> bool:
        """Seed the owner's cache from a loaded section. True if written."""
        if is_empty_value(value):
            return False
        if not self._cache.is_empty(self._cache_key):
            return False
        self._cache.set_json(self._cache_key, value)
        logger.info("Hydrated %s from loaded section", self._cache_key)
        return True


# -----------------------------------------------------------------------------
# Store
# -----------------------------------------------------------------------------

class SectionedStateStore:
    """
    Caches the full remote document and merges section writes into it.

    The in-memory document is the source of truth for reads. It is replaced
    wholesale after a successful fetch or a confirmed write, and mirrored
    into the persisted cache for use when the service is unreachable.
    """

    def __init__(
        self,
        remote: RemoteStateService,
        identity: IdentityResolver,
        cache: Optional[CacheProtocol] = None,
        *,
        document_key: str = REMOTE_DOCUMENT_KEY,
    ):
        self._remote = remote
        self._identity = identity
        self._cache = cache
        self._document_key = document_key

        self._document: Optional[dict] = None
        self._lock = threading.Lock()
        self._write_lock = threading.RLock()
        # Stale-response guard: responses carry the sequence number they were
        # issued under; only a newer one may replace the cached document
        self._seq = 0
        self._applied_seq = 0

        self._load_status: dict[str, LoadStatus] = {}
        self._save_status: dict[str, SaveStatus] = {}

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def load_status(self, section: str) -> LoadStatus:
        return self._load_status.get(section, LoadStatus.UNLOADED)

    def save_status(self, section: str) -> SaveStatus:
        return self._save_status.get(section, SaveStatus.IDLE)

    def status(self, section: str) -> tuple[LoadStatus, SaveStatus]:
        return self.load_status(section), self.save_status(section)

    def is_saving(self, section: str) -> bool:
        return self.save_status(section) is SaveStatus.SAVING

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _require_identity(self) -> Identity:
        identity = self._identity.resolve_identity()
        if identity is None or not identity.id:
            raise AuthError("Not signed in")
        return identity

    def _next_seq(self) -> int:
        with self._lock:
            self._seq += 1
            return self._seq

    def _replace_document(self, document: dict, seq: int) -> dict:
        """Install a document unless a newer response already has. Returns the current one."""
        with self._lock:
            if seq < self._applied_seq:
                logger.debug("Dropping stale response (seq %d < %d)", seq, self._applied_seq)
                return self._document
            self._document = document
            self._applied_seq = seq
        if self._cache is not None:
            self._cache.set_json(self._document_key, document)
        return document

    def _fetch_document(self) -> dict:
        identity = self._require_identity()
        seq = self._next_seq()
        remote = self._remote.get_state(identity)
        return self._replace_document(normalize_document(remote.state), seq)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def load(
        self,
        section: str,
        *,
        hydrate: Optional[Mapping[str, CrossFeatureValue]] = None,
    ) -> Any:
        """
        Fetch the full document and return one section's payload (or None).

        Args:
            section: Section name
            hydrate: Optional field-name -> CrossFeatureValue map. When the
                loaded payload is a mapping carrying one of these fields, the
                value seeds the owning feature's cache if that is empty.

        Raises:
            AuthError: No identity could be resolved
            RemoteError: The service failed; fall back to cached_section()
        """
        self._load_status[section] = LoadStatus.LOADING
        start = time.monotonic()
        try:
            document = self._fetch_document()
        except Exception:
            self._load_status[section] = LoadStatus.LOAD_FAILED
            logger.info("Load of section %s failed", section)
            raise
        self._load_status[section] = LoadStatus.LOADED

        payload = copy.deepcopy(section_state(document, section))
        logger.info(
            "Loaded section %s (%s) in %.2fs",
            section, "present" if payload is not None else "absent",
            time.monotonic() - start,
        )
        if hydrate and isinstance(payload, dict):
            for field_name, target in hydrate.items():
                if field_name in payload:
                    target.absorb(payload[field_name])
        return payload

    def save(self, section: str, payload: Any) -> SaveReceipt:
        """
        Replace one section in the cached full document and submit it.

        The cache is updated only after the service accepts the document.
        Nothing is retried on failure.

        Raises:
            SaveInProgressError: A save for this section is still running
            AuthError: No identity could be resolved
            RemoteError: The service rejected or never received the write
        """
        with self._lock:
            if self._save_status.get(section) is SaveStatus.SAVING:
                raise SaveInProgressError(section)
            self._save_status[section] = SaveStatus.SAVING

        start = time.monotonic()
        succeeded = False
        try:
            with self._write_lock:
                identity = self._require_identity()
                with self._lock:
                    base = self._document
                if base is None:
                    base = self._fetch_document()
                merged = merge_section(base, section, payload)
                receipt = self._remote.set_state(identity, merged)
                # A confirmed write outranks any read still in flight
                self._replace_document(merged, self._next_seq())
            succeeded = True
        finally:
            self._save_status[section] = SaveStatus.SAVED if succeeded else SaveStatus.SAVE_FAILED
            logger.info(
                "Save of section %s %s in %.2fs",
                section, "succeeded" if succeeded else "failed",
                time.monotonic() - start,
            )
        return receipt

    def cached_document(self) -> Optional[dict]:
        """Copy of the last known full document: memory first, then the persisted copy."""
        with self._lock:
            document = self._document
        if document is not None:
            return copy.deepcopy(document)
        if self._cache is None:
            return None
        persisted = self._cache.get_json(self._document_key)
        if not isinstance(persisted, dict):
            return None
        return normalize_document(persisted)

    def cached_section(self, section: str) -> Any:
        """Section payload from the cached document, or None."""
        return copy.deepcopy(section_state(self.cached_document(), section))

    def sections(self) -> list[str]:
        document = self.cached_document()
        if document is None:
            return []
        return list(document["sections"])
