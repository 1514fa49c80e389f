"""
HTTP client for the sectioned planner state service.

Reads and writes the whole planner document for one account. Section
merging happens in SectionedStateStore; this client only moves documents
and translates every failure into RemoteError.

Writes are never retried here: a failed save is surfaced to the caller,
who repeats the user action if they want to.
"""

from __future__ import annotations

import logging
from typing import Iterable

import httpx

from .errors import AuthError, RemoteError
from .protocol import RemoteState, SaveReceipt
from .types import Identity

logger = logging.getLogger(__name__)

# Timeouts
DEFAULT_TIMEOUT = 30.0

_LOCAL_HOSTS = ("localhost", "127.0.0.1", "::1")


class SyncClient:
    """HTTP client for the planner state API."""

    def __init__(
        self,
        api_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        self._api_url = api_url.rstrip("/")

        # Refuse non-HTTPS for remote APIs (member ids would travel in cleartext)
        if not self._api_url.startswith("https://"):
            from urllib.parse import urlparse
            host = urlparse(self._api_url).hostname or ""
            if host not in _LOCAL_HOSTS:
                raise ValueError(
                    f"State API URL must use HTTPS (got {self._api_url}). "
                    "Use HTTPS to protect account identity, or use localhost for local development."
                )

        self._client = httpx.Client(
            base_url=self._api_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @property
    def api_url(self) -> str:
        return self._api_url

    def _post(self, path: str, payload: dict) -> dict:
        """POST a JSON body and return the decoded ``ok`` response.

        Raises RemoteError on transport failure, non-2xx status, a body that
        is not a JSON object, or ``{ok: false}``.
        """
        logger.debug("POST %s", path)
        try:
            resp = self._client.post(path, json=payload)
        except httpx.TimeoutException as e:
            raise RemoteError("timeout") from e
        except httpx.HTTPError as e:
            raise RemoteError(f"transport_error: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            data = None

        if resp.status_code < 200 or resp.status_code >= 300:
            reason = data.get("reason") if isinstance(data, dict) else None
            raise RemoteError(reason or f"http_{resp.status_code}", status_code=resp.status_code)
        if not isinstance(data, dict):
            raise RemoteError("malformed_response", status_code=resp.status_code)
        if not data.get("ok"):
            raise RemoteError(str(data.get("reason") or "not_ok"), status_code=resp.status_code)
        return data

    def get_state(self, identity: Identity) -> RemoteState:
        """POST /state/get -> the account's full sectioned document."""
        data = self._post("/state/get", identity.as_payload())
        state = data.get("state")
        if state is not None and not isinstance(state, dict):
            raise RemoteError("malformed_response")
        return RemoteState(
            state=state,
            planner_id=data.get("plannerId"),
            last_updated=data.get("lastUpdated"),
        )

    def set_state(self, identity: Identity, state: dict) -> SaveReceipt:
        """POST /state/set with the full merged document."""
        payload = identity.as_payload()
        payload["state"] = state
        data = self._post("/state/set", payload)
        return SaveReceipt(
            planner_id=data.get("plannerId"),
            updated_at=data.get("updatedAt"),
        )

    def whoami(self, identity: Identity) -> str:
        """POST /whoami -> the account's role, lowercased."""
        data = self._post("/whoami", identity.as_payload())
        return str(data.get("role") or "member").lower()

    def require_role(self, identity: Identity, allowed: Iterable[str]) -> str:
        """Return the role if permitted, else raise AuthError."""
        allowed = {r.lower() for r in allowed}
        role = self.whoami(identity)
        if role not in allowed:
            logger.info("Role %s not permitted (need one of %s)", role, sorted(allowed))
            raise AuthError(f"Role {role!r} is not permitted for this feature")
        return role

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
