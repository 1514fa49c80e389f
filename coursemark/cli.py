"""
CLI interface for coursemark.

Usage:
    coursemark whoami
    coursemark pull courses
    coursemark push schedule schedule.json
    coursemark sections
"""

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from .cache import REMOTE_DOCUMENT_KEY, LocalCache
from .config import StoreConfig, load_or_create_config
from .errors import AuthError, RemoteError, SaveInProgressError
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode
from .protocol import RemoteStateService, StaticIdentityResolver
from .sections import SectionedStateStore
from .sync_client import SyncClient

# Set COURSEMARK_VERBOSE=1 to enable debug mode via environment
if os.environ.get("COURSEMARK_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


app = typer.Typer(
    name="coursemark",
    help="Sync curriculum planning bookmarks, tags and notes.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="COURSEMARK_STORE_PATH",
        help="Path to the store directory",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Sync curriculum planning bookmarks, tags and notes."""


# -----------------------------------------------------------------------------
# Wiring
# -----------------------------------------------------------------------------

def _make_remote(config: StoreConfig) -> RemoteStateService:
    return SyncClient(config.remote.api_url, timeout=config.remote.timeout)


class _Context:
    """Objects a command needs, built from the store config."""

    def __init__(self, config: StoreConfig):
        self.config = config
        self.remote = _make_remote(config)
        self.cache = LocalCache(config.cache_path)
        self.identity = StaticIdentityResolver(config.identity.id, config.identity.email)
        self.store = SectionedStateStore(self.remote, self.identity, self.cache)
        self._ops_log_handler = configure_ops_log(config.path)

    def close(self) -> None:
        close = getattr(self.remote, "close", None)
        if close is not None:
            close()
        self.cache.close()

        # Remove ops log handler to avoid handler accumulation
        if self._ops_log_handler is not None:
            logging.getLogger("coursemark").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None


_active_context: Optional[_Context] = None


def _get_context() -> _Context:
    """Load config and build the store, exiting cleanly on bad config."""
    import atexit

    global _active_context
    if _active_context is not None:
        _active_context.close()
        _active_context = None

    try:
        config = load_or_create_config(_store_override)
    except (ValueError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    try:
        ctx = _Context(config)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    _active_context = ctx
    atexit.register(ctx.close)
    return ctx


def _echo_json(value: Any) -> None:
    typer.echo(json.dumps(value, indent=2, ensure_ascii=False))


def _fail(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def whoami():
    """Show the configured identity and its role on the state service."""
    ctx = _get_context()
    identity = ctx.identity.resolve_identity()
    if identity is None:
        _fail("Not signed in. Set [identity] id in coursemark.toml or COURSEMARK_MEMBER_ID.")
    if not isinstance(ctx.remote, SyncClient):
        _fail("Remote does not support role lookup")
    try:
        role = ctx.remote.whoami(identity)
    except RemoteError as e:
        _fail(f"whoami failed: {e.reason}")

    if _get_json_output():
        _echo_json({"id": identity.id, "email": identity.email, "role": role})
    else:
        typer.echo(f"{identity.id} <{identity.email}> role={role}")


@app.command()
def pull(
    section: Annotated[str, typer.Argument(help="Section name to load")],
):
    """Load one section and print its payload as JSON."""
    ctx = _get_context()
    try:
        payload = ctx.store.load(section)
    except AuthError as e:
        _fail(str(e))
    except RemoteError as e:
        cached = ctx.store.cached_section(section)
        if cached is None:
            _fail(f"Load failed: {e.reason}")
        typer.echo(f"Warning: load failed ({e.reason}); showing cached copy", err=True)
        payload = cached

    if payload is None:
        typer.echo(f"No saved state for section {section!r}", err=True)
        raise typer.Exit(0)
    _echo_json(payload)


@app.command()
def push(
    section: Annotated[str, typer.Argument(help="Section name to save")],
    source: Annotated[str, typer.Argument(
        help="JSON file with the section payload, or - for stdin",
    )] = "-",
):
    """Save a JSON payload into one section, leaving the others untouched."""
    try:
        if source == "-":
            raw = sys.stdin.read()
        else:
            raw = Path(source).read_text(encoding="utf-8")
    except OSError as e:
        _fail(f"Cannot read {source}: {e}")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        _fail(f"Invalid JSON: {e}")

    ctx = _get_context()
    try:
        receipt = ctx.store.save(section, payload)
    except (AuthError, SaveInProgressError) as e:
        _fail(str(e))
    except RemoteError as e:
        _fail(f"Save failed: {e.reason}")

    if _get_json_output():
        _echo_json({"ok": True, "plannerId": receipt.planner_id, "updatedAt": receipt.updated_at})
    else:
        typer.echo(f"Saved {section} ({receipt.updated_at or 'ok'})")


@app.command()
def sections():
    """List section names in the cached document."""
    ctx = _get_context()
    names = ctx.store.sections()
    if _get_json_output():
        _echo_json(names)
        return
    if not names:
        typer.echo("No cached document. Run 'coursemark pull <section>' first.", err=True)
        return
    for name in names:
        typer.echo(name)


@app.command()
def status():
    """Show configuration, identity and cached sections."""
    ctx = _get_context()
    identity = ctx.identity.resolve_identity()
    info = {
        "store": str(ctx.config.path),
        "config": str(ctx.config.config_path),
        "api_url": ctx.config.remote.api_url,
        "identity": identity.id if identity else None,
        "section": ctx.config.section,
        "cached_sections": ctx.store.sections(),
        "cached_at": ctx.cache.updated_at(REMOTE_DOCUMENT_KEY),
    }
    if _get_json_output():
        _echo_json(info)
        return
    for key, value in info.items():
        if isinstance(value, list):
            value = ", ".join(value) or "-"
        typer.echo(f"{key}: {value if value is not None else '-'}")


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="coursemark CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
