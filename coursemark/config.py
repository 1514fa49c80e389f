"""
Configuration management for coursemark.

The configuration is stored as a TOML file in the store directory. It
names the remote state service, the identity used for sync, and the
section the planner writes to.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import tomli_w


CONFIG_FILENAME = "coursemark.toml"
CONFIG_VERSION = 1

DEFAULT_API_URL = "https://planning-api.example.org/api"
DEFAULT_TIMEOUT = 30.0
DEFAULT_SECTION = "courses"


@dataclass
class RemoteConfig:
    """Where the sectioned state service lives."""
    api_url: str = DEFAULT_API_URL
    timeout: float = DEFAULT_TIMEOUT


@dataclass
class IdentityConfig:
    """Static identity used when no login provider is wired in."""
    id: str = ""
    email: str = ""


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    section: str = DEFAULT_SECTION

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def cache_path(self) -> Path:
        """Path to the local SQLite cache."""
        return self.path / "cache.db"

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_default_store_path() -> Path:
    """Store directory: COURSEMARK_STORE_PATH or ~/.coursemark."""
    env = os.environ.get("COURSEMARK_STORE_PATH")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".coursemark"


def apply_env_overrides(config: StoreConfig) -> StoreConfig:
    """Environment variables win over the file for remote URL and identity."""
    api_url = os.environ.get("COURSEMARK_API_URL")
    if api_url:
        config.remote.api_url = api_url
    member_id = os.environ.get("COURSEMARK_MEMBER_ID")
    if member_id:
        config.identity.id = member_id
    email = os.environ.get("COURSEMARK_EMAIL")
    if email:
        config.identity.email = email
    return config


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Validate version
    store = data.get("store", {})
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    remote = data.get("remote", {})
    identity = data.get("identity", {})
    try:
        timeout = float(remote.get("timeout", DEFAULT_TIMEOUT))
    except (TypeError, ValueError):
        raise ValueError(f"Invalid remote.timeout: {remote.get('timeout')!r}")

    return StoreConfig(
        path=store_path,
        version=version,
        created=store.get("created", ""),
        remote=RemoteConfig(
            api_url=str(remote.get("api_url", DEFAULT_API_URL)),
            timeout=timeout,
        ),
        identity=IdentityConfig(
            id=str(identity.get("id", "")),
            email=str(identity.get("email", "")),
        ),
        section=str(data.get("planner", {}).get("section", DEFAULT_SECTION)),
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
        "remote": {
            "api_url": config.remote.api_url,
            "timeout": config.remote.timeout,
        },
        "identity": {
            "id": config.identity.id,
            "email": config.identity.email,
        },
        "planner": {
            "section": config.section,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Optional[Path] = None) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management. Environment
    overrides are applied after loading and are never written back.
    """
    store_path = store_path or get_default_store_path()
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        config = load_config(store_path)
    else:
        config = StoreConfig(path=store_path)
        save_config(config)
    return apply_env_overrides(config)
