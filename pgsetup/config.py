"""
SetupConfig: Configuration loader for pgsetup.

This module provides:

- find_config_file: Walk up directories to locate .pgsetup.toml
- deep_merge: Recursively merge two dicts (override wins for leaf values)
- SetupConfig: Typed settings for one run of the setup procedure

Configuration is loaded from `.pgsetup.toml` with optional `.pgsetup.local.toml`
overrides. The resolution order is:

    defaults → [setup] → [environments.NAME] → local overrides

Without any config file the defaults describe a Homebrew install on macOS:

    >>> config = SetupConfig()
    >>> config.package, config.package_manager, str(config.data_dir)
    ('postgres', 'brew', '/usr/local/var/postgres')

Example file::

    [setup]
    superuser = "postgres"
    setup_sql = "setup.sql"
    hba_source = "pg_hba.conf"

    [environments.apple-silicon]
    data_dir = "/opt/homebrew/var/postgres"
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

CONFIG_FILENAME = ".pgsetup.toml"
LOCAL_CONFIG_FILENAME = ".pgsetup.local.toml"

DEFAULT_PACKAGE = "postgres"
DEFAULT_PACKAGE_MANAGER = "brew"
DEFAULT_DATA_DIR = Path("/usr/local/var/postgres")
DEFAULT_SUPERUSER = "postgres"

# Keys holding paths that are resolved relative to the config file.
_PATH_KEYS = ("data_dir", "setup_sql", "hba_source", "log_file")


# ---------------------------------------------------------------------------
# Utility helpers
# ---------------------------------------------------------------------------


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """
    Walk up from *start_dir* to find `.pgsetup.toml`.

    Args:
        start_dir: Directory to start searching from. Defaults to ``Path.cwd()``.

    Returns:
        Path to the config file, or ``None`` if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate

        parent = current.parent
        if parent == current:
            # Reached filesystem root
            return None
        current = parent


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep-merge two dicts. *override* wins for leaf values.

    Neither input is mutated; a new dict is returned.
    """
    merged: dict[str, Any] = {}

    for key in base.keys() | override.keys():
        if key in base and key in override:
            base_val = base[key]
            over_val = override[key]
            if isinstance(base_val, dict) and isinstance(over_val, dict):
                merged[key] = deep_merge(base_val, over_val)
            else:
                merged[key] = over_val
        elif key in base:
            merged[key] = base[key]
        else:
            merged[key] = override[key]

    return merged


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SetupConfig:
    """
    Settings for one run of the setup procedure.

    Attributes:
        package: Package name handed to the package manager.
        package_manager: ``"brew"``, ``"apt"``, ``"pacman"``, ``"dnf"`` or
            ``"auto"`` (first one found on PATH).
        data_dir: Data directory the server is started with (``-D``).
        superuser: Role created with ``createuser -s`` and used by ``psql``.
        setup_sql: SQL script piped into ``psql`` after the role exists.
        hba_source: Bundled ``pg_hba.conf`` copied over the server's hba_file.
        server_binary: Server executable started in the background.
        log_file: Where server output is appended. ``None`` discards it.
        ready_timeout: Seconds to wait for the server to accept connections.
        ready_interval: Seconds between readiness probes.
        sudo_pid_read: Read ``postmaster.pid`` through ``sudo head -n1``.
        reinstall: Remove and reinstall the package before starting.
        verify_reload: Confirm the server reloaded after SIGHUP.
        reload_timeout: Seconds to wait for the reload to be observed.
    """

    package: str = DEFAULT_PACKAGE
    package_manager: str = DEFAULT_PACKAGE_MANAGER
    data_dir: Path = DEFAULT_DATA_DIR
    superuser: str = DEFAULT_SUPERUSER
    setup_sql: Path = Path("setup.sql")
    hba_source: Path = Path("pg_hba.conf")
    server_binary: str = "postgres"
    log_file: Path | None = None
    ready_timeout: float = 30.0
    ready_interval: float = 0.5
    sudo_pid_read: bool = True
    reinstall: bool = True
    verify_reload: bool = True
    reload_timeout: float = 10.0

    def __post_init__(self) -> None:
        # Accept plain strings from TOML or the CLI.
        for key in _PATH_KEYS:
            value = getattr(self, key)
            if value is not None and not isinstance(value, Path):
                object.__setattr__(self, key, Path(value))
        if self.ready_interval <= 0:
            raise ValueError("ready_interval must be positive")
        if self.ready_timeout < 0 or self.reload_timeout < 0:
            raise ValueError("timeouts must not be negative")

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        *,
        base_dir: Path | None = None,
    ) -> SetupConfig:
        """
        Build a config from a flat settings dict.

        Relative paths are resolved against *base_dir* when given.

        Raises:
            ValueError: If *data* contains unknown keys.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown setup options: {', '.join(unknown)}")

        values = dict(data)
        if base_dir is not None:
            for key in _PATH_KEYS:
                if values.get(key) is not None:
                    path = Path(values[key]).expanduser()
                    values[key] = path if path.is_absolute() else base_dir / path
        return cls(**values)

    @classmethod
    def from_toml_data(
        cls,
        data: dict[str, Any],
        local_overrides: dict[str, Any] | None = None,
        *,
        env_name: str | None = None,
        base_dir: Path | None = None,
    ) -> SetupConfig:
        """
        Resolve parsed TOML into a config.

        Merging order:

        1. ``[setup]``
        2. ``[environments.NAME]`` (``env_name`` or ``setup.default_env``)
        3. Local ``[setup]``
        4. Local ``[environments.NAME]``

        A local file may also add a profile of its own or change
        ``default_env``.

        Raises:
            ValueError: If the requested environment does not exist.
        """
        local_overrides = local_overrides or {}
        settings = dict(data.get("setup", {}))
        local_settings = dict(local_overrides.get("setup", {}))
        default_env = settings.pop("default_env", None)
        default_env = local_settings.pop("default_env", default_env)
        env_name = env_name or default_env

        environments = data.get("environments", {})
        local_environments = local_overrides.get("environments", {})
        if env_name is not None:
            if env_name not in environments and env_name not in local_environments:
                available = ", ".join(sorted(environments.keys() | local_environments.keys()))
                raise ValueError(
                    f"Unknown environment {env_name!r}. "
                    f"Available environments: {available or '(none)'}"
                )
            settings = deep_merge(settings, dict(environments.get(env_name, {})))

        # Local overrides apply last, for the base section and the profile.
        settings = deep_merge(settings, local_settings)
        if env_name is not None:
            settings = deep_merge(settings, dict(local_environments.get(env_name, {})))

        return cls.from_dict(settings, base_dir=base_dir)

    @classmethod
    def load(
        cls,
        path: Path | None = None,
        *,
        env_name: str | None = None,
        start_dir: Path | None = None,
    ) -> SetupConfig:
        """
        Find and load configuration.

        If *path* is given it must exist. Otherwise ``.pgsetup.toml`` is
        searched for upwards from *start_dir*; when none is found the
        defaults are returned with paths relative to *start_dir*.

        Raises:
            FileNotFoundError: If an explicit *path* does not exist.
        """
        if path is not None:
            config_path: Path | None = Path(path)
            if not config_path.is_file():
                raise FileNotFoundError(f"Config file not found: {config_path}")
        else:
            config_path = find_config_file(start_dir)

        if config_path is None:
            base_dir = (start_dir or Path.cwd()).resolve()
            if env_name is not None:
                raise ValueError(
                    f"Environment {env_name!r} requested but no {CONFIG_FILENAME} found"
                )
            return cls.from_dict({}, base_dir=base_dir).with_defaults_under(base_dir)

        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        local_overrides: dict[str, Any] = {}
        local_path = config_path.parent / LOCAL_CONFIG_FILENAME
        if local_path.is_file():
            with open(local_path, "rb") as f:
                local_overrides = tomllib.load(f)

        base_dir = config_path.parent.resolve()
        config = cls.from_toml_data(
            data, local_overrides, env_name=env_name, base_dir=base_dir
        )
        return config.with_defaults_under(base_dir)

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def with_defaults_under(self, base_dir: Path) -> SetupConfig:
        """Anchor the relative default bundle paths at *base_dir*."""
        updates: dict[str, Any] = {}
        for key in ("setup_sql", "hba_source"):
            value: Path = getattr(self, key)
            if not value.is_absolute():
                updates[key] = base_dir / value
        return replace(self, **updates) if updates else self

    def override(self, **changes: Any) -> SetupConfig:
        """Return a copy with the non-``None`` *changes* applied."""
        changes = {k: v for k, v in changes.items() if v is not None}
        return replace(self, **changes) if changes else self

    def check_bundle(self, *, sql: bool = True, hba: bool = True) -> None:
        """
        Ensure the bundled SQL script and/or hba file exist.

        Raises:
            FileNotFoundError: If a requested file is missing.
        """
        wanted = []
        if sql:
            wanted.append(("SQL setup script", self.setup_sql))
        if hba:
            wanted.append(("hba file", self.hba_source))
        for label, path in wanted:
            if not path.is_file():
                raise FileNotFoundError(f"{label} not found: {path}")
