"""
pgsetup: Reinstall and provision a local PostgreSQL server.

The procedure reinstalls the PostgreSQL package, starts the server in the
background, waits until it accepts connections, creates a superuser role,
loads a SQL setup script, installs a bundled ``pg_hba.conf`` at the path the
server reports and sends the server SIGHUP so it picks the file up.

Example:
    import pgsetup

    config = pgsetup.SetupConfig.load()          # .pgsetup.toml or defaults
    result = pgsetup.run_setup(config)
    print(result.hba_file, result.pid)

    # Only re-install pg_hba.conf and reload:
    steps = pgsetup.build_steps(config, pgsetup.RELOAD_STEPS)
    pgsetup.run_setup(config, steps=steps)
"""

from pgsetup._commands import CommandError, run_cmd
from pgsetup.client import ReloadNotObservedError
from pgsetup.config import SetupConfig
from pgsetup.events import Event, EventKind
from pgsetup.hba import HbaMismatchError, install_hba_file
from pgsetup.package import PackageManager, get_package_manager
from pgsetup.procedure import (
    ALL_STEPS,
    RELOAD_STEPS,
    SetupResult,
    Step,
    build_steps,
    run_setup,
)
from pgsetup.progress import (
    ProgressTracker,
    RichProgressTracker,
    SimpleProgressTracker,
    create_progress_tracker,
)
from pgsetup.server import ServerNotReadyError, ServerProcess

__version__ = "0.1.0"

__all__ = [
    # Procedure
    "ALL_STEPS",
    "RELOAD_STEPS",
    "SetupConfig",
    "SetupResult",
    "Step",
    "build_steps",
    "run_setup",
    # Building blocks
    "PackageManager",
    "ServerProcess",
    "get_package_manager",
    "install_hba_file",
    "run_cmd",
    # Errors
    "CommandError",
    "HbaMismatchError",
    "ReloadNotObservedError",
    "ServerNotReadyError",
    # Events / progress
    "Event",
    "EventKind",
    "ProgressTracker",
    "RichProgressTracker",
    "SimpleProgressTracker",
    "create_progress_tracker",
]
