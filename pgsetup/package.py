"""
Host package manager front-end.

Only the two operations the setup needs are supported: remove a package and
install it again.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass

from pgsetup._commands import run_cmd

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PackageManager:
    """
    Command templates for one package manager.

    Attributes:
        name: Short name used in config (``"brew"``, ``"apt"``, ...).
        executable: Binary looked up on PATH for auto-detection.
        remove: Argument prefix for removing packages.
        install: Argument prefix for installing packages.
        needs_root: Prefix commands with ``sudo``.
    """

    name: str
    executable: str
    remove: tuple[str, ...]
    install: tuple[str, ...]
    needs_root: bool = False

    def _command(self, prefix: tuple[str, ...], package: str) -> list[str]:
        cmd = [self.executable, *prefix, package]
        if self.needs_root:
            cmd.insert(0, "sudo")
        return cmd

    def remove_command(self, package: str) -> list[str]:
        return self._command(self.remove, package)

    def install_command(self, package: str) -> list[str]:
        return self._command(self.install, package)


# Detection order for ``package_manager = "auto"``.
PACKAGE_MANAGERS: dict[str, PackageManager] = {
    "brew": PackageManager("brew", "brew", ("remove",), ("install",)),
    "apt": PackageManager(
        "apt", "apt-get", ("remove", "-y"), ("install", "-y"), needs_root=True
    ),
    "pacman": PackageManager(
        "pacman", "pacman", ("-Rns", "--noconfirm"), ("-S", "--noconfirm"),
        needs_root=True,
    ),
    "dnf": PackageManager(
        "dnf", "dnf", ("remove", "-y"), ("install", "-y"), needs_root=True
    ),
}


def get_package_manager(name: str) -> PackageManager:
    """
    Look up a package manager by name, or detect one with ``"auto"``.

    Raises:
        ValueError: If *name* is unknown.
        RuntimeError: If ``"auto"`` finds no supported manager on PATH.
    """
    if name == "auto":
        for manager in PACKAGE_MANAGERS.values():
            if shutil.which(manager.executable):
                logger.debug(f"Detected package manager: {manager.name}")
                return manager
        raise RuntimeError(
            "No supported package manager found on PATH "
            f"(tried: {', '.join(m.executable for m in PACKAGE_MANAGERS.values())})"
        )

    try:
        return PACKAGE_MANAGERS[name]
    except KeyError:
        available = ", ".join(sorted(PACKAGE_MANAGERS))
        raise ValueError(
            f"Unknown package manager {name!r}. Available: {available}, auto"
        ) from None


def reinstall_package(manager: PackageManager, package: str) -> None:
    """Remove *package* and install it again. Both commands must succeed."""
    logger.info(f"Reinstalling {package} with {manager.name}")
    run_cmd(manager.remove_command(package))
    run_cmd(manager.install_command(package))
