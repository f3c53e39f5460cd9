"""Installing the bundled ``pg_hba.conf``."""

from __future__ import annotations

import filecmp
import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


class HbaMismatchError(RuntimeError):
    """The installed hba file differs from the bundled copy."""


def install_hba_file(source: Path, destination: Path) -> Path:
    """
    Overwrite *destination* with *source* and check the bytes match.

    The destination is the path the server reports as ``hba_file``; it is
    replaced in place, permissions of the existing file are kept.

    Returns:
        The destination path.

    Raises:
        FileNotFoundError: If *source* does not exist.
        HbaMismatchError: If the written file differs from *source*.
    """
    source = Path(source)
    destination = Path(destination)
    if not source.is_file():
        raise FileNotFoundError(f"hba file not found: {source}")

    logger.info(f"Copying {source} -> {destination}")
    shutil.copyfile(source, destination)

    if not filecmp.cmp(source, destination, shallow=False):
        raise HbaMismatchError(f"{destination} does not match {source}")
    return destination
