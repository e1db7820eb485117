"""File writing helpers."""

import os
import stat
import tempfile
import logging
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)


def _target_mode(path: Path) -> int:
    """Permissions for a replacement file: the current file's, else what open() would give."""
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def atomic_write_bytes(path: Union[str, Path], data: bytes, atomic: bool = True) -> None:
    """
    Write bytes to path.

    With atomic=True the data goes to a temporary file in the destination
    directory which then replaces the destination, so a failed write never
    leaves a truncated file behind.

    Raises:
        OSError: If the file cannot be written
    """
    path = Path(path)
    if not atomic:
        with open(path, 'wb') as f:
            f.write(data)
        return

    directory = path.parent if str(path.parent) else Path(".")
    temp_path = None
    try:
        with tempfile.NamedTemporaryFile(dir=directory, prefix=f".{path.name}.", suffix=".tmp", delete=False) as tmp:
            temp_path = Path(tmp.name)
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(temp_path, _target_mode(path))
        os.replace(temp_path, path)
        temp_path = None
    finally:
        if temp_path is not None and temp_path.exists():
            logger.debug(f"Removing temporary file {temp_path}")
            temp_path.unlink()


def atomic_write_text(path: Union[str, Path], text: str, encoding: str = "utf-8", atomic: bool = True) -> None:
    """Write text without newline translation; see atomic_write_bytes."""
    atomic_write_bytes(path, text.encode(encoding), atomic=atomic)
