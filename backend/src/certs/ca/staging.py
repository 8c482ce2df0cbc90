"""Scoped on-disk staging for key material handed to the signing engine.

Each call gets its own directory created with `tempfile.mkdtemp`, so parallel
issuances never share a path. `scratch_dir` removes the directory on every exit
path; `make_work_dir` leaves removal to the owner of the returned path.
"""

import logging
import os
import shutil
import tempfile
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

PRIVATE_FILE_MODE = 0o600


def make_work_dir(base_dir: str | Path | None, prefix: str) -> Path:
    """Create a unique, owner-only directory under base_dir."""
    if base_dir is not None:
        Path(base_dir).mkdir(parents=True, exist_ok=True)
    return Path(tempfile.mkdtemp(prefix=prefix, dir=base_dir))


@contextmanager
def scratch_dir(base_dir: str | Path | None = None, prefix: str = "certs-") -> Generator[Path, None, None]:
    """Yield a fresh directory and delete it, with its contents, on exit."""
    path = make_work_dir(base_dir, prefix)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        logger.debug("scratch_dir_removed", extra={"path": str(path)})


def write_private_file(path: Path, data: bytes) -> Path:
    """Write data to a file readable only by the current user."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, PRIVATE_FILE_MODE)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    return path
