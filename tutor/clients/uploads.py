from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


logger = logging.getLogger("sprachpartner.uploads")


@contextmanager
def stage_upload(upload_dir: str | Path, data: bytes, suffix: str = ".webm") -> Iterator[Path]:
    """Write ``data`` to a scratch file that is removed when the block exits.

    The extension matters: the transcription API sniffs the format from it.
    """
    directory = Path(upload_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{uuid.uuid4().hex}{suffix}"
    path.write_bytes(data)
    try:
        yield path
    finally:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove upload %s: %s", path, exc)
