import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from utils.errors import DecodeError, PayloadTooLarge

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


async def _write_upload(upload: UploadFile, staged_path: Path, max_bytes: int) -> int:
    staged_path.parent.mkdir(parents=True, exist_ok=True)
    f = await run_in_threadpool(open, staged_path, "wb")
    try:
        size = 0
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > max_bytes:
                raise PayloadTooLarge(f"upload exceeds {max_bytes} bytes")
            await run_in_threadpool(f.write, chunk)
    finally:
        await run_in_threadpool(f.close)
    return size


@asynccontextmanager
async def staged_upload(
    upload: Optional[UploadFile], upload_dir: Path, max_bytes: int
) -> AsyncIterator[Optional[Path]]:
    """
    Write an upload to disk and yield its path; the file is deleted on exit.

    Yields None when no file was sent. Raises PayloadTooLarge as soon as more
    than ``max_bytes`` have been read, before anything tries to decode it.
    Disk errors while staging surface as DecodeError.
    """
    if upload is None or not upload.filename:
        yield None
        return

    staged_path = upload_dir / f"{uuid.uuid4().hex}{Path(upload.filename).suffix}"

    try:
        try:
            size = await _write_upload(upload, staged_path, max_bytes)
        except OSError as e:
            raise DecodeError("upload could not be staged") from e

        logger.info(f"📁 Staged upload {upload.filename} ({size} bytes)")
        yield staged_path
    finally:
        try:
            staged_path.unlink(missing_ok=True)
        except OSError:
            logger.exception(f"❌ Could not delete staged upload {staged_path}")
        await upload.close()
