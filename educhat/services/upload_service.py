import logging
import mimetypes
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from educhat.config import Config
from educhat.errors import ValidationFailedError


logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class UploadService:
    """Stores chat images on local disk and describes them as message attachments."""

    def __init__(self, upload_dir: str | None = None, base_url: str | None = None, max_mb: float | None = None) -> None:
        self._upload_dir = Path(upload_dir or Config.UPLOAD_DIR)
        self._base_url = (base_url or Config.UPLOAD_BASE_URL).rstrip("/")
        self._max_bytes = int((max_mb if max_mb is not None else Config.MAX_UPLOAD_MB) * 1024 * 1024)

    async def store_image(self, image: Optional[UploadFile]) -> Dict[str, Any]:
        if image is None or not image.filename:
            raise ValidationFailedError("No image file provided", ["image"])
        if image.content_type not in Config.ALLOWED_IMAGE_TYPES:
            raise ValidationFailedError(f"Unsupported image type: {image.content_type}", ["image"])

        suffix = Path(image.filename).suffix.lower() or mimetypes.guess_extension(image.content_type or "") or ""
        stored_name = f"{uuid.uuid4().hex}{suffix}"
        self._upload_dir.mkdir(parents=True, exist_ok=True)
        target = self._upload_dir / stored_name

        size = 0
        try:
            fh = await run_in_threadpool(target.open, "wb")
            try:
                while chunk := await image.read(CHUNK_SIZE):
                    size += len(chunk)
                    if size > self._max_bytes:
                        raise ValidationFailedError("Image is too large", ["image"])
                    await run_in_threadpool(fh.write, chunk)
            finally:
                await run_in_threadpool(fh.close)
        except ValidationFailedError:
            target.unlink(missing_ok=True)
            raise
        finally:
            await image.close()

        logger.info("Stored chat image %s (%d bytes)", stored_name, size)
        return {
            "url": f"{self._base_url}/{stored_name}",
            "type": "image",
            "filename": image.filename,
            "size": size,
        }
