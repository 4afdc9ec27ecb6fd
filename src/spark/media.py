import base64
import logging
import mimetypes
from pathlib import Path

from spark.errors import AttachmentError
from spark.models import InlineData

logger = logging.getLogger(__name__)

MAX_ATTACHMENT_BYTES = 20 * 1024 * 1024
FALLBACK_MIME = "application/octet-stream"


def guess_mime_type(path: str | Path) -> str:
    mime_type, _ = mimetypes.guess_type(str(path))
    return mime_type or FALLBACK_MIME


def load_attachment(path: str | Path) -> InlineData:
    file_path = Path(path).expanduser()
    if not file_path.is_file():
        raise AttachmentError(f"Attachment not found: {file_path}")
    size = file_path.stat().st_size
    if size > MAX_ATTACHMENT_BYTES:
        raise AttachmentError(
            f"Attachment {file_path.name} is {size} bytes; limit is {MAX_ATTACHMENT_BYTES}"
        )
    try:
        raw = file_path.read_bytes()
    except OSError as e:
        raise AttachmentError(f"Failed to read {file_path}: {e}") from e
    return InlineData(
        data=base64.b64encode(raw).decode("ascii"),
        mime_type=guess_mime_type(file_path),
    )


def extension_for(mime_type: str) -> str:
    subtype = mime_type.split("/", 1)[-1] if "/" in mime_type else ""
    return subtype.split(";")[0].strip() or "png"


def save_media(media: InlineData, directory: str | Path, stem: str = "generated-image") -> Path:
    """Write inline media to ``directory`` without overwriting earlier files."""
    out_dir = Path(directory).expanduser()
    out_dir.mkdir(parents=True, exist_ok=True)
    ext = extension_for(media.mime_type)
    target = out_dir / f"{stem}.{ext}"
    counter = 1
    while target.exists():
        target = out_dir / f"{stem}-{counter}.{ext}"
        counter += 1
    target.write_bytes(base64.b64decode(media.data))
    logger.info(f"Saved {media.mime_type} to {target}")
    return target
