import re
import uuid
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from core.errors import ValidationError

CHUNK_SIZE = 1024 * 1024


def safe_filename(raw: Optional[str]) -> str:
    name = re.sub(r"[^\w\-_\. ]", "_", raw or "untitled").lstrip(".")[:200]
    return name or "untitled"


async def save_upload_to_temp(upload: UploadFile, temp_dir: str, max_bytes: int) -> Path:
    """Stream an uploaded file into ``temp_dir`` and return its path."""
    dest_dir = Path(temp_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)
    dest = dest_dir / f"{uuid.uuid4().hex}_{safe_filename(upload.filename)}"
    written = 0
    try:
        with open(dest, "wb") as f:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise ValidationError("File too large", status_code=413)
                f.write(chunk)
    except Exception:
        dest.unlink(missing_ok=True)
        raise
    finally:
        await upload.close()
    if written == 0:
        dest.unlink(missing_ok=True)
        raise ValidationError(f"{upload.filename or 'file'} is empty")
    return dest
