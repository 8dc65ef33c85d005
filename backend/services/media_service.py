import hashlib
import logging
import os
import time
from pathlib import Path
from typing import Optional

import httpx

from core.config import Settings
from core.errors import UpstreamFailure

logger = logging.getLogger(__name__)


def sign_params(params: dict, api_secret: str) -> str:
    """Cloudinary request signature: sha1 over sorted ``k=v`` pairs + secret."""
    payload = "&".join(f"{k}={params[k]}" for k in sorted(params) if params[k] not in (None, ""))
    return hashlib.sha1(f"{payload}{api_secret}".encode("utf-8")).hexdigest()


def _remove_local_file(path: Path) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove temp upload {path}: {e}")


class MediaUploader:
    """Uploads local files to Cloudinary and returns the hosted URL.

    The local file is always removed afterwards, whether the upload worked
    or not.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._cloud_name = settings.CLOUDINARY_CLOUD_NAME
        self._api_key = settings.CLOUDINARY_API_KEY
        self._api_secret = settings.CLOUDINARY_API_SECRET
        self._folder = settings.CLOUDINARY_FOLDER
        self._base_url = settings.CLOUDINARY_UPLOAD_URL.rstrip("/")
        self._timeout = settings.UPLOAD_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def upload_url(self) -> str:
        return f"{self._base_url}/{self._cloud_name}/auto/upload"

    async def upload(self, local_path) -> str:
        path = Path(local_path)
        try:
            if not path.is_file():
                raise UpstreamFailure(f"Upload source not found: {path.name}", status_code=400)
            if not (self._cloud_name and self._api_key and self._api_secret):
                raise UpstreamFailure("Media storage is not configured")
            params = {"folder": self._folder, "timestamp": str(int(time.time()))}
            data = dict(params, api_key=self._api_key, signature=sign_params(params, self._api_secret))
            try:
                async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                    with open(path, "rb") as fh:
                        response = await client.post(self.upload_url, data=data, files={"file": (path.name, fh)})
                    response.raise_for_status()
                    body = response.json()
            except httpx.HTTPStatusError as e:
                logger.error(f"Media upload rejected ({e.response.status_code}) for {path.name}")
                raise UpstreamFailure("Error uploading file") from e
            except (httpx.HTTPError, ValueError) as e:
                logger.error(f"Media upload failed for {path.name}: {e}")
                raise UpstreamFailure("Error uploading file") from e
            url = body.get("secure_url") or body.get("url")
            if not url:
                raise UpstreamFailure("Upload response did not include a URL")
            logger.info(f"Uploaded {path.name} to media storage")
            return url
        finally:
            _remove_local_file(path)
