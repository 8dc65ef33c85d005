from typing import Optional
from fastapi import UploadFile
import logging

from core.config import Settings
from core.errors import ApiError, Conflict, NotFound, UpstreamFailure, ValidationError
from core.security import get_password_hash_async
from db.credential_store import CredentialStore
from schemas.user_schema import AccountPublic, RegisterRequest, UpdateAccountRequest
from services.media_service import MediaUploader
from utils.timing import timeit
from utils.uploads import save_upload_to_temp

logger = logging.getLogger(__name__)


def _has_file(upload: Optional[UploadFile]) -> bool:
    return upload is not None and bool(upload.filename)


async def _upload(upload: UploadFile, uploader: MediaUploader, settings: Settings) -> str:
    local_path = await save_upload_to_temp(upload, settings.UPLOAD_TEMP_DIR, settings.MAX_UPLOAD_BYTES)
    return await uploader.upload(local_path)


@timeit("register_user")
async def register_user(payload: RegisterRequest, avatar: Optional[UploadFile], cover_image: Optional[UploadFile],
                        store: CredentialStore, uploader: MediaUploader, settings: Settings) -> AccountPublic:
    """Create an account after uploading its avatar and optional cover image."""
    try:
        if await store.exists(payload.username, payload.email):
            raise Conflict("User with this email or username already exists")
        if not _has_file(avatar):
            raise ValidationError("Avatar file is required")

        avatar_url = await _upload(avatar, uploader, settings)
        cover_url = ""
        if _has_file(cover_image):
            cover_url = await _upload(cover_image, uploader, settings)

        account = await store.create({
            "username": payload.username,
            "email": payload.email,
            "full_name": payload.full_name,
            "avatar": avatar_url,
            "cover_image": cover_url,
            "password_hash": await get_password_hash_async(payload.password),
        })
        logger.info(f"Registered account {account.id} ({account.username})")
        return account.to_public()
    except ApiError:
        # Propagate intended HTTP errors (400/409/502)
        raise
    except Exception as e:
        logger.error(f"Error registering user: {e}")
        raise UpstreamFailure("Something went wrong while registering the user", status_code=500) from e


async def update_account_details(account_id: str, payload: UpdateAccountRequest, store: CredentialStore) -> AccountPublic:
    try:
        account = await store.update_profile(account_id, {"full_name": payload.full_name, "email": payload.email})
        if account is None:
            raise NotFound("User does not exist")
        return account.to_public()
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error updating account {account_id}: {e}")
        raise UpstreamFailure("Internal server error", status_code=500) from e


async def update_media(account_id: str, field: str, upload: Optional[UploadFile], store: CredentialStore,
                       uploader: MediaUploader, settings: Settings) -> AccountPublic:
    """Replace the avatar or cover image URL with a freshly uploaded file."""
    label = "Avatar" if field == "avatar" else "Cover image"
    try:
        if not _has_file(upload):
            raise ValidationError(f"{label} file is missing")
        url = await _upload(upload, uploader, settings)
        account = await store.update_profile(account_id, {field: url})
        if account is None:
            raise NotFound("User does not exist")
        logger.info(f"{label} updated for account {account_id}")
        return account.to_public()
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error updating {field} for account {account_id}: {e}")
        raise UpstreamFailure("Internal server error", status_code=500) from e
