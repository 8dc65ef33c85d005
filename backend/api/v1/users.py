from typing import Optional
from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import ValidationError as PydanticValidationError
from api.dependencies import get_credential_store, get_current_account, get_media_uploader, settings_dependency
from core.config import Settings
from core.errors import ValidationError
from db.credential_store import CredentialStore
from schemas.user_schema import AccountInDB, RegisterRequest, UpdateAccountRequest
from services.media_service import MediaUploader
from services.user_service import register_user, update_account_details, update_media
from utils.responses import api_response, summarize_validation_errors
from utils.timing import timeit

router = APIRouter()

@router.post("/register")
@timeit("register")
async def register(
    full_name: Optional[str] = Form(None, alias="fullName"),
    email: Optional[str] = Form(None),
    username: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    store: CredentialStore = Depends(get_credential_store),
    uploader: MediaUploader = Depends(get_media_uploader),
    settings: Settings = Depends(settings_dependency),
):
    try:
        payload = RegisterRequest(fullName=full_name, email=email, username=username, password=password)
    except PydanticValidationError as e:
        errors = summarize_validation_errors(e.errors(include_url=False, include_context=False, include_input=False))
        raise ValidationError(errors[0]["msg"] if errors else None, errors=errors)
    account = await register_user(payload, avatar, cover_image, store, uploader, settings)
    return api_response(account, "User registered successfully", status_code=201)

@router.get("/current-user")
@timeit("current_user")
async def current_user(account: AccountInDB = Depends(get_current_account)):
    return api_response(account.to_public(), "Current user fetched successfully")

@router.patch("/update-account")
@timeit("update_account")
async def update_account(payload: UpdateAccountRequest, account: AccountInDB = Depends(get_current_account),
                         store: CredentialStore = Depends(get_credential_store)):
    updated = await update_account_details(account.id, payload, store)
    return api_response(updated, "Account details updated successfully")

@router.patch("/avatar")
@timeit("update_avatar")
async def update_avatar(avatar: Optional[UploadFile] = File(None), account: AccountInDB = Depends(get_current_account),
                        store: CredentialStore = Depends(get_credential_store),
                        uploader: MediaUploader = Depends(get_media_uploader),
                        settings: Settings = Depends(settings_dependency)):
    updated = await update_media(account.id, "avatar", avatar, store, uploader, settings)
    return api_response(updated, "Avatar updated successfully")

@router.patch("/cover-image")
@timeit("update_cover_image")
async def update_cover_image(cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
                             account: AccountInDB = Depends(get_current_account),
                             store: CredentialStore = Depends(get_credential_store),
                             uploader: MediaUploader = Depends(get_media_uploader),
                             settings: Settings = Depends(settings_dependency)):
    updated = await update_media(account.id, "cover_image", cover_image, store, uploader, settings)
    return api_response(updated, "Cover image updated successfully")
