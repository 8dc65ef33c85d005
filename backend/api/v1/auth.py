from typing import Optional
from fastapi import APIRouter, Body, Depends, Request
from api.dependencies import get_current_account, get_session_manager, settings_dependency
from core.config import Settings
from schemas.user_schema import AccountInDB, ChangePasswordRequest, LoginRequest, RefreshRequest
from services.session_service import SessionManager
from utils.responses import REFRESH_TOKEN_COOKIE, api_response, clear_auth_cookies, set_auth_cookies
from utils.timing import timeit

router = APIRouter()

@router.post("/login")
@timeit("login")
async def login(payload: LoginRequest, sessions: SessionManager = Depends(get_session_manager),
                settings: Settings = Depends(settings_dependency)):
    result = await sessions.login(payload.identifier, payload.password)
    response = api_response(result, "User logged in successfully")
    return set_auth_cookies(response, result.access_token, result.refresh_token, settings)

@router.post("/logout")
@timeit("logout")
async def logout(account: AccountInDB = Depends(get_current_account),
                 sessions: SessionManager = Depends(get_session_manager),
                 settings: Settings = Depends(settings_dependency)):
    await sessions.logout(account.id)
    return clear_auth_cookies(api_response({}, "User logged out"), settings)

@router.post("/refresh-token")
@timeit("refresh_token")
async def refresh_token(request: Request, payload: Optional[RefreshRequest] = Body(None),
                        sessions: SessionManager = Depends(get_session_manager),
                        settings: Settings = Depends(settings_dependency)):
    presented = request.cookies.get(REFRESH_TOKEN_COOKIE) or (payload.refresh_token if payload else None)
    result = await sessions.refresh(presented)
    response = api_response(result, "Access token refreshed")
    return set_auth_cookies(response, result.access_token, result.refresh_token, settings)

@router.post("/change-password")
@timeit("change_password")
async def change_password(payload: ChangePasswordRequest, account: AccountInDB = Depends(get_current_account),
                          sessions: SessionManager = Depends(get_session_manager),
                          settings: Settings = Depends(settings_dependency)):
    await sessions.change_password(account.id, payload.old_password, payload.new_password)
    # The stored refresh token is gone, so drop the cookies too
    return clear_auth_cookies(api_response({}, "Password changed successfully"), settings)
