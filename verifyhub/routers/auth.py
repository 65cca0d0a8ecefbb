from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from verifyhub.core.config import get_settings
from verifyhub.core.security import create_session_token
from verifyhub.db.store import Store
from verifyhub.deps import SESSION_COOKIE_NAME, get_current_user, get_store
from verifyhub.models.user import User
from verifyhub.services import users as user_service

router = APIRouter()


class LoginRequest(BaseModel):
    username: str
    password: str = Field(max_length=72)


class SignupRequest(BaseModel):
    username: str = Field(min_length=3, max_length=254)
    password: str = Field(min_length=4, max_length=72)


@router.post("/login")
async def auth_login(body: LoginRequest, response: Response, store: Store = Depends(get_store)):
    """Check credentials; set httpOnly session cookie and return the token for Bearer use."""
    user = await user_service.authenticate(store, body.username, body.password)
    token = create_session_token(user_service.session_payload_for_user(user))
    settings = get_settings()
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.session_max_age_seconds,
        httponly=True,
        secure=settings.env == "production",
        samesite="lax",
        path="/",
    )
    return {"token": token, "user": user.public()}


@router.post("/signup")
async def auth_signup(body: SignupRequest, store: Store = Depends(get_store)):
    """Request an account; it stays pending until an admin activates it."""
    await user_service.signup(store, body.username, body.password)
    return {"success": True}


@router.get("/me")
async def auth_me(user: User = Depends(get_current_user)):
    return user.public()


@router.post("/logout")
async def auth_logout(response: Response):
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return {"success": True}
