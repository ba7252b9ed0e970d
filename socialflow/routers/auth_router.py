# socialflow/routers/auth_router.py
from fastapi import APIRouter, Depends, HTTPException, status, Response, Cookie
from fastapi.security import OAuth2PasswordBearer
from sqlmodel.ext.asyncio.session import AsyncSession
from typing import Optional
import structlog
import os

from ..dependencies.db import get_session_dep
from ..dependencies.services import get_rate_limiter, get_redis
from ..infrastructure.rate_limiter import AUTH_POLICY, FixedWindowRateLimiter
from ..UAA.repository import UserRepository
from ..UAA.services import UserService, AuthenticationError
from ..UAA.schemas import UserCreate, UserLogin, Token
from ..models.types import utcnow

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])

# cookie config (in prod set secure=True)
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() == "true"
COOKIE_SAMESITE = os.getenv("COOKIE_SAMESITE", "lax")

optional_bearer = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def auth_limit_key(action: str, email: str) -> str:
    return f"auth:{action}:{email.lower()}"


@router.post("/register", response_model=dict, status_code=status.HTTP_201_CREATED)
async def register(
    user_in: UserCreate,
    session: AsyncSession = Depends(get_session_dep),
    redis=Depends(get_redis),
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
):
    await limiter.check(auth_limit_key("register", user_in.email), AUTH_POLICY)
    svc = UserService(UserRepository(session), redis)
    try:
        created = await svc.register_user(user_in)
        return {"id": str(created.id), "email": created.email, "username": created.username}
    except ValueError as e:
        logger.info("register_validation_failed", error=str(e), email=user_in.email)
        raise HTTPException(status_code=400, detail=str(e))

@router.post("/login", response_model=Token)
async def login(
    form_data: UserLogin,
    response: Response,
    session: AsyncSession = Depends(get_session_dep),
    redis=Depends(get_redis),
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
):
    """
    Expects JSON: {"email": "...", "password": "..."}
    Returns the access token in the body and also sets it as an HttpOnly cookie,
    which is what authenticates the browser on OAuth provider callbacks.
    """
    await limiter.check(auth_limit_key("login", form_data.email), AUTH_POLICY)
    svc = UserService(UserRepository(session), redis)
    try:
        user = await svc.authenticate_user(form_data.email, form_data.password)
    except AuthenticationError as e:
        # Do not reveal whether email exists
        logger.warning("login_failed", reason=str(e), email=form_data.email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    access = svc.issue_access_token(user)
    cookie_max_age = max(0, access["exp"] - int(utcnow().timestamp()))
    response.set_cookie(
        key="access_token",
        value=access["token"],
        httponly=True,
        secure=COOKIE_SECURE,
        samesite=COOKIE_SAMESITE,
        max_age=cookie_max_age,
    )
    return {"access_token": access["token"], "token_type": "bearer", "expires_in": cookie_max_age}

@router.post("/logout")
async def logout(
    response: Response,
    bearer: Optional[str] = Depends(optional_bearer),
    access_token: Optional[str] = Cookie(None),
    session: AsyncSession = Depends(get_session_dep),
    redis=Depends(get_redis),
):
    """Blacklists the presented access token until it expires and clears the cookie."""
    svc = UserService(UserRepository(session), redis)
    await svc.logout(bearer or access_token)
    response.delete_cookie("access_token")
    return {"ok": True}
