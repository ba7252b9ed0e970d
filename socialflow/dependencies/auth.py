# socialflow/dependencies/auth.py
from typing import Optional
from fastapi import Cookie, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlmodel.ext.asyncio.session import AsyncSession

from socialflow.UAA.utils import decode_token, is_access_jti_blacklisted
from socialflow.UAA.repository import UserRepository
from socialflow.dependencies.db import get_session_dep
from socialflow.dependencies.services import get_redis

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def resolve_access_token(bearer: Optional[str], cookie: Optional[str]) -> Optional[str]:
    """Authorization header first, then the session cookie set on login."""
    return bearer or cookie


async def get_current_user(
    bearer: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(None),
    session: AsyncSession = Depends(get_session_dep),
    redis=Depends(get_redis),
):
    token = resolve_access_token(bearer, access_token)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="not authenticated")
    try:
        payload = decode_token(token)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token")

    if payload.get("type") != "access":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token")
    jti = payload.get("jti")
    if jti and await is_access_jti_blacklisted(redis, jti):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="token revoked")

    repo = UserRepository(session)
    user = await repo.get_by_id(payload.get("sub"))
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="user not found")
    return user
