# socialflow/UAA/utils.py
import os
import uuid
from datetime import timedelta
from ..models.types import utcnow
from typing import Dict, Any, Optional

import structlog
from passlib.context import CryptContext
from jose import jwt, JWTError

logger = structlog.get_logger(__name__)

# Config (env)
SECRET_KEY = os.getenv("SECRET_KEY")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

class JWTConfigurationError(RuntimeError):
    pass

def get_secret_key() -> str:
    if not SECRET_KEY:
        raise JWTConfigurationError("SECRET_KEY is not configured")
    return SECRET_KEY

# --- Password utilities ---
def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError as e:
        logger.warning("password_verify_failed", error=str(e))
        return False

def assert_password_policy(password: str) -> None:
    if len(password) < 8:
        raise ValueError("password must be at least 8 characters")
    if not any(c.isdigit() for c in password):
        raise ValueError("password must include a digit")
    if not any(c.islower() for c in password):
        raise ValueError("password must include a lowercase letter")
    if not any(c.isupper() for c in password):
        raise ValueError("password must include an uppercase letter")

# --- JWT helpers ---
def _now_ts() -> int:
    return int(utcnow().timestamp())

def create_access_token(subject: str, expires_delta: Optional[timedelta] = None) -> Dict[str, Any]:
    jti = str(uuid.uuid4())
    expire = utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = {"sub": subject, "exp": int(expire.timestamp()), "jti": jti, "type": "access", "iat": _now_ts()}
    token = jwt.encode(payload, get_secret_key(), algorithm=ALGORITHM)
    logger.debug("create_access_token", sub=subject, jti=jti, exp=payload["exp"])
    return {"token": token, "jti": jti, "exp": payload["exp"]}

def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, get_secret_key(), algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning("token_decode_failed", error=str(e))
        raise

# --- Redis-backed logout blacklist ---
async def blacklist_access_jti(redis, jti: str, expires_at_ts: int) -> None:
    ttl = max(0, expires_at_ts - _now_ts())
    if ttl <= 0:
        return
    await redis.set(f"auth:blacklist:{jti}", "1", ex=ttl)
    logger.info("access_jti_blacklisted", jti=jti, ttl=ttl)

async def is_access_jti_blacklisted(redis, jti: str) -> bool:
    return await redis.exists(f"auth:blacklist:{jti}") == 1
