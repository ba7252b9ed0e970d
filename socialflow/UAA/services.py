# socialflow/UAA/services.py
from typing import Optional
import structlog
from jose import JWTError

from .models import User
from .repository import UserRepository
from .schemas import UserCreate
from . import utils

logger = structlog.get_logger(__name__)

# brute-force constants
LOGIN_ATTEMPT_WINDOW_SECONDS = 300
MAX_LOGIN_ATTEMPTS = 5
LOCKOUT_SECONDS = 300

class AuthenticationError(Exception):
    pass

class UserService:
    def __init__(self, repo: UserRepository, redis):
        self.repo = repo
        self.redis = redis

    async def register_user(self, user_in: UserCreate) -> User:
        utils.assert_password_policy(user_in.password)
        existing = await self.repo.get_by_email(user_in.email)
        if existing:
            logger.debug("register_email_exists", email=user_in.email)
            raise ValueError("email already registered")

        existing_username = await self.repo.get_by_username(user_in.username)
        if existing_username:
            logger.debug("register_username_exists", username=user_in.username)
            raise ValueError("username already taken")

        hashed = utils.hash_password(user_in.password)
        user = User(email=user_in.email, username=user_in.username, hashed_password=hashed)
        created = await self.repo.create(user)
        logger.info("user_registered", user_id=str(created.id), email=created.email)
        return created

    async def _is_locked(self, user_id: str) -> bool:
        return await self.redis.exists(f"la:lock:{user_id}") == 1

    async def _increment_login_attempts(self, user_id: str) -> int:
        key = f"la:attempts:{user_id}"
        attempts = await self.redis.incr(key)
        if attempts == 1:
            await self.redis.expire(key, LOGIN_ATTEMPT_WINDOW_SECONDS)
        if attempts >= MAX_LOGIN_ATTEMPTS:
            await self.redis.set(f"la:lock:{user_id}", "1", ex=LOCKOUT_SECONDS)
            logger.warning("user_locked_due_to_failed_logins", user_id=user_id)
        return attempts

    async def _reset_login_attempts(self, user_id: str) -> None:
        await self.redis.delete(f"la:attempts:{user_id}")
        await self.redis.delete(f"la:lock:{user_id}")

    async def authenticate_user(self, email: str, password: str) -> User:
        user = await self.repo.get_by_email(email)
        if not user:
            logger.debug("auth_failed_unknown_email", email=email)
            raise AuthenticationError("invalid credentials")

        if not user.is_active:
            logger.info("auth_attempt_on_inactive_user", user_id=str(user.id))
            raise AuthenticationError("invalid credentials")

        if await self._is_locked(str(user.id)):
            logger.warning("auth_attempt_on_locked_user", user_id=str(user.id))
            raise AuthenticationError("account temporarily locked due to failed login attempts")

        if not utils.verify_password(password, user.hashed_password):
            attempts = await self._increment_login_attempts(str(user.id))
            logger.info("auth_failed_wrong_password", user_id=str(user.id), attempts=attempts)
            raise AuthenticationError("invalid credentials")

        await self._reset_login_attempts(str(user.id))
        await self.repo.touch_last_login(user)
        logger.info("auth_success", user_id=str(user.id), email=user.email)
        return user

    def issue_access_token(self, user: User) -> dict:
        access = utils.create_access_token(str(user.id))
        logger.info("token_issued", user_id=str(user.id), access_jti=access["jti"])
        return access

    async def logout(self, access_token: Optional[str]) -> None:
        if not access_token:
            return
        try:
            payload = utils.decode_token(access_token)
        except JWTError:
            return
        jti = payload.get("jti")
        exp = payload.get("exp")
        if payload.get("type") == "access" and jti and exp:
            await utils.blacklist_access_jti(self.redis, jti, exp)
            logger.info("access_blacklisted_on_logout", jti=jti, user_id=payload.get("sub"))
