# socialflow/services/oauth/base.py
import enum
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Tuple

import httpx
import structlog

from socialflow.infrastructure.handshake_store import PendingHandshakeStore
from socialflow.models.connected_account import OAuthVersion, Provider
from socialflow.models.types import utcnow
from socialflow.services.oauth.errors import (
    OAuthFlowError,
    ProviderNotConfiguredError,
    SessionExpiredError,
)

logger = structlog.get_logger(__name__)


class FlowState(str, enum.Enum):
    INITIATED = "INITIATED"
    AWAITING_PROVIDER_REDIRECT = "AWAITING_PROVIDER_REDIRECT"
    CALLBACK_RECEIVED = "CALLBACK_RECEIVED"
    EXCHANGED = "EXCHANGED"
    PROFILE_FETCHED = "PROFILE_FETCHED"
    PERSISTED = "PERSISTED"
    FAILED = "FAILED"


@dataclass
class InitiationResult:
    provider: Provider
    auth_url: str
    state: Optional[str] = None  # OAuth2 only, mirrored into the state cookie


@dataclass
class CallbackParams:
    """Query string of a provider redirect plus the state cookie."""

    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None
    oauth_token: Optional[str] = None
    oauth_verifier: Optional[str] = None
    denied: Optional[str] = None
    cookie_state: Optional[str] = None


@dataclass
class ProviderCredential:
    """Plaintext result of a completed handshake; lives only in request memory."""

    provider: Provider
    provider_account_id: str
    access_token: str
    oauth_version: OAuthVersion
    access_token_secret: Optional[str] = None
    refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    scope: Optional[str] = None
    username: Optional[str] = None
    display_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    profile_url: Optional[str] = None
    locale: Optional[str] = None
    timezone: Optional[str] = None
    followers_count: Optional[int] = None
    posts_count: Optional[int] = None
    meta: dict = field(default_factory=dict)


def expires_at(expires_in) -> Optional[datetime]:
    if not expires_in:
        return None
    return utcnow() + timedelta(seconds=int(expires_in))


class OAuthExchanger(ABC):
    provider: Provider
    oauth_version: OAuthVersion

    def __init__(self, handshakes: PendingHandshakeStore):
        self.handshakes = handshakes

    def log_state(self, state: FlowState, user_id, **kw) -> None:
        logger.info("oauth_state", provider=self.provider.value, state=state.value, user_id=str(user_id), **kw)

    def require_config(self, **values) -> None:
        missing = [name for name, value in values.items() if not value]
        if missing:
            self.log_state(FlowState.FAILED, "-", reason="not_configured")
            raise ProviderNotConfiguredError(self.provider.value, ", ".join(missing))

    def fail(self, code: str, message: str) -> OAuthFlowError:
        return OAuthFlowError(code, message, provider=self.provider.value)

    @abstractmethod
    async def initiate(self, user_id) -> InitiationResult:
        ...

    @abstractmethod
    async def complete(self, user_id, params: CallbackParams) -> ProviderCredential:
        ...


class OAuth1Exchanger(OAuthExchanger):
    """Request-token / verifier handshake; the request token doubles as the handshake token."""

    oauth_version = OAuthVersion.OAUTH1

    async def claim_request_secret(self, user_id, params: CallbackParams) -> Tuple[str, str, str]:
        """Validate the callback and consume the stored request-token secret."""
        self.log_state(FlowState.CALLBACK_RECEIVED, user_id)
        if params.denied:
            raise self.fail(f"{self.provider.value.lower()}_denied", "Authorization was denied on the provider site.")
        if not params.oauth_token or not params.oauth_verifier:
            raise self.fail("missing_params", "The callback is missing oauth_token or oauth_verifier.")

        handshake = await self.handshakes.pop(str(user_id), params.oauth_token)
        if not handshake or handshake.get("provider") != self.provider.value or not handshake.get("secret"):
            self.log_state(FlowState.FAILED, user_id, reason="session_expired")
            raise SessionExpiredError(self.provider.value)
        return params.oauth_token, handshake["secret"], params.oauth_verifier


class OAuth2Exchanger(OAuthExchanger):
    """
    Authorization-code handshake. initiate() issues a random state that is both
    stored as the handshake token and returned for the anti-CSRF cookie.
    """

    oauth_version = OAuthVersion.OAUTH2
    authorize_url: str = ""
    scopes: Tuple[str, ...] = ()
    client_id_param = "client_id"
    scope_separator = ","

    def __init__(self, handshakes: PendingHandshakeStore, client_id: Optional[str], client_secret: Optional[str], redirect_uri: Optional[str]):
        super().__init__(handshakes)
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri

    def check_config(self) -> None:
        self.require_config(client_id=self.client_id, client_secret=self.client_secret, redirect_uri=self.redirect_uri)

    def authorize_params(self, state: str) -> dict:
        return {
            self.client_id_param: self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": self.scope_separator.join(self.scopes),
            "state": state,
        }

    async def initiate(self, user_id) -> InitiationResult:
        self.check_config()
        self.log_state(FlowState.INITIATED, user_id)
        state = secrets.token_urlsafe(32)
        await self.handshakes.put(str(user_id), state, {"provider": self.provider.value})
        url = httpx.URL(self.authorize_url).copy_merge_params(self.authorize_params(state))
        self.log_state(FlowState.AWAITING_PROVIDER_REDIRECT, user_id)
        return InitiationResult(provider=self.provider, auth_url=str(url), state=state)

    async def complete(self, user_id, params: CallbackParams) -> ProviderCredential:
        self.check_config()
        self.log_state(FlowState.CALLBACK_RECEIVED, user_id)
        if params.error:
            raise self.fail(
                f"{self.provider.value.lower()}_denied",
                params.error_description or f"Authorization was denied: {params.error}",
            )
        if not params.code or not params.state:
            raise self.fail("missing_params", "The callback is missing code or state.")
        if not params.cookie_state or not secrets.compare_digest(params.cookie_state.encode(), params.state.encode()):
            self.log_state(FlowState.FAILED, user_id, reason="state_mismatch")
            raise self.fail("state_mismatch", "Security verification failed: state does not match.")

        handshake = await self.handshakes.pop(str(user_id), params.state)
        if not handshake:
            self.log_state(FlowState.FAILED, user_id, reason="session_expired")
            raise SessionExpiredError(self.provider.value)
        if handshake.get("provider") != self.provider.value:
            raise self.fail("provider_mismatch", "The authorization session belongs to a different provider.")

        credential = await self.exchange(user_id, params.code)
        self.log_state(FlowState.PROFILE_FETCHED, user_id, provider_account_id=credential.provider_account_id)
        return credential

    @abstractmethod
    async def exchange(self, user_id, code: str) -> ProviderCredential:
        """Code -> tokens -> verified profile. Raises on any failed hop."""
