# socialflow/routers/accounts_router.py
import os
import uuid
from typing import List, Optional
from urllib.parse import urlencode

import structlog
from fastapi import APIRouter, Cookie, Depends, Response
from fastapi.responses import RedirectResponse

from socialflow.dependencies.auth import get_current_user
from socialflow.dependencies.services import get_account_service, get_connect_service
from socialflow.infrastructure.handshake_store import HANDSHAKE_TTL
from socialflow.infrastructure.provider_client import ProviderAPIError
from socialflow.middleware.errors import error_code
from socialflow.models.connected_account import Provider
from socialflow.schemas.account_schema import AccountRead, ConnectResponse
from socialflow.services.account_service import AccountService
from socialflow.services.connect_service import ConnectService
from socialflow.services.oauth.base import CallbackParams
from socialflow.services.oauth.errors import OAuthFlowError, PersistenceError

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/accounts", tags=["accounts"])

APP_URL = os.getenv("APP_URL", "http://localhost:3000").rstrip("/")
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() == "true"
STATE_COOKIE = "oauth_state"


def parse_provider(value: str) -> Provider:
    try:
        return Provider(value.upper())
    except ValueError:
        raise OAuthFlowError("unsupported_provider", f"Unknown provider: {value}")


def dashboard_redirect(**params) -> RedirectResponse:
    return RedirectResponse(f"{APP_URL}/dashboard?{urlencode(params)}", status_code=302)


@router.get("", response_model=List[AccountRead])
async def list_accounts(current_user=Depends(get_current_user), svc: AccountService = Depends(get_account_service)):
    return await svc.list_accounts(current_user.id)


@router.get("/publishable", response_model=List[AccountRead])
async def publishable_accounts(current_user=Depends(get_current_user), svc: AccountService = Depends(get_account_service)):
    return await svc.publishable_accounts(current_user.id)


@router.get("/connect", response_model=ConnectResponse)
async def connect(
    provider: str,
    response: Response,
    current_user=Depends(get_current_user),
    svc: ConnectService = Depends(get_connect_service),
):
    """Start a provider handshake; the client navigates to auth_url."""
    result = await svc.initiate(current_user.id, parse_provider(provider))
    if result.state:
        response.set_cookie(
            key=STATE_COOKIE,
            value=result.state,
            max_age=HANDSHAKE_TTL,
            httponly=True,
            secure=COOKIE_SECURE,
            samesite="lax",
        )
    return {"provider": result.provider, "auth_url": result.auth_url}


@router.get("/callback/{provider}")
async def callback(
    provider: str,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    oauth_token: Optional[str] = None,
    oauth_verifier: Optional[str] = None,
    denied: Optional[str] = None,
    oauth_state: Optional[str] = Cookie(None),
    current_user=Depends(get_current_user),
    svc: ConnectService = Depends(get_connect_service),
):
    """Provider redirect target. Always answers with a redirect back to the dashboard."""
    params = CallbackParams(
        code=code,
        state=state,
        error=error,
        error_description=error_description,
        oauth_token=oauth_token,
        oauth_verifier=oauth_verifier,
        denied=denied,
        cookie_state=oauth_state,
    )
    try:
        target = parse_provider(provider)
        await svc.complete(current_user.id, target, params)
        redirect = dashboard_redirect(connected=target.value.lower())
    except (OAuthFlowError, ProviderAPIError, PersistenceError) as e:
        reason = error_code(e)
        logger.warning("oauth_callback_failed", provider=provider, user_id=str(current_user.id), error=reason)
        redirect = dashboard_redirect(error=reason)
    redirect.delete_cookie(STATE_COOKIE)
    return redirect


@router.delete("/{account_id}")
async def disconnect(
    account_id: uuid.UUID,
    current_user=Depends(get_current_user),
    svc: AccountService = Depends(get_account_service),
):
    account = await svc.disconnect(current_user.id, account_id)
    return {"status": "disconnected", "id": str(account.id), "provider": account.provider}
