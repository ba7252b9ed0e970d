# socialflow/routers/cron_router.py
import os
import secrets
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, status

from socialflow.dependencies.services import get_stats_refresher, get_token_refresher
from socialflow.schemas.account_schema import RefreshResponse, TokenRefreshResponse
from socialflow.services.stats_service import RefreshScope, StatsRefresher
from socialflow.services.token_refresh_service import TokenRefresher

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/cron", tags=["cron"])


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """External schedulers call with `Authorization: Bearer <CRON_SECRET>`."""
    expected = os.getenv("CRON_SECRET")
    if not expected:
        logger.error("cron_secret_not_configured")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="cron is not configured")
    supplied = (authorization or "").removeprefix("Bearer ").strip()
    if not supplied or not secrets.compare_digest(supplied.encode(), expected.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")


@router.post("/refresh-stats", response_model=RefreshResponse, dependencies=[Depends(verify_cron_secret)])
async def refresh_stats(refresher: StatsRefresher = Depends(get_stats_refresher)):
    results = await refresher.refresh(RefreshScope.ALL_ACTIVE)
    return {"results": results}


@router.post("/refresh-tokens", response_model=TokenRefreshResponse, dependencies=[Depends(verify_cron_secret)])
async def refresh_tokens(refresher: TokenRefresher = Depends(get_token_refresher)):
    results = await refresher.refresh_expiring()
    purged = await refresher.purge_pending()
    return {"results": results, "purged_pending": purged}
