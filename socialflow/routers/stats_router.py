# socialflow/routers/stats_router.py
from fastapi import APIRouter, Depends

from socialflow.dependencies.auth import get_current_user
from socialflow.dependencies.services import get_stats_refresher
from socialflow.routers.accounts_router import parse_provider
from socialflow.schemas.account_schema import RefreshResponse
from socialflow.services.oauth.errors import AccountNotFoundError
from socialflow.services.stats_service import RefreshScope, StatsRefresher

router = APIRouter(prefix="/stats", tags=["stats"])


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_all(current_user=Depends(get_current_user), refresher: StatsRefresher = Depends(get_stats_refresher)):
    results = await refresher.refresh(RefreshScope.ALL_FOR_USER, user_id=current_user.id)
    return {"results": results}


@router.post("/{provider}/refresh", response_model=RefreshResponse)
async def refresh_provider(
    provider: str,
    current_user=Depends(get_current_user),
    refresher: StatsRefresher = Depends(get_stats_refresher),
):
    target = parse_provider(provider)
    results = await refresher.refresh(RefreshScope.ALL_FOR_USER, user_id=current_user.id, provider=target)
    if not results:
        raise AccountNotFoundError(target.value, f"No active {target.value.lower()} account connected")
    return {"results": results}
