# socialflow/infrastructure/providers/instagram.py
import os
from typing import Optional

from socialflow.infrastructure.provider_client import ProviderHTTPClient

INSTAGRAM_APP_ID = os.getenv("INSTAGRAM_APP_ID")
INSTAGRAM_APP_SECRET = os.getenv("INSTAGRAM_APP_SECRET")

AUTHORIZE_URL = "https://www.instagram.com/oauth/authorize"
TOKEN_URL = "https://api.instagram.com/oauth/access_token"
GRAPH_URL = "https://graph.instagram.com"
GRAPH_VERSION = "v22.0"

PROFILE_FIELDS = "id,username,name,profile_picture_url,account_type,followers_count,media_count"


class InstagramClient(ProviderHTTPClient):
    """Instagram API with Instagram Login (graph.instagram.com)."""

    provider = "INSTAGRAM"

    def __init__(self, app_id: Optional[str] = None, app_secret: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.app_id = app_id or INSTAGRAM_APP_ID
        self.app_secret = app_secret or INSTAGRAM_APP_SECRET

    async def exchange_code(self, code: str, redirect_uri: str) -> dict:
        return await self.post_json(
            TOKEN_URL,
            "code_exchange",
            data={
                "client_id": self.app_id,
                "client_secret": self.app_secret,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri,
                "code": code,
            },
        )

    async def exchange_long_lived(self, short_lived_token: str) -> dict:
        return await self.get_json(
            f"{GRAPH_URL}/access_token",
            "long_lived_exchange",
            params={
                "grant_type": "ig_exchange_token",
                "client_secret": self.app_secret,
                "access_token": short_lived_token,
            },
        )

    async def refresh_long_lived(self, access_token: str) -> dict:
        return await self.get_json(
            f"{GRAPH_URL}/refresh_access_token",
            "token_refresh",
            params={"grant_type": "ig_refresh_token", "access_token": access_token},
        )

    async def me(self, access_token: str) -> dict:
        return await self.get_json(
            f"{GRAPH_URL}/me", "profile", params={"fields": PROFILE_FIELDS, "access_token": access_token}
        )

    async def fetch_metrics(self, tokens: dict, provider_account_id: str) -> dict:
        user = await self.get_json(
            f"{GRAPH_URL}/{GRAPH_VERSION}/{provider_account_id}",
            "metrics",
            params={"fields": "followers_count,media_count", "access_token": tokens["access_token"]},
        )
        return {
            "followers_count": user.get("followers_count") or 0,
            "posts_count": user.get("media_count") or 0,
        }
