# socialflow/infrastructure/providers/facebook.py
import os
from typing import List, Optional

from socialflow.infrastructure.provider_client import ProviderHTTPClient

FACEBOOK_APP_ID = os.getenv("FACEBOOK_APP_ID")
FACEBOOK_APP_SECRET = os.getenv("FACEBOOK_APP_SECRET")

GRAPH_VERSION = "v22.0"
AUTHORIZE_URL = f"https://www.facebook.com/{GRAPH_VERSION}/dialog/oauth"
GRAPH_URL = f"https://graph.facebook.com/{GRAPH_VERSION}"


class FacebookClient(ProviderHTTPClient):
    """Facebook Graph API: user login, pages, and Instagram business accounts linked to pages."""

    provider = "FACEBOOK"

    def __init__(self, app_id: Optional[str] = None, app_secret: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.app_id = app_id or FACEBOOK_APP_ID
        self.app_secret = app_secret or FACEBOOK_APP_SECRET

    async def exchange_code(self, code: str, redirect_uri: str) -> dict:
        return await self.get_json(
            f"{GRAPH_URL}/oauth/access_token",
            "code_exchange",
            params={
                "client_id": self.app_id,
                "client_secret": self.app_secret,
                "redirect_uri": redirect_uri,
                "code": code,
            },
        )

    async def exchange_long_lived(self, short_lived_token: str) -> dict:
        return await self.get_json(
            f"{GRAPH_URL}/oauth/access_token",
            "long_lived_exchange",
            params={
                "grant_type": "fb_exchange_token",
                "client_id": self.app_id,
                "client_secret": self.app_secret,
                "fb_exchange_token": short_lived_token,
            },
        )

    async def me(self, access_token: str) -> dict:
        return await self.get_json(
            f"{GRAPH_URL}/me", "profile", params={"fields": "id,name,email,picture", "access_token": access_token}
        )

    async def pages(self, access_token: str) -> List[dict]:
        body = await self.get_json(f"{GRAPH_URL}/me/accounts", "pages", params={"access_token": access_token})
        return body.get("data") or []

    async def page_instagram_account_id(self, page_id: str, access_token: str) -> Optional[str]:
        body = await self.get_json(
            f"{GRAPH_URL}/{page_id}",
            "page_lookup",
            params={"fields": "instagram_business_account", "access_token": access_token},
        )
        linked = body.get("instagram_business_account") or {}
        return linked.get("id")

    async def instagram_business_profile(self, ig_account_id: str, access_token: str) -> dict:
        return await self.get_json(
            f"{GRAPH_URL}/{ig_account_id}",
            "instagram_profile",
            params={
                "fields": "id,username,name,profile_picture_url,followers_count,media_count",
                "access_token": access_token,
            },
        )

    async def refresh_long_lived(self, access_token: str) -> dict:
        # fb_exchange_token also accepts a long-lived token
        return await self.exchange_long_lived(access_token)

    async def fetch_metrics(self, tokens: dict, provider_account_id: str) -> dict:
        """Counts for an Instagram business account reached through a Facebook Page."""
        profile = await self.get_json(
            f"{GRAPH_URL}/{provider_account_id}",
            "metrics",
            params={"fields": "followers_count,media_count", "access_token": tokens["access_token"]},
        )
        return {
            "followers_count": profile.get("followers_count") or 0,
            "posts_count": profile.get("media_count") or 0,
        }
