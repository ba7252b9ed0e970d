# socialflow/infrastructure/providers/tiktok.py
import os
from typing import Optional

from socialflow.infrastructure.provider_client import ProviderHTTPClient

TIKTOK_CLIENT_KEY = os.getenv("TIKTOK_CLIENT_KEY")
TIKTOK_CLIENT_SECRET = os.getenv("TIKTOK_CLIENT_SECRET")

AUTHORIZE_URL = "https://www.tiktok.com/v2/auth/authorize/"
TOKEN_URL = "https://open.tiktokapis.com/v2/oauth/token/"
REVOKE_URL = "https://open.tiktokapis.com/v2/oauth/revoke/"
USER_INFO_URL = "https://open.tiktokapis.com/v2/user/info/"

USER_FIELDS = "open_id,display_name,username,avatar_url,follower_count,video_count,profile_deep_link"

FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded", "Cache-Control": "no-cache"}


class TikTokClient(ProviderHTTPClient):
    provider = "TIKTOK"

    def __init__(self, client_key: Optional[str] = None, client_secret: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.client_key = client_key or TIKTOK_CLIENT_KEY
        self.client_secret = client_secret or TIKTOK_CLIENT_SECRET

    async def exchange_code(self, code: str, redirect_uri: str) -> dict:
        return await self.post_json(
            TOKEN_URL,
            "code_exchange",
            headers=FORM_HEADERS,
            data={
                "client_key": self.client_key,
                "client_secret": self.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri,
            },
        )

    async def refresh(self, refresh_token: str) -> dict:
        return await self.post_json(
            TOKEN_URL,
            "token_refresh",
            headers=FORM_HEADERS,
            data={
                "client_key": self.client_key,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
        )

    async def revoke(self, access_token: str) -> None:
        await self.request(
            "POST",
            REVOKE_URL,
            "revoke",
            headers=FORM_HEADERS,
            data={"client_key": self.client_key, "client_secret": self.client_secret, "token": access_token},
        )

    async def user_info(self, access_token: str) -> dict:
        body = await self.get_json(
            USER_INFO_URL,
            "user_info",
            params={"fields": USER_FIELDS},
            headers={"Authorization": f"Bearer {access_token}"},
        )
        return (body.get("data") or {}).get("user") or {}

    async def fetch_metrics(self, tokens: dict, provider_account_id: str) -> dict:
        user = await self.user_info(tokens["access_token"])
        return {
            "followers_count": user.get("follower_count") or 0,
            "posts_count": user.get("video_count") or 0,
        }
