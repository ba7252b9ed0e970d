# socialflow/infrastructure/providers/twitter.py
import os
from typing import Optional

from authlib.integrations.httpx_client import OAuth1Auth

from socialflow.infrastructure.provider_client import ProviderHTTPClient

TWITTER_API_KEY = os.getenv("TWITTER_API_KEY")
TWITTER_API_SECRET = os.getenv("TWITTER_API_SECRET")

REQUEST_TOKEN_URL = "https://api.twitter.com/oauth/request_token"
ACCESS_TOKEN_URL = "https://api.twitter.com/oauth/access_token"
AUTHORIZE_URL = "https://api.x.com/oauth/authorize"
ME_URL = "https://api.twitter.com/2/users/me"


class TwitterClient(ProviderHTTPClient):
    """Twitter/X OAuth 1.0a endpoints, every request HMAC-SHA1 signed."""

    provider = "TWITTER"

    def __init__(self, api_key: Optional[str] = None, api_secret: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key or TWITTER_API_KEY
        self.api_secret = api_secret or TWITTER_API_SECRET

    def _auth(self, token=None, token_secret=None, redirect_uri=None, verifier=None) -> OAuth1Auth:
        return OAuth1Auth(
            client_id=self.api_key,
            client_secret=self.api_secret,
            token=token,
            token_secret=token_secret,
            redirect_uri=redirect_uri,
            verifier=verifier,
        )

    async def request_token(self, callback_url: str) -> dict:
        return await self.post_form_encoded(
            REQUEST_TOKEN_URL, "request_token", auth=self._auth(redirect_uri=callback_url)
        )

    async def access_token(self, oauth_token: str, oauth_token_secret: str, verifier: str) -> dict:
        return await self.post_form_encoded(
            ACCESS_TOKEN_URL,
            "access_token",
            auth=self._auth(token=oauth_token, token_secret=oauth_token_secret, verifier=verifier),
        )

    async def me(self, access_token: str, access_token_secret: str) -> dict:
        body = await self.get_json(
            ME_URL,
            "users_me",
            params={"user.fields": "profile_image_url,public_metrics"},
            auth=self._auth(token=access_token, token_secret=access_token_secret),
        )
        return body.get("data") or {}

    async def fetch_metrics(self, tokens: dict, provider_account_id: str) -> dict:
        user = await self.me(tokens["access_token"], tokens["access_token_secret"])
        metrics = user.get("public_metrics") or {}
        return {
            "followers_count": metrics.get("followers_count") or 0,
            "posts_count": metrics.get("tweet_count") or 0,
        }
