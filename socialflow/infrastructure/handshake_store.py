# socialflow/infrastructure/handshake_store.py
import json
from typing import Any, Dict, Optional

import structlog

from socialflow.infrastructure.token_cipher import TokenCipher, TokenDecryptionError

logger = structlog.get_logger(__name__)

HANDSHAKE_TTL = 600


class PendingHandshakeStore:
    """
    Short-lived records of in-flight OAuth handshakes.

    A record is keyed by the initiating user and a handshake token (the OAuth1
    request token or the OAuth2 state). Payloads are encrypted before they
    reach redis and a record can be consumed only once.
    """

    def __init__(self, redis, cipher: TokenCipher, ttl: int = HANDSHAKE_TTL):
        self.redis = redis
        self.cipher = cipher
        self.ttl = ttl

    @staticmethod
    def key(user_id: str, handshake_token: str) -> str:
        return f"oauth:handshake:{user_id}:{handshake_token}"

    async def put(self, user_id: str, handshake_token: str, payload: Dict[str, Any]) -> bool:
        blob = self.cipher.encrypt(json.dumps(payload))
        stored = await self.redis.set(self.key(user_id, handshake_token), blob, ex=self.ttl, nx=True)
        if not stored:
            logger.warning("handshake_already_exists", user_id=str(user_id))
        return bool(stored)

    async def pop(self, user_id: str, handshake_token: str) -> Optional[Dict[str, Any]]:
        raw = await self.redis.getdel(self.key(user_id, handshake_token))
        if not raw:
            return None
        try:
            return json.loads(self.cipher.decrypt(raw))
        except (TokenDecryptionError, ValueError) as e:
            logger.warning("handshake_payload_unreadable", user_id=str(user_id), error=str(e))
            return None
