# socialflow/services/oauth/errors.py
from typing import Optional


class OAuthFlowError(Exception):
    """
    A connect/callback step failed in a way the user has to restart from.
    `code` is stable and ends up in the JSON body or the ?error= redirect flag.
    """

    status_code = 400

    def __init__(self, code: str, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.provider = provider


class ProviderNotConfiguredError(OAuthFlowError):
    status_code = 500

    def __init__(self, provider: str, missing: str):
        super().__init__(
            "provider_not_configured",
            f"{provider} OAuth is not configured (missing {missing})",
            provider=provider,
        )


class SessionExpiredError(OAuthFlowError):
    def __init__(self, provider: str):
        super().__init__(
            "session_expired",
            "The authorization session expired or was already used. Start the connection again.",
            provider=provider,
        )


class PersistenceError(Exception):
    status_code = 500

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.code = "persistence_failed"
        self.message = message
        self.provider = provider


class AccountNotFoundError(Exception):
    status_code = 404

    def __init__(self, provider: Optional[str] = None, message: str = "Connected account not found"):
        super().__init__(message)
        self.code = "account_not_found"
        self.message = message
        self.provider = provider
