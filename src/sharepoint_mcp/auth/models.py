"""Token models for SharePoint OAuth authentication."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

# Tokens closer than this to expiry are treated as already expired
EXPIRY_MARGIN_SECONDS = 5 * 60


class TokenStatus(str, Enum):
    """State of the persisted token set."""

    VALID = "valid"
    EXPIRED = "expired"
    MISSING = "missing"


class TokenSet(BaseModel):
    """OAuth token set as persisted on disk.

    Serialized with camelCase keys (``accessToken``, ``expiresAt``...) and
    accepts either spelling when loading.

    Attributes:
        access_token: Short-lived bearer credential.
        refresh_token: Credential used to obtain a new access token.
        expires_at: Absolute expiry time of the access token (UTC).
        token_type: Token type reported by the provider, normally "Bearer".
        saved_at: When the set was last written to disk.
    """

    access_token: str = Field(..., alias="accessToken")
    refresh_token: str | None = Field(default=None, alias="refreshToken")
    expires_at: datetime = Field(..., alias="expiresAt")
    token_type: str = Field(default="Bearer", alias="tokenType")
    saved_at: datetime | None = Field(default=None, alias="savedAt")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_token_response(
        cls,
        payload: dict[str, Any],
        previous_refresh_token: str | None = None,
    ) -> "TokenSet":
        """Build a token set from a successful token endpoint response.

        Args:
            payload: Decoded JSON body from the token endpoint.
            previous_refresh_token: Kept when the provider does not rotate it.

        Returns:
            TokenSet with ``expires_at`` computed from ``expires_in``.
        """
        expires_in = int(payload.get("expires_in", 3600))
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or previous_refresh_token,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
            token_type=payload.get("token_type", "Bearer"),
        )

    def is_expired(self, margin_seconds: int = EXPIRY_MARGIN_SECONDS) -> bool:
        """Check whether the access token is expired or about to expire.

        Args:
            margin_seconds: Safety margin before the real expiry.

        Returns:
            True if now is past ``expires_at - margin``.
        """
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) > expires_at - timedelta(seconds=margin_seconds)
