"""Pydantic models for the payloads exchanged with the backends.

Only envelopes live here. The domain entities they carry are parsed by
``nowandlater.models`` once the envelope has been validated.
"""
from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Legacy transport
# =============================================================================

class LegacyRequest(BaseModel):
    """Body POSTed to the legacy endpoint."""
    action: str
    parameters: List[Any] = Field(default_factory=list)
    token: str = ""


class LegacyEnvelope(BaseModel):
    """``{success, data?, message?}`` as returned by the legacy endpoint."""
    model_config = ConfigDict(extra="allow")

    success: bool
    data: Any = None
    message: Optional[str] = None
    version: Optional[str] = None


# =============================================================================
# Modern transport
# =============================================================================

class ModernEnvelope(BaseModel):
    """``{success, data?, error?}`` as returned by the REST backend."""
    model_config = ConfigDict(extra="allow")

    success: bool = True
    data: Any = None
    error: Optional[str] = None


class CacheInvalidationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cache_keys: List[str] = Field(..., alias="cacheKeys", min_length=1)


# =============================================================================
# Token refresh
# =============================================================================

class RefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = Field(..., alias="refreshToken", min_length=1)


class RefreshedTokens(BaseModel):
    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: Optional[str] = None


class RefreshResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    success: bool
    tokens: Optional[RefreshedTokens] = None
    error: Optional[str] = None
