from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field

EXPORT_VERSION = "1.0"


class ExportBundle(BaseModel):
    """Plaintext bundle. Only ever exists in memory or inside the ciphertext."""

    model_config = ConfigDict(extra="forbid")

    export_id: str
    tenant_id: str
    user_id: str
    generated_at: str
    expires_at: str
    version: str = EXPORT_VERSION
    data: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)


class ExportMetadata(BaseModel):
    """Stored next to the ciphertext. Holds no password and no raw token."""

    model_config = ConfigDict(extra="forbid")

    export_id: str
    owner_tenant_id: str
    owner_user_id: str
    created_at: str
    expires_at: str
    downloads_remaining: int = Field(ge=0)
    file_path: str


class ExportReceipt(BaseModel):
    """
    Returned exactly once by request_export(). password and download_token
    are excluded from repr.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    export_id: str
    download_token: str = Field(repr=False)
    password: str = Field(repr=False)
    expires_at: str


class DownloadResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    export_id: str
    ciphertext: Dict[str, Any] = Field(repr=False)
    remaining_downloads: int = Field(ge=0)
    expires_at: str
