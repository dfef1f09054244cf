"""Pydantic schemas for API key management"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

KNOWN_PERMISSIONS = ("send", "receive", "webhooks")


def _check_permissions(permissions: List[str]) -> List[str]:
    unknown = [p for p in permissions if p not in KNOWN_PERMISSIONS]
    if unknown:
        raise ValueError(f"Unknown permissions: {', '.join(unknown)}")
    # De-duplicate, keep the caller's order
    return list(dict.fromkeys(permissions))


class CreateApiKeyRequest(BaseModel):
    domainId: str = Field(min_length=1)
    keyName: str = Field(min_length=1, max_length=255)
    permissions: List[str] = Field(default_factory=lambda: ["send"])

    @field_validator("permissions")
    @classmethod
    def validate_permissions(cls, v):
        return _check_permissions(v)


class UpdateApiKeyRequest(BaseModel):
    permissions: List[str] = Field(min_length=1)

    @field_validator("permissions")
    @classmethod
    def validate_permissions(cls, v):
        return _check_permissions(v)


class ApiKeyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    domain_id: str
    domain: Optional[str] = None
    key_name: str
    key_prefix: str
    permissions: List[str]
    last_used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class CreatedApiKeyResponse(ApiKeyResponse):
    key: str  # Plaintext, returned exactly once


class ApiKeyCreateResult(BaseModel):
    apiKey: CreatedApiKeyResponse
    message: str = "API key created successfully. Save it securely - it will not be shown again."


class ApiKeyListResponse(BaseModel):
    apiKeys: List[ApiKeyResponse]


class ApiKeyUpdateResult(BaseModel):
    apiKey: ApiKeyResponse
    message: str = "API key permissions updated successfully"
