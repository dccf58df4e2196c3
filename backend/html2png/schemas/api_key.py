from datetime import datetime

from pydantic import BaseModel, Field


class ApiKeyCreateRequest(BaseModel):
    name: str | None = Field(default=None, max_length=120)


class ApiKeyCreateResponse(BaseModel):
    id: int
    key_prefix: str
    name: str | None
    created_at: datetime
    # Shown once; only its hash is stored.
    api_key: str
    message: str = "API key created. Save this key - it will not be shown again."


class ApiKeyListItem(BaseModel):
    id: int
    key_prefix: str
    name: str | None
    created_at: datetime
    last_used_at: datetime | None

    class Config:
        from_attributes = True
