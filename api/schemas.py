from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConversationKind(str, Enum):
    workspace = "workspace"
    vault = "vault"


def envelope(data: Any) -> dict:
    return {"success": True, "data": data, "error": None}


class WorkspaceCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)


class VaultCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    is_public: bool = False


class MessageUpdate(BaseModel):
    is_upvoted: Optional[bool] = None
    metadata: Optional[dict[str, Any]] = None


class WorkspaceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    created_at: Optional[datetime] = None


class VaultOut(WorkspaceOut):
    is_public: bool = False


class DocumentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    vault_id: str
    document_name: str
    document_type: str
    document_size: str
    document_metadata: str
    created_at: Optional[datetime] = None


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    role: str
    content: str
    created_at: Optional[datetime] = None
    metadata: Optional[dict[str, Any]] = Field(default=None, validation_alias="message_metadata")
    is_upvoted: Optional[bool] = None


def dump(model_cls, obj) -> dict:
    return model_cls.model_validate(obj).model_dump(mode="json")
