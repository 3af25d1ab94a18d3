from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class AssetKind(str, Enum):
    IMAGE = "image"
    DOCUMENT = "document"


class AssetReference(BaseModel):
    url: str
    kind: AssetKind


class Book(BaseModel):
    id: str
    title: str
    genre: str
    description: Optional[str] = None
    cover_image: AssetReference
    document: AssetReference
    owner_id: str
    created_at: datetime
    updated_at: datetime


class BookChanges(BaseModel):
    """
    Metadata fields supplied on update.

    ``None`` keeps the stored value, so an update can change ``description``
    but never clear it. Empty form values arrive as ``None`` and count as
    omitted.
    """

    title: Optional[str] = None
    genre: Optional[str] = None
    description: Optional[str] = None


class BookCreated(BaseModel):
    id: str


class BookDeleted(BaseModel):
    id: str
    message: str


class ErrorBody(BaseModel):
    status: int
    message: str


class APIKeyCreate(BaseModel):
    owner: str


class APIKeyInfo(BaseModel):
    id: str
    owner: str
    prefix: str
    is_active: bool
    created_at: str


class APIKeyCreated(BaseModel):
    api_key: str
    record: APIKeyInfo
