# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Base entity models with common fields and validation.

Stored documents use camelCase keys (``reportDate``, ``createdBy``), API
payloads use the snake_case field names. The alias generator lets one model
read and write both shapes.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from bson import ObjectId


def generate_object_id() -> str:
    """Generate a new MongoDB ObjectId as string."""
    return str(ObjectId())


class DocumentModel(BaseModel):
    """Model that round-trips through MongoDB documents."""

    model_config = ConfigDict(
        # Allow population by field name or camelCase alias
        populate_by_name=True,
        alias_generator=to_camel,
        # Use enum values instead of enum objects
        use_enum_values=True,
        validate_assignment=True,
        arbitrary_types_allowed=True
    )

    @classmethod
    def from_document(cls, document: Dict[str, Any]):
        """Build a model from a MongoDB document (``_id`` or ``id`` key)."""
        data = dict(document)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)

    def to_document(self) -> Dict[str, Any]:
        """Serialize to a MongoDB document keyed by ``_id``."""
        document = self.model_dump(by_alias=True)
        document["_id"] = document.pop("id")
        return document

    def to_api(self) -> Dict[str, Any]:
        """Serialize to a JSON-safe dict for API responses."""
        return self.model_dump(mode="json")


class BaseEntity(DocumentModel):
    """Base entity with audit fields shared by stored documents."""

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=datetime.utcnow, description="Last update timestamp")
    deleted_at: Optional[datetime] = Field(None, description="Soft delete timestamp")
    created_by: str = Field(..., description="User ID who created this entity")
    updated_by: str = Field(..., description="User ID who last updated this entity")

    def update_timestamp(self, updated_by: str) -> None:
        """Update the timestamp and updated_by fields."""
        self.updated_at = datetime.utcnow()
        self.updated_by = updated_by

    def soft_delete(self, deleted_by: str) -> None:
        """Perform soft delete by setting deleted_at timestamp."""
        self.deleted_at = datetime.utcnow()
        self.update_timestamp(deleted_by)

    def is_deleted(self) -> bool:
        """Check if entity is soft deleted."""
        return self.deleted_at is not None
