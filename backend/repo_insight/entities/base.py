"""Base entity shared by every MongoDB document model."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from bson import ObjectId
from pydantic import BaseModel, Field, PlainSerializer, PlainValidator, WithJsonSchema
from typing_extensions import Annotated

from repo_insight.utils.datetime import utc_now


def _validate_object_id(value: Any) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    raise ValueError(f"Invalid ObjectId: {value!r}")


PyObjectId = Annotated[
    ObjectId,
    PlainValidator(_validate_object_id),
    PlainSerializer(lambda v: str(v), return_type=str, when_used="json"),
    WithJsonSchema({"type": "string"}),
]


class BaseEntity(BaseModel):
    """Common fields: Mongo `_id` plus audit timestamps."""

    id: Optional[PyObjectId] = Field(None, alias="_id")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Config:
        populate_by_name = True
        arbitrary_types_allowed = True
        use_enum_values = True
        validate_default = True

    def to_mongo(self) -> Dict[str, Any]:
        """Dump to a document ready for insert (drops an unset `_id`)."""
        doc = self.model_dump(by_alias=True)
        if doc.get("_id") is None:
            doc.pop("_id", None)
        return doc
