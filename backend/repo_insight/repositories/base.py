"""Generic MongoDB repository with typed entity conversion."""

from __future__ import annotations

import logging
from typing import Any, Dict, Generic, List, Optional, Sequence, Tuple, Type, TypeVar

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.database import Database

from repo_insight.entities.base import BaseEntity

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseEntity)

SortSpec = Optional[Sequence[Tuple[str, int]]]


class BaseRepository(Generic[T]):
    """Thin typed wrapper over a pymongo collection."""

    def __init__(self, db: Database, collection_name: str, model: Type[T]):
        self.db = db
        self.collection: Collection = db[collection_name]
        self.model = model

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_object_id(value: str | ObjectId) -> ObjectId:
        if isinstance(value, ObjectId):
            return value
        try:
            return ObjectId(value)
        except (InvalidId, TypeError) as e:
            raise ValueError(f"Invalid id: {value!r}") from e

    def _to_model(self, doc: Optional[Dict[str, Any]]) -> Optional[T]:
        if doc is None:
            return None
        return self.model.model_validate(doc)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_id(self, entity_id: str | ObjectId) -> Optional[T]:
        try:
            oid = self._to_object_id(entity_id)
        except ValueError:
            logger.warning(f"Invalid ObjectId lookup: {entity_id}")
            return None
        return self._to_model(self.collection.find_one({"_id": oid}))

    def find_one(self, query: Dict[str, Any], sort: SortSpec = None) -> Optional[T]:
        if sort:
            doc = self.collection.find_one(query, sort=list(sort))
        else:
            doc = self.collection.find_one(query)
        return self._to_model(doc)

    def find_many(
        self,
        query: Dict[str, Any],
        sort: SortSpec = None,
        skip: int = 0,
        limit: int = 0,
        projection: Optional[Dict[str, Any]] = None,
    ) -> List[T]:
        cursor = self.collection.find(query, projection)
        if sort:
            cursor = cursor.sort(list(sort))
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return [self.model.model_validate(doc) for doc in cursor]

    def aggregate(self, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return list(self.collection.aggregate(pipeline))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_one(self, entity: T, session: Optional[ClientSession] = None) -> T:
        doc = entity.to_mongo()
        result = self.collection.insert_one(doc, session=session)
        entity.id = result.inserted_id
        return entity

    def find_one_and_update(
        self,
        query: Dict[str, Any],
        update: Dict[str, Any],
        upsert: bool = False,
    ) -> Optional[T]:
        doc = self.collection.find_one_and_update(
            query, update, upsert=upsert, return_document=ReturnDocument.AFTER
        )
        return self._to_model(doc)

    def delete_many(
        self, query: Dict[str, Any], session: Optional[ClientSession] = None
    ) -> int:
        result = self.collection.delete_many(query, session=session)
        return result.deleted_count
