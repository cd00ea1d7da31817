# SPDX-License-Identifier: Apache-2.0

"""
Persistence of luminarias on top of the MongoDB service.
"""

import logging
from typing import Dict, List, Optional

from opentelemetry import trace
from pymongo import ASCENDING

from .mongodb import MongoDBService, PaginationResult, LUMINARIAS, contains_filter
from .redis import RedisService
from models.entities import Luminaria
from domain.luminarias import summarize_statuses
from middleware.error_handler import NotFoundException

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Fields a workflow step may change
MUTABLE_FIELDS = {
    "status", "problem", "report_date", "report_time", "fix_date", "fix_time",
    "fix_start_date", "fix_end_date", "brigade_notes", "photo_url", "downtime",
}


class LuminariaRepository:
    """Loads and stores luminarias and keeps the status summary cache fresh."""

    def __init__(self, mongo_service: MongoDBService, redis_service: Optional[RedisService] = None):
        self.mongo_service = mongo_service
        self.redis_service = redis_service
        self.collection_name = LUMINARIAS

    def get(self, luminaria_id: str) -> Luminaria:
        """
        Load a luminaria by id.

        Raises:
            NotFoundException: If no luminaria has this id
        """
        document = self.mongo_service.find_one(self.collection_name, luminaria_id)
        if not document:
            raise NotFoundException(f"Luminaria {luminaria_id} not found")
        return Luminaria.from_document(document)

    def list(self, search: Optional[str] = None, status: Optional[str] = None,
             page: int = 1, page_size: int = 50) -> PaginationResult:
        """Page through luminarias sorted by id; items are ``Luminaria`` instances."""
        filters: Dict = contains_filter("_id", search)
        if status:
            filters["status"] = status

        result = self.mongo_service.paginate(
            self.collection_name,
            page=page,
            page_size=page_size,
            filters=filters,
            sort_by="_id",
            sort_order=ASCENDING
        )
        result.items = [Luminaria.from_document(doc) for doc in result.items]
        return result

    def all(self) -> List[Luminaria]:
        """Every live luminaria sorted by id, as used by report exports."""
        documents = self.mongo_service.find(self.collection_name, sort_by="_id")
        return [Luminaria.from_document(doc) for doc in documents]

    def save(self, luminaria: Luminaria, user_id: str) -> bool:
        """Persist the workflow fields of a luminaria."""
        with tracer.start_as_current_span("luminarias.save") as span:
            span.set_attributes({"luminaria.id": luminaria.id, "luminaria.status": luminaria.status})

            document = luminaria.model_dump(by_alias=True, include=MUTABLE_FIELDS)
            updated = self.mongo_service.update(self.collection_name, luminaria.id, document, user_id)
            if not updated:
                raise NotFoundException(f"Luminaria {luminaria.id} not found")

            self._invalidate_summary()
            return updated

    def existing_ids(self, ids: List[str]):
        return self.mongo_service.existing_ids(self.collection_name, ids)

    def insert_many(self, luminarias: List[Luminaria]) -> List[str]:
        """Insert new luminarias; ids already stored are left untouched."""
        inserted = self.mongo_service.insert_many(
            self.collection_name, [lum.to_document() for lum in luminarias]
        )
        if inserted:
            self._invalidate_summary()
        return inserted

    def delete(self, luminaria_id: str) -> bool:
        """Remove a luminaria permanently."""
        deleted = self.mongo_service.hard_delete(self.collection_name, luminaria_id)
        if not deleted:
            raise NotFoundException(f"Luminaria {luminaria_id} not found")
        self._invalidate_summary()
        return deleted

    def status_summary(self) -> Dict[str, int]:
        """Counts per status plus ``total``; served from Redis when cached."""
        if self.redis_service:
            cached = self.redis_service.get_cached_status_summary()
            if cached:
                return cached

        counts = self.mongo_service.count_by_field(self.collection_name, "status")
        summary = summarize_statuses(counts)

        if self.redis_service:
            self.redis_service.cache_status_summary(summary)
        return summary

    def _invalidate_summary(self) -> None:
        if self.redis_service:
            self.redis_service.invalidate_status_summary()
