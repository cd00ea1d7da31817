# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
History service for luminaria actions with OpenTelemetry correlation.
"""

import logging
from typing import Dict, List, Optional
from opentelemetry import trace
from pymongo import DESCENDING

from .mongodb import MongoDBService, PaginationResult, HISTORY
from models.entities import HistoryEntry

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class HistoryService:
    """Persists and queries the per-luminaria action history."""

    def __init__(self, mongo_service: MongoDBService):
        self.mongo_service = mongo_service
        self.collection_name = HISTORY

    def _with_trace(self, entry: HistoryEntry, span) -> HistoryEntry:
        span_context = span.get_span_context()
        if span_context.is_valid and not entry.trace_id:
            entry.trace_id = format(span_context.trace_id, "032x")
        return entry

    def record(self, entry: HistoryEntry) -> str:
        """
        Persist a history entry and log it as a business event.

        Args:
            entry: History entry built by the domain layer

        Returns:
            str: ID of the stored entry
        """
        with tracer.start_as_current_span("history.record") as span:
            try:
                entry = self._with_trace(entry, span)

                span.set_attributes({
                    "history.action": entry.action,
                    "history.luminaria_id": entry.luminaria_id,
                    "history.user_id": entry.user_id
                })

                self.mongo_service.get_collection(self.collection_name).insert_one(entry.to_document())

                logger.info(
                    "History entry recorded",
                    extra={
                        "history_id": entry.id,
                        "luminaria_id": entry.luminaria_id,
                        "action": entry.action,
                        "user_id": entry.user_id,
                        "trace_id": entry.trace_id,
                        "audit_category": "business_action"
                    }
                )
                return entry.id

            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                logger.error(
                    "Failed to record history entry",
                    extra={
                        "luminaria_id": entry.luminaria_id,
                        "action": entry.action,
                        "error": str(e)
                    },
                    exc_info=True
                )
                raise

    def record_many(self, entries: List[HistoryEntry]) -> int:
        """Persist a batch of entries, as produced by a KMZ import."""
        if not entries:
            return 0

        with tracer.start_as_current_span("history.record_many") as span:
            span.set_attribute("history.count", len(entries))
            documents = [self._with_trace(entry, span).to_document() for entry in entries]
            inserted = self.mongo_service.insert_many(self.collection_name, documents)

            logger.info(
                "History entries recorded",
                extra={"count": len(inserted), "action": entries[0].action}
            )
            return len(inserted)

    def list_for_luminaria(self, luminaria_id: str) -> List[HistoryEntry]:
        """Entries for one luminaria, newest first."""
        with tracer.start_as_current_span("history.list_for_luminaria") as span:
            span.set_attribute("history.luminaria_id", luminaria_id)

            documents = self.mongo_service.find(
                self.collection_name,
                {"luminariaId": luminaria_id},
                include_deleted=True,
                sort_by="createdAt",
                sort_order=DESCENDING
            )
            return [HistoryEntry.from_document(doc) for doc in documents]

    def list_recent(self, page: int = 1, page_size: int = 20,
                    action: Optional[str] = None) -> PaginationResult:
        """
        Paginated global history feed, newest first.

        Items of the returned page are ``HistoryEntry`` instances.
        """
        with tracer.start_as_current_span("history.list_recent") as span:
            span.set_attributes({
                "history.page": page,
                "history.page_size": page_size,
                "history.action": action or ""
            })

            filters: Dict = {"action": action} if action else {}
            result = self.mongo_service.paginate(
                self.collection_name,
                page=page,
                page_size=page_size,
                filters=filters,
                sort_by="createdAt",
                sort_order=DESCENDING,
                include_deleted=True
            )
            result.items = [HistoryEntry.from_document(doc) for doc in result.items]
            return result
