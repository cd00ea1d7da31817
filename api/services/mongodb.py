# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB service layer for luminarias, history and users with connection pooling.
"""

import os
import re
import logging
from datetime import datetime
from typing import List, Dict, Optional, Any, Iterable, Set
from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    BulkWriteError,
    ConnectionFailure,
    ServerSelectionTimeoutError,
    DuplicateKeyError
)

logger = logging.getLogger(__name__)

LUMINARIAS = "luminarias"
HISTORY = "history"
USERS = "users"


class PaginationResult:
    """Result container for paginated queries."""

    def __init__(self, items: List[Dict], total: int, page: int, page_size: int):
        self.items = items
        self.total = total
        self.page = page
        self.page_size = page_size
        self.total_pages = (total + page_size - 1) // page_size
        self.has_next = page < self.total_pages
        self.has_prev = page > 1


def _expose_id(document: Dict) -> Dict:
    """Rename Mongo ``_id`` to ``id`` for the model layer."""
    if "_id" in document:
        document["id"] = str(document.pop("_id"))
    return document


def contains_filter(field: str, term: Optional[str]) -> Dict:
    """Case-insensitive substring filter on ``field``; empty terms match all."""
    if not term:
        return {}
    return {field: {"$regex": re.escape(term), "$options": "i"}}


class MongoDBService:
    """MongoDB service with soft-delete aware CRUD and connection pooling."""

    def __init__(self, connection_string: str = None, database_name: str = None):
        """Initialize MongoDB service with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/lumin_dev'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'lumin_dev')
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.max_idle_time_ms = int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000'))
        self.server_selection_timeout_ms = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))

        logger.info(f"MongoDB service initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client, connecting on first use."""
        if self._client is None:
            try:
                self._client = MongoClient(
                    self.connection_string,
                    maxPoolSize=self.max_pool_size,
                    minPoolSize=self.min_pool_size,
                    maxIdleTimeMS=self.max_idle_time_ms,
                    serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                    retryWrites=True,
                    retryReads=True
                )
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                self._client = None
                raise

        return self._client

    @property
    def database(self) -> Database:
        """Get MongoDB database."""
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        """Get MongoDB collection."""
        return self.database[collection_name]

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            result = self.client.admin.command('ping')
            server_info = self.client.server_info()

            return {
                'status': 'healthy',
                'ping': result.get('ok') == 1,
                'version': server_info.get('version'),
                'database': self.database_name,
                'connection_pool_size': self.max_pool_size
            }
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'database': self.database_name
            }

    def _build_query(self, filters: Dict = None, include_deleted: bool = False) -> Dict:
        """Build a query that hides soft-deleted records unless asked otherwise."""
        query = {}

        if not include_deleted:
            query["deletedAt"] = None

        if filters:
            query.update(filters)

        return query

    def _add_timestamps(self, document: Dict, user_id: str, is_update: bool = False) -> Dict:
        """Add creation and update timestamps to document."""
        now = datetime.utcnow()

        if not is_update:
            document["createdAt"] = now
            document["createdBy"] = user_id

        document["updatedAt"] = now
        document["updatedBy"] = user_id

        return document

    # CRUD Operations

    def create(self, collection: str, document: Dict, user_id: str) -> str:
        """
        Insert a document stamped with creation timestamps.

        Raises:
            ValueError: If a document with the same ``_id`` already exists
        """
        try:
            document = self._add_timestamps(document, user_id)

            collection_obj = self.get_collection(collection)
            result = collection_obj.insert_one(document)

            logger.info(f"Created document in {collection}: {result.inserted_id}")
            return str(result.inserted_id)

        except DuplicateKeyError as e:
            logger.error(f"Duplicate key error in {collection}: {e}")
            raise ValueError("Document with this identifier already exists")
        except Exception as e:
            logger.error(f"Failed to create document in {collection}: {e}")
            raise

    def insert_many(self, collection: str, documents: List[Dict]) -> List[str]:
        """
        Insert documents as they are, ignoring ones whose ``_id`` already exists.

        Returns:
            IDs of the inserted documents
        """
        if not documents:
            return []

        collection_obj = self.get_collection(collection)
        try:
            result = collection_obj.insert_many(documents, ordered=False)
            inserted = [str(doc_id) for doc_id in result.inserted_ids]
        except BulkWriteError as e:
            failed = {
                err["index"] for err in e.details.get("writeErrors", [])
                if err.get("code") == 11000
            }
            if len(failed) != len(e.details.get("writeErrors", [])):
                logger.error(f"Bulk insert into {collection} failed: {e.details}")
                raise
            inserted = [
                str(doc["_id"]) for i, doc in enumerate(documents) if i not in failed
            ]
            logger.warning(f"Skipped {len(failed)} duplicate documents in {collection}")

        logger.info(f"Inserted {len(inserted)} documents into {collection}")
        return inserted

    def existing_ids(self, collection: str, ids: Iterable[str]) -> Set[str]:
        """Return the subset of ``ids`` already stored, soft-deleted records included."""
        ids = list(ids)
        if not ids:
            return set()

        collection_obj = self.get_collection(collection)
        cursor = collection_obj.find({"_id": {"$in": ids}}, {"_id": 1})
        return {str(doc["_id"]) for doc in cursor}

    def find(self, collection: str, filters: Dict = None, include_deleted: bool = False,
             sort_by: Optional[str] = None, sort_order: int = ASCENDING) -> List[Dict]:
        """Find documents matching optional filters."""
        try:
            query = self._build_query(filters, include_deleted)
            collection_obj = self.get_collection(collection)

            cursor = collection_obj.find(query)
            if sort_by:
                cursor = cursor.sort(sort_by, sort_order)

            documents = [_expose_id(doc) for doc in cursor]

            logger.debug(f"Found {len(documents)} documents in {collection}")
            return documents

        except Exception as e:
            logger.error(f"Failed to find documents in {collection}: {e}")
            raise

    def find_one(self, collection: str, doc_id: str, include_deleted: bool = False) -> Optional[Dict]:
        """Find a single document by ID."""
        return self.find_one_by(collection, {"_id": doc_id}, include_deleted)

    def find_one_by(self, collection: str, filters: Dict, include_deleted: bool = False) -> Optional[Dict]:
        """Find a single document matching filters."""
        try:
            query = self._build_query(filters, include_deleted)
            document = self.get_collection(collection).find_one(query)

            if document:
                return _expose_id(document)

            logger.debug(f"No document matching {filters} in {collection}")
            return None

        except Exception as e:
            logger.error(f"Failed to find document in {collection}: {e}")
            raise

    def update(self, collection: str, doc_id: str, updates: Dict, user_id: str) -> bool:
        """Update a live document by ID."""
        try:
            query = self._build_query({"_id": doc_id})
            updates = self._add_timestamps(updates, user_id, is_update=True)

            result = self.get_collection(collection).update_one(query, {"$set": updates})

            if result.matched_count > 0:
                logger.info(f"Updated document {doc_id} in {collection}")
                return True

            logger.warning(f"No document updated for {doc_id} in {collection}")
            return False

        except Exception as e:
            logger.error(f"Failed to update document {doc_id} in {collection}: {e}")
            raise

    def soft_delete(self, collection: str, doc_id: str, user_id: str) -> bool:
        """Soft delete a document by setting deletedAt timestamp."""
        try:
            now = datetime.utcnow()
            updates = {
                "deletedAt": now,
                "updatedAt": now,
                "updatedBy": user_id
            }

            result = self.get_collection(collection).update_one(
                self._build_query({"_id": doc_id}), {"$set": updates}
            )

            if result.modified_count > 0:
                logger.info(f"Soft deleted document {doc_id} in {collection}")
                return True

            logger.warning(f"No document soft deleted for {doc_id} in {collection}")
            return False

        except Exception as e:
            logger.error(f"Failed to soft delete document {doc_id} in {collection}: {e}")
            raise

    def hard_delete(self, collection: str, doc_id: str) -> bool:
        """Remove a document permanently."""
        try:
            result = self.get_collection(collection).delete_one({"_id": doc_id})

            if result.deleted_count > 0:
                logger.warning(f"Hard deleted document {doc_id} in {collection}")
                return True

            logger.warning(f"No document hard deleted for {doc_id} in {collection}")
            return False

        except Exception as e:
            logger.error(f"Failed to hard delete document {doc_id} in {collection}: {e}")
            raise

    def paginate(self, collection: str, page: int = 1, page_size: int = 20,
                 filters: Dict = None, sort_by: str = "createdAt", sort_order: int = DESCENDING,
                 include_deleted: bool = False) -> PaginationResult:
        """Paginate documents with sorting and filtering."""
        try:
            query = self._build_query(filters, include_deleted)
            collection_obj = self.get_collection(collection)

            skip = (page - 1) * page_size
            total = collection_obj.count_documents(query)

            cursor = collection_obj.find(query).sort(sort_by, sort_order).skip(skip).limit(page_size)
            documents = [_expose_id(doc) for doc in cursor]

            logger.debug(f"Paginated {len(documents)} documents from {collection} (page {page})")
            return PaginationResult(documents, total, page, page_size)

        except Exception as e:
            logger.error(f"Failed to paginate documents in {collection}: {e}")
            raise

    def count(self, collection: str, filters: Dict = None, include_deleted: bool = False) -> int:
        """Count documents with optional filters."""
        try:
            query = self._build_query(filters, include_deleted)
            count = self.get_collection(collection).count_documents(query)
            logger.debug(f"Counted {count} documents in {collection}")
            return count

        except Exception as e:
            logger.error(f"Failed to count documents in {collection}: {e}")
            raise

    def count_by_field(self, collection: str, field: str, filters: Dict = None) -> Dict[str, int]:
        """Group live documents by ``field`` and count each value."""
        try:
            pipeline = [
                {"$match": self._build_query(filters)},
                {"$group": {"_id": f"${field}", "count": {"$sum": 1}}}
            ]
            results = self.get_collection(collection).aggregate(pipeline)
            return {str(row["_id"]): row["count"] for row in results}

        except Exception as e:
            logger.error(f"Failed to run aggregation in {collection}: {e}")
            raise

    # Index Management

    def create_indexes(self) -> None:
        """Create performance indexes for all collections."""
        try:
            logger.info("Creating MongoDB indexes...")

            luminarias = self.get_collection(LUMINARIAS)
            luminarias.create_index([("status", ASCENDING), ("deletedAt", ASCENDING)])
            luminarias.create_index("reportDate")

            history = self.get_collection(HISTORY)
            history.create_index([("luminariaId", ASCENDING), ("createdAt", DESCENDING)])
            history.create_index([("action", ASCENDING), ("createdAt", DESCENDING)])
            history.create_index("traceId")

            users = self.get_collection(USERS)
            users.create_index("email", unique=True)
            users.create_index([("role", ASCENDING), ("deletedAt", ASCENDING)])

            logger.info("MongoDB indexes created successfully")

        except Exception as e:
            logger.error(f"Failed to create MongoDB indexes: {e}")
            raise


# Singleton instance for scripts
_mongodb_service: Optional[MongoDBService] = None


def get_mongodb_service() -> MongoDBService:
    """Get singleton MongoDB service instance."""
    global _mongodb_service
    if _mongodb_service is None:
        _mongodb_service = MongoDBService()
    return _mongodb_service
