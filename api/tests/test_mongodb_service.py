# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for the MongoDB service layer and the repositories built on it.
"""

import pytest
from datetime import datetime
from unittest.mock import MagicMock, Mock, patch
from bson import ObjectId
from gridfs.errors import NoFile
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import BulkWriteError, DuplicateKeyError

from services.mongodb import MongoDBService, PaginationResult, contains_filter
from services.luminarias import LuminariaRepository
from services.users import UserRepository
from services.history import HistoryService
from services.storage import PhotoStorageService
from middleware.error_handler import ConflictException, NotFoundException, ValidationException
from models.entities import HistoryEntry


@pytest.fixture
def collection():
    """Mocked pymongo collection."""
    return MagicMock()


@pytest.fixture
def mongodb_service(collection):
    """MongoDB service whose collections are mocked."""
    service = MongoDBService("mongodb://localhost:27017", "lumin_test")
    with patch.object(service, 'get_collection', return_value=collection):
        yield service


@pytest.fixture
def mongo():
    """Fully mocked MongoDB service for repository tests."""
    return Mock()


def stored_luminaria(luminaria_id="LUM-001", **fields):
    document = {
        "_id": luminaria_id,
        "lat": -34.6,
        "lng": -58.4,
        "status": "ok",
        "createdAt": datetime(2024, 1, 1),
        "updatedAt": datetime(2024, 1, 1),
        "createdBy": "system",
        "updatedBy": "system",
        "deletedAt": None,
    }
    document.update(fields)
    return document


class TestMongoDBService:
    """Test MongoDB service functionality."""

    def test_find_hides_soft_deleted(self, mongodb_service, collection):
        """Live-only queries filter on ``deletedAt``."""
        collection.find.return_value = [{"_id": "a", "name": "A"}]

        documents = mongodb_service.find("luminarias", {"status": "ok"})

        collection.find.assert_called_once_with({"deletedAt": None, "status": "ok"})
        assert documents == [{"id": "a", "name": "A"}]

    def test_find_with_sort(self, mongodb_service, collection):
        collection.find.return_value.sort.return_value = [{"_id": "b"}]

        documents = mongodb_service.find("luminarias", sort_by="_id", include_deleted=True)

        collection.find.assert_called_once_with({})
        collection.find.return_value.sort.assert_called_once_with("_id", ASCENDING)
        assert documents == [{"id": "b"}]

    def test_create_stamps_audit_fields(self, mongodb_service, collection):
        collection.insert_one.return_value.inserted_id = "LUM-001"

        doc_id = mongodb_service.create("luminarias", {"_id": "LUM-001"}, "user-1")

        assert doc_id == "LUM-001"
        inserted = collection.insert_one.call_args[0][0]
        assert inserted["createdBy"] == "user-1"
        assert inserted["updatedBy"] == "user-1"
        assert isinstance(inserted["createdAt"], datetime)

    def test_create_duplicate_raises_value_error(self, mongodb_service, collection):
        collection.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key")

        with pytest.raises(ValueError, match="already exists"):
            mongodb_service.create("users", {"email": "a@b.io"}, "system")

    def test_insert_many_skips_duplicates(self, mongodb_service, collection):
        collection.insert_many.side_effect = BulkWriteError({
            "writeErrors": [{"index": 1, "code": 11000, "errmsg": "duplicate"}]
        })
        documents = [{"_id": "A"}, {"_id": "B"}, {"_id": "C"}]

        assert mongodb_service.insert_many("luminarias", documents) == ["A", "C"]

    def test_insert_many_reraises_other_errors(self, mongodb_service, collection):
        collection.insert_many.side_effect = BulkWriteError({
            "writeErrors": [{"index": 0, "code": 121, "errmsg": "validation"}]
        })

        with pytest.raises(BulkWriteError):
            mongodb_service.insert_many("luminarias", [{"_id": "A"}])

    def test_insert_many_empty(self, mongodb_service, collection):
        assert mongodb_service.insert_many("luminarias", []) == []
        collection.insert_many.assert_not_called()

    def test_existing_ids(self, mongodb_service, collection):
        collection.find.return_value = [{"_id": "A"}]

        assert mongodb_service.existing_ids("luminarias", ["A", "B"]) == {"A"}
        collection.find.assert_called_once_with({"_id": {"$in": ["A", "B"]}}, {"_id": 1})

    def test_update_only_touches_live_documents(self, mongodb_service, collection):
        collection.update_one.return_value.matched_count = 0

        assert mongodb_service.update("users", "u1", {"role": "admin"}, "admin-1") is False
        query, update = collection.update_one.call_args[0]
        assert query == {"deletedAt": None, "_id": "u1"}
        assert update["$set"]["role"] == "admin"
        assert update["$set"]["updatedBy"] == "admin-1"
        assert "createdAt" not in update["$set"]

    def test_soft_delete(self, mongodb_service, collection):
        collection.update_one.return_value.modified_count = 1

        assert mongodb_service.soft_delete("users", "u1", "admin-1")
        assert isinstance(collection.update_one.call_args[0][1]["$set"]["deletedAt"], datetime)

    def test_hard_delete(self, mongodb_service, collection):
        collection.delete_one.return_value.deleted_count = 1

        assert mongodb_service.hard_delete("luminarias", "LUM-001")
        collection.delete_one.assert_called_once_with({"_id": "LUM-001"})

    def test_paginate(self, mongodb_service, collection):
        collection.count_documents.return_value = 45
        cursor = collection.find.return_value.sort.return_value.skip.return_value
        cursor.limit.return_value = [{"_id": "x"}]

        result = mongodb_service.paginate("history", page=3, page_size=20)

        collection.find.return_value.sort.assert_called_once_with("createdAt", DESCENDING)
        collection.find.return_value.sort.return_value.skip.assert_called_once_with(40)
        assert result.items == [{"id": "x"}]
        assert result.total_pages == 3
        assert result.has_prev and not result.has_next

    def test_count_by_field(self, mongodb_service, collection):
        collection.aggregate.return_value = [{"_id": "ok", "count": 3}, {"_id": "reported", "count": 1}]

        assert mongodb_service.count_by_field("luminarias", "status") == {"ok": 3, "reported": 1}
        pipeline = collection.aggregate.call_args[0][0]
        assert pipeline[0] == {"$match": {"deletedAt": None}}

    def test_health_check_unhealthy(self):
        service = MongoDBService("mongodb://localhost:27017", "lumin_test")
        broken = Mock()
        broken.admin.command.side_effect = Exception("connection refused")
        service._client = broken

        health = service.health_check()

        assert health["status"] == "unhealthy"
        assert health["database"] == "lumin_test"

    def test_create_indexes(self, mongodb_service, collection):
        mongodb_service.create_indexes()
        collection.create_index.assert_any_call("email", unique=True)

    def test_contains_filter_escapes_regex(self):
        assert contains_filter("_id", "") == {}
        assert contains_filter("_id", "a.b") == {"_id": {"$regex": r"a\.b", "$options": "i"}}

    def test_pagination_result(self):
        result = PaginationResult([], 0, 1, 20)
        assert result.total_pages == 0
        assert not result.has_next


class TestLuminariaRepository:
    """Luminaria persistence and summary caching."""

    def test_get(self, mongo):
        mongo.find_one.return_value = {**stored_luminaria(), "id": "LUM-001"}
        del mongo.find_one.return_value["_id"]

        lum = LuminariaRepository(mongo).get("LUM-001")

        assert lum.id == "LUM-001"
        assert lum.created_by == "system"

    def test_get_missing(self, mongo):
        mongo.find_one.return_value = None
        with pytest.raises(NotFoundException):
            LuminariaRepository(mongo).get("nope")

    def test_list_filters_by_search_and_status(self, mongo):
        mongo.paginate.return_value = PaginationResult([stored_luminaria()], 1, 1, 50)

        result = LuminariaRepository(mongo).list(search="lum", status="ok")

        filters = mongo.paginate.call_args.kwargs["filters"]
        assert filters == {"_id": {"$regex": "lum", "$options": "i"}, "status": "ok"}
        assert result.items[0].id == "LUM-001"

    def test_save_writes_workflow_fields_and_invalidates_cache(self, mongo, make_luminaria):
        redis = Mock()
        mongo.update.return_value = True
        lum = make_luminaria(status="reported", problem="Apagado",
                             report_date="2024-01-10", report_time="20:00:00")

        LuminariaRepository(mongo, redis).save(lum, "u1")

        collection, doc_id, updates, user_id = mongo.update.call_args[0]
        assert (collection, doc_id, user_id) == ("luminarias", "LUM-001", "u1")
        assert updates["status"] == "reported"
        assert updates["reportDate"] == "2024-01-10"
        assert "lat" not in updates
        redis.invalidate_status_summary.assert_called_once()

    def test_save_missing(self, mongo, make_luminaria):
        mongo.update.return_value = False
        with pytest.raises(NotFoundException):
            LuminariaRepository(mongo).save(make_luminaria(), "u1")

    def test_delete_missing(self, mongo):
        mongo.hard_delete.return_value = False
        with pytest.raises(NotFoundException):
            LuminariaRepository(mongo).delete("LUM-404")

    def test_status_summary_from_database(self, mongo):
        redis = Mock()
        redis.get_cached_status_summary.return_value = None
        mongo.count_by_field.return_value = {"ok": 3, "reported": 2}

        summary = LuminariaRepository(mongo, redis).status_summary()

        assert summary == {"ok": 3, "reported": 2, "confirmed": 0, "fixed": 0, "total": 5}
        redis.cache_status_summary.assert_called_once_with(summary)

    def test_status_summary_from_cache(self, mongo):
        redis = Mock()
        redis.get_cached_status_summary.return_value = {"ok": 1, "total": 1}

        assert LuminariaRepository(mongo, redis).status_summary() == {"ok": 1, "total": 1}
        mongo.count_by_field.assert_not_called()


class TestUserRepository:

    def test_create_duplicate_email(self, mongo, make_user):
        mongo.create.side_effect = ValueError("Document with this identifier already exists")

        with pytest.raises(ConflictException):
            UserRepository(mongo).create(make_user())

    def test_find_by_email_lowercases(self, mongo):
        mongo.find_one_by.return_value = None

        assert UserRepository(mongo).find_by_email("Ana@Lumin.Example") is None
        mongo.find_one_by.assert_called_once_with("users", {"email": "ana@lumin.example"})

    def test_update_role_missing(self, mongo):
        mongo.update.return_value = False
        with pytest.raises(NotFoundException):
            UserRepository(mongo).update_role("u1", "admin", "admin-1")

    def test_delete_is_soft(self, mongo):
        mongo.soft_delete.return_value = True

        assert UserRepository(mongo).delete("u1", "admin-1")
        mongo.soft_delete.assert_called_once_with("users", "u1", "admin-1")


class TestHistoryService:

    def _entry(self, action="Reporte"):
        return HistoryEntry(
            luminaria_id="LUM-001", date="2024-01-10", time="20:00:00",
            action=action, details="Problema reportado: Apagado", user="Ana", user_id="u1"
        )

    def test_record_inserts_document(self, mongo):
        entry = self._entry()

        entry_id = HistoryService(mongo).record(entry)

        assert entry_id == entry.id
        document = mongo.get_collection.return_value.insert_one.call_args[0][0]
        assert document["_id"] == entry.id
        assert document["luminariaId"] == "LUM-001"

    def test_record_propagates_failures(self, mongo):
        mongo.get_collection.return_value.insert_one.side_effect = RuntimeError("down")
        with pytest.raises(RuntimeError):
            HistoryService(mongo).record(self._entry())

    def test_record_many(self, mongo):
        mongo.insert_many.side_effect = lambda name, docs: [d["_id"] for d in docs]

        assert HistoryService(mongo).record_many([self._entry("Carga KMZ"), self._entry("Carga KMZ")]) == 2
        assert HistoryService(mongo).record_many([]) == 0

    def test_list_for_luminaria_newest_first(self, mongo):
        mongo.find.return_value = [self._entry().to_document()]

        entries = HistoryService(mongo).list_for_luminaria("LUM-001")

        assert entries[0].action == "Reporte"
        mongo.find.assert_called_once_with(
            "history", {"luminariaId": "LUM-001"},
            include_deleted=True, sort_by="createdAt", sort_order=DESCENDING
        )


class TestPhotoStorage:
    """GridFS photo storage with a mocked bucket."""

    @pytest.fixture
    def storage(self, mongo):
        service = PhotoStorageService(mongo, max_bytes=10)
        service._bucket = Mock()
        return service

    def test_upload_builds_path_and_url(self, storage):
        file_id = ObjectId()
        storage.bucket.upload_from_stream.return_value = file_id

        stored = storage.upload_photo(
            "LUM 1", "foto poste.jpg", b"jpegdata", "image/jpeg", datetime(2024, 1, 10, 20, 0, 0)
        )

        assert stored.path.startswith("luminarias/LUM 1/")
        assert stored.path.endswith("_foto_poste.jpg")
        assert stored.url == f"/api/luminarias/LUM%201/photos/{file_id}"
        metadata = storage.bucket.upload_from_stream.call_args.kwargs["metadata"]
        assert metadata["luminariaId"] == "LUM 1"

    @pytest.mark.parametrize("filename,data", [
        ("notes.txt", b"abc"),
        (None, b"abc"),
        ("photo.png", b""),
        ("photo.png", b"x" * 11),
    ])
    def test_rejected_uploads(self, storage, filename, data):
        with pytest.raises(ValidationException):
            storage.validate_photo(filename, data)

    def test_open_photo_of_other_luminaria(self, storage):
        stream = Mock(metadata={"luminariaId": "LUM-002"})
        storage.bucket.open_download_stream.return_value = stream

        with pytest.raises(NotFoundException):
            storage.open_photo(str(ObjectId()), "LUM-001")
        stream.close.assert_called_once()

    def test_open_unknown_photo(self, storage):
        storage.bucket.open_download_stream.side_effect = NoFile("missing")

        with pytest.raises(NotFoundException):
            storage.open_photo(str(ObjectId()))

    def test_open_malformed_photo_id(self, storage):
        with pytest.raises(NotFoundException):
            storage.open_photo("not-an-object-id")
        storage.bucket.open_download_stream.assert_not_called()

    def test_delete_photos_for(self, storage):
        storage.bucket.find.return_value = [Mock(_id=1), Mock(_id=2)]

        assert storage.delete_photos_for("LUM-001") == 2
        assert storage.bucket.delete.call_count == 2
