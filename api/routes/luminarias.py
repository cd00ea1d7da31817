# SPDX-License-Identifier: Apache-2.0

"""
Luminaria endpoints.

This module implements the luminaria API: listing and search, KMZ import,
the report / field verification / repair workflow, history, verification
photos, the global history feed and the downtime calculator.
"""

from flask import request, jsonify, current_app, send_file
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError
import logging
from datetime import datetime

from domain import luminarias as luminaria_domain
from domain.authorization import (
    LUMINARIA_READ, LUMINARIA_UPLOAD, LUMINARIA_REPORT, LUMINARIA_VERIFY,
    LUMINARIA_FIX, LUMINARIA_DELETE, HISTORY_READ
)
from domain.downtime import compute_downtime_hours, InvalidTimestampError
from domain.luminarias import WorkflowResult
from models.entities import UserContext
from models.requests import (
    ReportProblemRequest, BrigadeVerificationRequest, MarkFixedRequest,
    DowntimeRequest, LuminariaFilters, HistoryFilters, LuminariaPath, PhotoPath
)
from models.responses import (
    LuminariaResponse, HalCollection, ImportResultResponse, DowntimeResponse, ErrorResponse
)
from services.kmz import process_kmz_file, is_kmz_filename, KmzProcessingError
from middleware.auth import require_capability
from middleware.validation import validate_json, validate_query
from middleware.error_handler import ValidationException, ConflictException

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

luminarias_tag = Tag(name="Luminarias", description="Streetlight inventory and outage workflow")
luminarias_bp = APIBlueprint(
    'luminarias',
    __name__,
    url_prefix='/api/luminarias',
    abp_tags=[luminarias_tag]
)

operations_tag = Tag(name="Operations", description="History feed and downtime calculator")
operations_bp = APIBlueprint(
    'operations',
    __name__,
    url_prefix='/api',
    abp_tags=[operations_tag]
)

ERROR_RESPONSES = {400: ErrorResponse, 401: ErrorResponse, 403: ErrorResponse}


def local_now() -> datetime:
    """Wall-clock instant used to stamp workflow steps."""
    return datetime.now()


def _persist_workflow(result: WorkflowResult, user_context: UserContext, span):
    """Store a successful workflow step or turn its failure into a 409."""
    if not result.success:
        span.set_status(Status(StatusCode.ERROR, result.error_message))
        logger.warning(
            result.error_message,
            extra={
                "user_id": user_context.user_id,
                "validation_errors": result.validation_errors
            }
        )
        raise ConflictException("; ".join(result.validation_errors) or result.error_message)

    with tracer.start_as_current_span("db.luminaria.save"):
        current_app.luminaria_repository.save(result.luminaria, user_context.user_id)
    current_app.history_service.record(result.history_entry)

    span.set_attribute("luminaria.status", result.luminaria.status)
    span.set_status(Status(StatusCode.OK))
    return jsonify(current_app.hal_formatter.format_luminaria(result.luminaria.to_api(), user_context))


@luminarias_bp.get('', responses={200: HalCollection, **ERROR_RESPONSES})
@require_capability(LUMINARIA_READ)
@validate_query(LuminariaFilters)
def list_luminarias(user_context, query_params):
    """
    List luminarias.

    Supports case-insensitive search on the waypoint id and filtering by status.
    """
    with tracer.start_as_current_span(
        "luminaria.list",
        attributes={
            "user.id": user_context.user_id,
            "query.search": query_params.search or "",
            "query.status": query_params.status or "",
            "query.page": query_params.page
        }
    ) as span:
        result = current_app.luminaria_repository.list(
            search=query_params.search,
            status=query_params.status,
            page=query_params.page,
            page_size=query_params.page_size
        )
        span.set_attribute("luminaria.total", result.total)

        return jsonify(current_app.hal_formatter.format_luminaria_collection(
            [lum.to_api() for lum in result.items],
            result.total,
            result.page,
            result.page_size,
            user_context,
            {"search": query_params.search, "status": query_params.status}
        ))


@luminarias_bp.get('/summary')
@require_capability(LUMINARIA_READ)
def luminaria_summary(user_context):
    """Count luminarias per status."""
    with tracer.start_as_current_span("luminaria.summary", attributes={"user.id": user_context.user_id}):
        summary = current_app.luminaria_repository.status_summary()
        summary['_links'] = {
            'self': {'href': f"{current_app.config['BASE_URL']}/api/luminarias/summary"},
            'collection': {'href': f"{current_app.config['BASE_URL']}/api/luminarias"}
        }
        return jsonify(summary)


@luminarias_bp.get('/<luminaria_id>', responses={200: LuminariaResponse, 404: ErrorResponse})
@require_capability(LUMINARIA_READ)
def get_luminaria(user_context, path: LuminariaPath):
    """Get a luminaria with the workflow actions available to the caller."""
    with tracer.start_as_current_span(
        "luminaria.get",
        attributes={"user.id": user_context.user_id, "luminaria.id": path.luminaria_id}
    ):
        luminaria = current_app.luminaria_repository.get(path.luminaria_id)
        return jsonify(current_app.hal_formatter.format_luminaria(luminaria.to_api(), user_context))


@luminarias_bp.post('/upload', responses={201: ImportResultResponse, **ERROR_RESPONSES})
@require_capability(LUMINARIA_UPLOAD)
def upload_kmz(user_context):
    """
    Import luminarias from a KMZ file.

    Expects a multipart form with a ``file`` field. Waypoints whose id is
    already registered are skipped, so re-importing a file is harmless.
    """
    with tracer.start_as_current_span(
        "luminaria.import_kmz",
        attributes={"user.id": user_context.user_id, "operation": "import_kmz"}
    ) as span:
        upload = request.files.get('file')
        if upload is None or not upload.filename:
            raise ValidationException(
                "No file uploaded",
                [{"field": "file", "message": "A KMZ file is required", "type": "missing"}]
            )

        if not is_kmz_filename(upload.filename):
            raise ValidationException(
                "Only KMZ files are accepted",
                [{"field": "file", "message": "File must have a .kmz extension", "type": "file_type"}]
            )

        span.set_attribute("kmz.filename", upload.filename)

        try:
            points = process_kmz_file(upload.read(), current_app.config['MAX_KML_BYTES'])
        except KmzProcessingError as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise ValidationException(f"Could not process KMZ file: {e}")

        if not points:
            raise ValidationException("The KMZ file contains no points")

        repository = current_app.luminaria_repository
        existing = repository.existing_ids([point.id for point in points])
        try:
            batch = luminaria_domain.build_import_batch(points, existing, user_context, local_now())
        except ValidationError as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise ValidationException(
                "The KMZ file contains invalid waypoints",
                current_app.validation_middleware.format_validation_errors(e)
            )

        with tracer.start_as_current_span("db.luminaria.insert_many"):
            inserted = set(repository.insert_many(batch.luminarias))

        current_app.history_service.record_many(
            [entry for entry in batch.history_entries if entry.luminaria_id in inserted]
        )

        span.set_attributes({
            "kmz.points": len(points),
            "kmz.created": len(inserted),
            "kmz.skipped": len(points) - len(inserted)
        })
        logger.info(
            "KMZ file imported",
            extra={
                "user_id": user_context.user_id,
                "kmz_filename": upload.filename,
                "points": len(points),
                "created_count": len(inserted)
            }
        )

        base_url = current_app.config['BASE_URL']
        return jsonify({
            "filename": upload.filename,
            "points": len(points),
            "created": len(inserted),
            "skipped": len(points) - len(inserted),
            "_links": {
                "collection": {"href": f"{base_url}/api/luminarias"},
                "summary": {"href": f"{base_url}/api/luminarias/summary"}
            }
        }), 201


@luminarias_bp.post('/<luminaria_id>/report', responses={200: LuminariaResponse, 409: ErrorResponse})
@require_capability(LUMINARIA_REPORT)
@validate_json(ReportProblemRequest)
def report_luminaria(user_context, path: LuminariaPath, request_data):
    """Report a problem on a luminaria."""
    with tracer.start_as_current_span(
        "luminaria.report",
        attributes={
            "user.id": user_context.user_id,
            "luminaria.id": path.luminaria_id,
            "luminaria.problem": request_data.problem
        }
    ) as span:
        luminaria = current_app.luminaria_repository.get(path.luminaria_id)

        with tracer.start_as_current_span("domain.luminaria.report_problem"):
            result = luminaria_domain.report_problem(
                luminaria, request_data.problem, user_context, local_now()
            )

        return _persist_workflow(result, user_context, span)


def _verification_request() -> BrigadeVerificationRequest:
    """Read the verification outcome from a JSON body or a multipart form."""
    if request.is_json:
        data = request.get_json(silent=True)
    else:
        data = request.form.to_dict()

    if not isinstance(data, dict):
        raise ValidationException("Invalid verification payload")

    try:
        return BrigadeVerificationRequest(**data)
    except ValidationError as e:
        raise ValidationException(
            "Request validation failed for BrigadeVerificationRequest",
            current_app.validation_middleware.format_validation_errors(e)
        )


@luminarias_bp.post('/<luminaria_id>/verify', responses={200: LuminariaResponse, 409: ErrorResponse})
@require_capability(LUMINARIA_VERIFY)
def verify_luminaria(user_context, path: LuminariaPath):
    """
    Record a brigade verification.

    Accepts JSON, or a multipart form when a ``photo`` file is attached.
    """
    with tracer.start_as_current_span(
        "luminaria.verify",
        attributes={"user.id": user_context.user_id, "luminaria.id": path.luminaria_id}
    ) as span:
        verification = _verification_request()
        span.set_attribute("luminaria.outcome", verification.outcome)

        luminaria = current_app.luminaria_repository.get(path.luminaria_id)
        if not luminaria.can_verify():
            raise ConflictException(
                f"Only reported luminarias can be verified (current status: {luminaria.status})"
            )

        now = local_now()
        photo_url = None
        photo = request.files.get('photo')
        if photo is not None and photo.filename:
            stored = current_app.storage_service.upload_photo(
                luminaria.id, photo.filename, photo.read(), photo.mimetype, now
            )
            photo_url = stored.url
            span.set_attribute("luminaria.photo_id", stored.file_id)

        with tracer.start_as_current_span("domain.luminaria.verify_in_field"):
            result = luminaria_domain.verify_in_field(
                luminaria, verification.outcome, verification.notes, user_context, now, photo_url
            )

        return _persist_workflow(result, user_context, span)


@luminarias_bp.post('/<luminaria_id>/fix', responses={200: LuminariaResponse, 409: ErrorResponse})
@require_capability(LUMINARIA_FIX)
@validate_json(MarkFixedRequest)
def fix_luminaria(user_context, path: LuminariaPath, request_data):
    """Close an incident and compute the lit-window downtime."""
    with tracer.start_as_current_span(
        "luminaria.fix",
        attributes={"user.id": user_context.user_id, "luminaria.id": path.luminaria_id}
    ) as span:
        luminaria = current_app.luminaria_repository.get(path.luminaria_id)

        try:
            with tracer.start_as_current_span("domain.luminaria.mark_fixed"):
                result = luminaria_domain.mark_fixed(
                    luminaria,
                    request_data.fix_start_date,
                    request_data.fix_end_date,
                    user_context,
                    local_now()
                )
        except InvalidTimestampError as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise ValidationException(f"Stored report timestamp is invalid: {e}")

        if result.success:
            span.set_attribute("luminaria.downtime_hours", result.luminaria.downtime)
        return _persist_workflow(result, user_context, span)


@luminarias_bp.delete('/<luminaria_id>', responses={404: ErrorResponse})
@require_capability(LUMINARIA_DELETE)
def delete_luminaria(user_context, path: LuminariaPath):
    """
    Delete a luminaria and its photos.

    History entries are kept.
    """
    with tracer.start_as_current_span(
        "luminaria.delete",
        attributes={"user.id": user_context.user_id, "luminaria.id": path.luminaria_id}
    ):
        current_app.luminaria_repository.delete(path.luminaria_id)
        photos = current_app.storage_service.delete_photos_for(path.luminaria_id)

        logger.info(
            "Luminaria deleted",
            extra={
                "user_id": user_context.user_id,
                "luminaria_id": path.luminaria_id,
                "photos_deleted": photos
            }
        )
        return '', 204


@luminarias_bp.get('/<luminaria_id>/history', responses={200: HalCollection, 404: ErrorResponse})
@require_capability(HISTORY_READ)
def luminaria_history(user_context, path: LuminariaPath):
    """History of a luminaria, newest first."""
    with tracer.start_as_current_span(
        "luminaria.history",
        attributes={"user.id": user_context.user_id, "luminaria.id": path.luminaria_id}
    ):
        current_app.luminaria_repository.get(path.luminaria_id)
        entries = current_app.history_service.list_for_luminaria(path.luminaria_id)

        collection_path = f"/api/luminarias/{path.luminaria_id}/history"
        return jsonify(current_app.hal_formatter.format_history_collection(
            [entry.to_api() for entry in entries],
            len(entries),
            1,
            max(len(entries), 1),
            collection_path
        ))


@luminarias_bp.get('/<luminaria_id>/photos/<file_id>')
@require_capability(LUMINARIA_READ)
def download_photo(user_context, path: PhotoPath):
    """Stream a verification photo."""
    with tracer.start_as_current_span(
        "luminaria.photo.download",
        attributes={
            "user.id": user_context.user_id,
            "luminaria.id": path.luminaria_id,
            "storage.file_id": path.file_id
        }
    ):
        stream = current_app.storage_service.open_photo(path.file_id, path.luminaria_id)
        metadata = stream.metadata or {}
        return send_file(
            stream,
            mimetype=metadata.get("contentType") or "application/octet-stream",
            download_name=stream.filename.rsplit("/", 1)[-1]
        )


@operations_bp.get('/history', responses={200: HalCollection, **ERROR_RESPONSES})
@require_capability(HISTORY_READ)
@validate_query(HistoryFilters)
def history_feed(user_context, query_params):
    """Global history feed, newest first."""
    with tracer.start_as_current_span(
        "history.feed",
        attributes={
            "user.id": user_context.user_id,
            "query.action": query_params.action or "",
            "query.page": query_params.page
        }
    ):
        result = current_app.history_service.list_recent(
            page=query_params.page,
            page_size=query_params.page_size,
            action=query_params.action
        )
        return jsonify(current_app.hal_formatter.format_history_collection(
            [entry.to_api() for entry in result.items],
            result.total,
            result.page,
            result.page_size,
            "/api/history",
            {"action": query_params.action}
        ))


@operations_bp.post('/downtime', responses={200: DowntimeResponse, **ERROR_RESPONSES})
@require_capability(LUMINARIA_READ)
@validate_json(DowntimeRequest)
def calculate_downtime(user_context, request_data):
    """
    Calculate lit-window downtime between a report and a fix.

    Only hours between 18:00 and 06:00 count.
    """
    with tracer.start_as_current_span(
        "downtime.calculate",
        attributes={"user.id": user_context.user_id}
    ) as span:
        try:
            hours = compute_downtime_hours(
                request_data.report_date,
                request_data.report_time,
                request_data.fix_date,
                request_data.fix_time
            )
        except InvalidTimestampError as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise ValidationException(str(e))

        span.set_attribute("downtime.hours", hours)
        return jsonify({**request_data.model_dump(), "downtime_hours": hours})
