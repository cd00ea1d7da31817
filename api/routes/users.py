# SPDX-License-Identifier: Apache-2.0

"""
User management endpoints for administrators.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from domain.authorization import USER_MANAGE, can_assign_role, can_manage_user
from models.requests import PaginationParams, UpdateUserRoleRequest, UserPath
from models.responses import HalCollection, UserResponse, ErrorResponse
from middleware.auth import require_capability
from middleware.validation import validate_json, validate_query
from middleware.error_handler import AuthorizationException

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

users_tag = Tag(name="Users", description="User accounts and roles")
users_bp = APIBlueprint(
    'users',
    __name__,
    url_prefix='/api/users',
    abp_tags=[users_tag]
)


def _ensure_manageable(user_context, target_user_id: str):
    check = can_manage_user(user_context, user_context.user_id, target_user_id)
    if not check.allowed:
        raise AuthorizationException(check.reason)


@users_bp.get('', responses={200: HalCollection, 403: ErrorResponse})
@require_capability(USER_MANAGE)
@validate_query(PaginationParams)
def list_users(user_context, query_params):
    """List user accounts."""
    with tracer.start_as_current_span(
        "users.list",
        attributes={"user.id": user_context.user_id, "query.page": query_params.page}
    ):
        result = current_app.user_repository.list(query_params.page, query_params.page_size)
        return jsonify(current_app.hal_formatter.format_user_collection(
            [user.to_api() for user in result.items],
            result.total,
            result.page,
            result.page_size,
            user_context,
            user_context.user_id
        ))


@users_bp.put('/<user_id>/role', responses={200: UserResponse, 403: ErrorResponse, 404: ErrorResponse})
@require_capability(USER_MANAGE)
@validate_json(UpdateUserRoleRequest)
def update_user_role(user_context, path: UserPath, request_data):
    """Change the role of another user."""
    with tracer.start_as_current_span(
        "users.update_role",
        attributes={
            "user.id": user_context.user_id,
            "target.user_id": path.user_id,
            "target.role": request_data.role
        }
    ):
        _ensure_manageable(user_context, path.user_id)
        role_check = can_assign_role(user_context, request_data.role)
        if not role_check.allowed:
            raise AuthorizationException(role_check.reason)

        user = current_app.user_repository.update_role(
            path.user_id, request_data.role, user_context.user_id
        )
        return jsonify(current_app.hal_formatter.format_user(
            user.to_api(), user_context, user_context.user_id
        ))


@users_bp.delete('/<user_id>', responses={403: ErrorResponse, 404: ErrorResponse})
@require_capability(USER_MANAGE)
def delete_user(user_context, path: UserPath):
    """Deactivate another user's account."""
    with tracer.start_as_current_span(
        "users.delete",
        attributes={"user.id": user_context.user_id, "target.user_id": path.user_id}
    ):
        _ensure_manageable(user_context, path.user_id)
        current_app.user_repository.delete(path.user_id, user_context.user_id)
        return '', 204
