# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Authentication endpoints for signup, login, logout and token refresh.
"""

from flask import request, jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
import logging
from typing import Dict, Any

from domain.authorization import can_assign_role, get_permission_description
from models.entities import User, UserContext
from models.enums import UserRole
from models.requests import LoginRequest, SignupRequest, RefreshTokenRequest
from models.responses import AuthTokenResponse, UserResponse, ErrorResponse
from services.auth import AuthenticationError, TokenValidationError
from middleware.auth import require_auth, optional_auth
from middleware.validation import validate_json
from middleware.error_handler import (
    AuthenticationException, AuthorizationException, NotFoundException
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

auth_tag = Tag(name="Authentication", description="User authentication and token management")
auth_bp = APIBlueprint(
    'auth',
    __name__,
    url_prefix='/api/auth',
    abp_tags=[auth_tag]
)


def _auth_links() -> Dict[str, Any]:
    base_url = current_app.config['BASE_URL']
    return {
        "me": {"href": f"{base_url}/api/auth/me"},
        "refresh": {"href": f"{base_url}/api/auth/refresh", "method": "POST"},
        "logout": {"href": f"{base_url}/api/auth/logout", "method": "POST"},
        "luminarias": {"href": f"{base_url}/api/luminarias"}
    }


def _user_summary(user: User) -> Dict[str, Any]:
    context = UserContext(user_id=user.id, email=user.email, name=user.name, role=user.role)
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "permissions": context.permissions
    }


@auth_bp.post('/signup', responses={201: UserResponse, 400: ErrorResponse, 409: ErrorResponse})
@optional_auth
@validate_json(SignupRequest)
def signup(user_context, request_data):
    """
    Create an account.

    Public signups always get the viewer role; an authenticated administrator
    may create accounts with any role.
    """
    with tracer.start_as_current_span(
        "auth.signup",
        attributes={"operation": "signup", "user.requested_role": request_data.role}
    ) as span:
        role_check = can_assign_role(user_context, request_data.role)
        if not role_check.allowed:
            if user_context is not None:
                raise AuthorizationException(role_check.reason)
            # Anonymous requests for a privileged role fall back to viewer
            request_data.role = UserRole.VIEWER.value

        creator = user_context.user_id if user_context else "self"
        user = User(
            email=request_data.email,
            name=request_data.name,
            password_hash=current_app.auth_service.hash_password(request_data.password),
            role=request_data.role,
            created_by=creator,
            updated_by=creator
        )
        current_app.user_repository.create(user)

        span.set_attributes({"user.id": user.id, "user.role": user.role})
        logger.info(
            "User signed up",
            extra={"user_id": user.id, "role": user.role, "created_by": creator}
        )

        response = current_app.hal_formatter.format_user(
            user.to_api(), user_context, user_context.user_id if user_context else user.id
        )
        return jsonify(response), 201


@auth_bp.post('/login', responses={200: AuthTokenResponse, 401: ErrorResponse})
@validate_json(LoginRequest)
def login(request_data):
    """
    Authenticate user and return JWT tokens.

    This endpoint validates user credentials and returns access and refresh tokens
    for authenticated sessions.
    """
    with tracer.start_as_current_span(
        "auth.login",
        attributes={"operation": "login", "ip_address": request.remote_addr or ""}
    ) as span:
        user = current_app.user_repository.find_by_email(request_data.email)

        with tracer.start_as_current_span("auth.verify_password") as auth_span:
            password_valid = bool(user) and current_app.auth_service.verify_password(
                request_data.password, user.password_hash
            )
            auth_span.set_attribute("auth.result", "success" if password_valid else "failed")

        if not password_valid:
            span.set_status(Status(StatusCode.ERROR, "Invalid credentials"))
            logger.warning(
                "Login attempt with invalid credentials",
                extra={"email": request_data.email, "ip_address": request.remote_addr}
            )
            raise AuthenticationException("Invalid email or password")

        if not user.is_active():
            span.set_status(Status(StatusCode.ERROR, "User account inactive"))
            logger.warning(
                "Login attempt with inactive account",
                extra={"user_id": user.id, "status": user.status}
            )
            raise AuthenticationException("Account is inactive")

        try:
            tokens = current_app.auth_service.generate_tokens(user)
        except AuthenticationError as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise AuthenticationException("Authentication failed")

        current_app.user_repository.record_login(user.id)

        logger.info(
            "User logged in successfully",
            extra={"user_id": user.id, "role": user.role, "ip_address": request.remote_addr}
        )
        span.set_attributes({"user.id": user.id, "user.role": user.role})
        span.set_status(Status(StatusCode.OK))

        return jsonify({**tokens, "user": _user_summary(user), "_links": _auth_links()})


@auth_bp.post('/refresh', responses={200: AuthTokenResponse, 401: ErrorResponse})
@validate_json(RefreshTokenRequest)
def refresh_token(request_data):
    """
    Issue a new access token.

    The user is reloaded so that role changes apply to the new token.
    """
    with tracer.start_as_current_span("auth.refresh", attributes={"operation": "refresh"}) as span:
        auth_service = current_app.auth_service
        token = request_data.refresh_token

        if current_app.auth_middleware.is_token_blocked(token):
            span.set_status(Status(StatusCode.ERROR, "Refresh token revoked"))
            raise AuthenticationException("Token has been revoked")

        user_id = auth_service.peek_subject(token)
        if not user_id:
            raise AuthenticationException("Invalid refresh token")

        try:
            user = current_app.user_repository.get(user_id)
        except NotFoundException:
            raise AuthenticationException("Invalid refresh token")

        if not user.is_active():
            raise AuthenticationException("Account is inactive")

        try:
            tokens = auth_service.refresh_access_token(token, user)
        except (TokenValidationError, AuthenticationError) as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            logger.warning("Token refresh failed", extra={"user_id": user_id, "error": str(e)})
            raise AuthenticationException(str(e))

        span.set_attribute("user.id", user.id)
        return jsonify({**tokens, "user": _user_summary(user), "_links": _auth_links()})


@auth_bp.post('/logout')
@require_auth
def logout(user_context):
    """
    Revoke the current access token.

    A refresh token passed in the JSON body is revoked too. Revocation needs
    Redis; without it tokens stay valid until they expire.
    """
    with tracer.start_as_current_span(
        "auth.logout",
        attributes={"operation": "logout", "user.id": user_context.user_id}
    ) as span:
        auth_service = current_app.auth_service
        tokens = [current_app.auth_middleware.extract_token_from_request()]

        body = request.get_json(silent=True) if request.is_json else None
        if isinstance(body, dict) and body.get("refresh_token"):
            tokens.append(body["refresh_token"])

        revoked = 0
        for token in tokens:
            try:
                token_id = auth_service.extract_token_id(token)
            except TokenValidationError:
                continue
            if current_app.redis_service.block_token(token_id, auth_service.token_ttl_seconds(token)):
                revoked += 1

        span.set_attribute("auth.tokens_revoked", revoked)
        logger.info(
            "User logged out",
            extra={"user_id": user_context.user_id, "tokens_revoked": revoked}
        )

        return jsonify({
            "message": "Logged out",
            "tokens_revoked": revoked,
            "_links": {"login": {"href": f"{current_app.config['BASE_URL']}/api/auth/login"}}
        })


@auth_bp.get('/me', responses={200: UserResponse, 401: ErrorResponse})
@require_auth
def me(user_context):
    """Current user with the capabilities granted by the role."""
    with tracer.start_as_current_span("auth.me", attributes={"user.id": user_context.user_id}):
        return jsonify({
            "id": user_context.user_id,
            "email": user_context.email,
            "name": user_context.name,
            "role": user_context.role,
            "permissions": [
                {"name": permission, "description": get_permission_description(permission)}
                for permission in user_context.permissions
            ],
            "_links": _auth_links()
        })
