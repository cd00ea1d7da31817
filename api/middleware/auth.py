# SPDX-License-Identifier: Apache-2.0

"""
Authentication middleware for JWT token validation and user context extraction.

This module provides Flask middleware for validating JWT tokens, checking the
blocklist, building the user context and enforcing role capabilities.
"""

from functools import wraps
from flask import request, g, current_app
from typing import Optional, Dict, Any, Callable
from opentelemetry import trace
import logging

from models.entities import UserContext
from domain.authorization import check_capability
from services.auth import TokenValidationError
from middleware.error_handler import AuthenticationException, AuthorizationException

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class AuthMiddleware:
    """
    JWT authentication middleware for Flask applications.

    Handles token extraction, validation, blocklist checking, and user context
    building for protected endpoints.
    """

    def __init__(self, auth_service, redis_service):
        """
        Initialize the authentication middleware.

        Args:
            auth_service: JWT authentication service
            redis_service: Redis service for token blocklist
        """
        self.auth_service = auth_service
        self.redis_service = redis_service

    def extract_token_from_request(self) -> Optional[str]:
        """Extract the bearer token from the Authorization header."""
        auth_header = request.headers.get('Authorization', '').strip()

        if not auth_header:
            return None

        if auth_header.lower().startswith('bearer '):
            return auth_header[7:].strip() or None

        return auth_header

    def is_token_blocked(self, token: str) -> bool:
        """
        Check if token is in the Redis blocklist.

        A token whose id cannot be read is treated as blocked.
        """
        try:
            token_id = self.auth_service.extract_token_id(token)
        except TokenValidationError as e:
            logger.error(f"Error checking token blocklist: {str(e)}")
            return True
        return self.redis_service.is_token_blocked(token_id)

    def build_user_context(self, token_payload: Dict[str, Any], request_info: Dict[str, Any]) -> UserContext:
        """Build the request user context from a validated token payload."""
        return UserContext(
            user_id=token_payload["sub"],
            email=token_payload.get("email"),
            name=token_payload.get("name"),
            role=token_payload.get("role") or "viewer",
            token_payload=token_payload,
            ip_address=request_info.get("ip_address"),
            user_agent=request_info.get("user_agent"),
            session_id=request_info.get("session_id")
        )

    def get_request_info(self) -> Dict[str, Any]:
        """Extract request metadata for user context."""
        return {
            "ip_address": request.remote_addr,
            "user_agent": request.headers.get('User-Agent', ''),
            "session_id": request.headers.get('X-Session-ID'),
            "request_id": request.headers.get('X-Request-ID')
        }

    def authenticate(self) -> UserContext:
        """
        Authenticate the current request.

        Raises:
            AuthenticationException: If the token is missing, revoked or invalid
        """
        with tracer.start_as_current_span("auth.middleware.validate_request") as span:
            span.set_attribute("auth.operation", "validate_request")

            token = self.extract_token_from_request()
            if not token:
                span.set_attribute("auth.result", "missing_token")
                logger.warning("Authentication failed: missing token")
                raise AuthenticationException("Missing authorization token")

            if self.is_token_blocked(token):
                span.set_attribute("auth.result", "token_blocked")
                logger.warning("Authentication failed: token is blocked")
                raise AuthenticationException("Token has been revoked")

            try:
                token_payload = self.auth_service.validate_token(token, "access")
            except TokenValidationError as e:
                span.set_attribute("auth.result", "invalid_token")
                logger.warning(f"Authentication failed: {str(e)}")
                raise AuthenticationException(str(e))

            user_context = self.build_user_context(token_payload, self.get_request_info())
            g.user_context = user_context
            g.access_token = token

            span.set_attributes({
                "auth.result": "success",
                "user.id": user_context.user_id,
                "user.role": user_context.role
            })
            return user_context


def _middleware() -> AuthMiddleware:
    return current_app.auth_middleware


def require_auth(f: Callable) -> Callable:
    """
    Require a valid access token; the handler receives the user context as
    its first argument.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_context = _middleware().authenticate()
        return f(user_context, *args, **kwargs)

    return decorated_function


def require_capability(capability: str) -> Callable:
    """
    Require a valid access token whose role grants ``capability``.

    Args:
        capability: Capability string such as ``luminaria:report``

    Returns:
        Decorator function
    """
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user_context = _middleware().authenticate()

            with tracer.start_as_current_span("auth.middleware.check_permission") as span:
                span.set_attributes({
                    "auth.operation": "check_permission",
                    "auth.required_permission": capability,
                    "user.id": user_context.user_id,
                    "user.role": user_context.role
                })

                result = check_capability(user_context, capability)
                if not result.allowed:
                    span.set_attribute("auth.permission_result", "denied")
                    logger.warning(
                        f"Authorization failed: missing permission '{capability}'",
                        extra={
                            "user_id": user_context.user_id,
                            "role": user_context.role,
                            "required_permission": capability
                        }
                    )
                    raise AuthorizationException(result.reason)

                span.set_attribute("auth.permission_result", "granted")

            return f(user_context, *args, **kwargs)

        return decorated_function
    return decorator


def optional_auth(f: Callable) -> Callable:
    """
    Pass the user context when a valid token is present, otherwise ``None``.

    An invalid token is ignored rather than rejected.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_context = None
        if _middleware().extract_token_from_request():
            try:
                user_context = _middleware().authenticate()
            except AuthenticationException as e:
                logger.debug(f"Ignoring invalid optional token: {e.message}")
        return f(user_context, *args, **kwargs)

    return decorated_function
