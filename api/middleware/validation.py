# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request validation middleware using Pydantic models.
Provides automatic request body validation and error formatting.
"""

from functools import wraps
from flask import request, jsonify, current_app
from typing import Type, Callable, Dict, Any, List
from pydantic import BaseModel, ValidationError
from opentelemetry import trace
import logging

from services.hal import HalFormatter

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


class ValidationMiddleware:
    """Middleware for request validation using Pydantic models."""

    def __init__(self, base_url: str):
        self.hal_formatter = HalFormatter(base_url)

    def format_validation_errors(self, validation_error: ValidationError) -> List[Dict[str, Any]]:
        """
        Format Pydantic validation errors for API response.

        Args:
            validation_error: Pydantic ValidationError

        Returns:
            List of formatted error dictionaries
        """
        errors = []

        for error in validation_error.errors():
            field_path = ".".join(str(loc) for loc in error["loc"]) or "body"
            errors.append({
                "field": field_path,
                "message": error["msg"],
                "type": error["type"],
                "input": _json_safe(error.get("input"))
            })

        return errors

    def _error(self, detail: str, errors: List[Dict[str, Any]]):
        return jsonify(self.hal_formatter.format_validation_error(detail, request.path, errors)), 400

    def validate_json_body(self, model_class: Type[BaseModel]) -> Callable:
        """
        Validate the JSON body against ``model_class`` and pass the model to
        the handler as ``request_data``.
        """
        def decorator(f: Callable) -> Callable:
            @wraps(f)
            def decorated_function(*args, **kwargs):
                with tracer.start_as_current_span("validation.validate_json_body") as span:
                    span.set_attributes({
                        "validation.model": model_class.__name__,
                        "http.method": request.method,
                        "http.path": request.path
                    })

                    if not request.is_json:
                        span.set_attribute("validation.result", "invalid_content_type")
                        return self._error(
                            "Request must have Content-Type: application/json",
                            [{
                                "field": "content-type",
                                "message": "Expected application/json",
                                "type": "content_type_error",
                                "input": request.content_type
                            }]
                        )

                    json_data = request.get_json(silent=True)
                    if not isinstance(json_data, dict):
                        span.set_attribute("validation.result", "invalid_json")
                        return self._error(
                            "Invalid JSON in request body",
                            [{
                                "field": "body",
                                "message": "Expected a JSON object",
                                "type": "json_error",
                                "input": None
                            }]
                        )

                    try:
                        validated_data = model_class(**json_data)
                    except ValidationError as e:
                        span.set_attribute("validation.result", "validation_error")
                        validation_errors = self.format_validation_errors(e)

                        logger.warning(
                            "Request validation failed",
                            extra={
                                "model": model_class.__name__,
                                "path": request.path,
                                "method": request.method,
                                "errors": validation_errors
                            }
                        )
                        return self._error(
                            f"Request validation failed for {model_class.__name__}",
                            validation_errors
                        )

                    span.set_attribute("validation.result", "success")
                    kwargs["request_data"] = validated_data
                    return f(*args, **kwargs)

            return decorated_function
        return decorator

    def validate_query_params(self, model_class: Type[BaseModel]) -> Callable:
        """
        Validate query parameters against ``model_class`` and pass the model
        to the handler as ``query_params``.
        """
        def decorator(f: Callable) -> Callable:
            @wraps(f)
            def decorated_function(*args, **kwargs):
                with tracer.start_as_current_span("validation.validate_query_params") as span:
                    span.set_attributes({
                        "validation.model": model_class.__name__,
                        "http.method": request.method,
                        "http.path": request.path
                    })

                    query_data = request.args.to_dict()
                    for key in request.args.keys():
                        values = request.args.getlist(key)
                        if len(values) > 1:
                            query_data[key] = values
                    # Empty values mean "not set"
                    query_data = {k: v for k, v in query_data.items() if v != ""}

                    try:
                        validated_params = model_class(**query_data)
                    except ValidationError as e:
                        span.set_attribute("validation.result", "validation_error")
                        validation_errors = self.format_validation_errors(e)

                        logger.warning(
                            "Query parameter validation failed",
                            extra={
                                "model": model_class.__name__,
                                "path": request.path,
                                "params": query_data,
                                "errors": validation_errors
                            }
                        )
                        return self._error(
                            f"Query parameter validation failed for {model_class.__name__}",
                            validation_errors
                        )

                    span.set_attribute("validation.result", "success")
                    kwargs["query_params"] = validated_params
                    return f(*args, **kwargs)

            return decorated_function
        return decorator


def validate_json(model_class: Type[BaseModel]) -> Callable:
    """Body validation through the application's ValidationMiddleware."""
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            validated = current_app.validation_middleware.validate_json_body(model_class)(f)
            return validated(*args, **kwargs)
        return decorated_function
    return decorator


def validate_query(model_class: Type[BaseModel]) -> Callable:
    """Query validation through the application's ValidationMiddleware."""
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            validated = current_app.validation_middleware.validate_query_params(model_class)(f)
            return validated(*args, **kwargs)
        return decorated_function
    return decorator
