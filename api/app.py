"""
Lumin API - Flask Application Entry Point

This module initializes the Flask application with OpenAPI 3.0 support,
configures middleware, and wires the services of the streetlight outage
monitoring platform.
"""

import os
import time
from datetime import datetime
from flask import jsonify
from flask_openapi3 import OpenAPI, Info, Tag
from observability.config import setup_observability
from observability.middleware import add_observability_middleware

from middleware.cors import configure_cors
from middleware.error_handler import ErrorHandlerMiddleware, register_custom_error_handlers
from middleware.validation import ValidationMiddleware
from middleware.auth import AuthMiddleware
from services.hal import create_hal_formatter
from services.mongodb import MongoDBService
from services.redis import RedisService
from services.auth import AuthService
from services.history import HistoryService
from services.luminarias import LuminariaRepository
from services.users import UserRepository
from services.storage import PhotoStorageService, DEFAULT_MAX_PHOTO_BYTES
from services.kmz import DEFAULT_MAX_KML_BYTES
from services.health import HealthCheckService, SERVICE_NAME, SERVICE_VERSION

# Initialize observability first
setup_observability()

info = Info(
    title="Lumin API",
    version=SERVICE_VERSION,
    description="Streetlight outage monitoring API with HAL affordances"
)

tags = [
    Tag(name="Authentication", description="User authentication and authorization"),
    Tag(name="Luminarias", description="Streetlight inventory and outage workflow"),
    Tag(name="Operations", description="History feed and downtime calculator"),
    Tag(name="Reports", description="Inventory exports"),
    Tag(name="Users", description="User accounts and roles"),
    Tag(name="Health", description="System health and status")
]

app = OpenAPI(__name__, info=info)

add_observability_middleware(app)

# Environment configuration
app.config['ENVIRONMENT'] = os.getenv('ENVIRONMENT', 'development')
app.config['DEBUG'] = app.config['ENVIRONMENT'] == 'development'
app.config['DOCS_ENABLED'] = os.getenv('DOCS_ENABLED', 'true').lower() == 'true'
app.config['OTEL_ENABLED'] = os.getenv('OTEL_ENABLED', 'true').lower() == 'true'

# Database configuration
app.config['MONGODB_URI'] = os.getenv('MONGODB_URI', 'mongodb://localhost:27017/lumin_dev')
app.config['MONGODB_DATABASE'] = os.getenv('MONGODB_DATABASE')
app.config['REDIS_URL'] = os.getenv('REDIS_URL', '')
app.config['REDIS_TOKEN'] = os.getenv('REDIS_TOKEN', '')

# Uploads
app.config['MAX_PHOTO_BYTES'] = int(os.getenv('MAX_PHOTO_BYTES', str(DEFAULT_MAX_PHOTO_BYTES)))
app.config['MAX_CONTENT_LENGTH'] = int(os.getenv('MAX_UPLOAD_BYTES', str(20 * 1024 * 1024)))
app.config['MAX_KML_BYTES'] = int(os.getenv('MAX_KML_BYTES', str(DEFAULT_MAX_KML_BYTES)))

# API configuration
app.config['BASE_URL'] = os.getenv('BASE_URL', 'http://localhost:5000').rstrip('/')

# Initialize services
mongodb_service = MongoDBService(app.config['MONGODB_URI'], app.config['MONGODB_DATABASE'])
redis_service = RedisService(app.config['REDIS_URL'] or None, app.config['REDIS_TOKEN'] or None)
auth_service = AuthService(os.getenv('JWT_PRIVATE_KEY'), os.getenv('JWT_PUBLIC_KEY'))
history_service = HistoryService(mongodb_service)
luminaria_repository = LuminariaRepository(mongodb_service, redis_service)
user_repository = UserRepository(mongodb_service)
storage_service = PhotoStorageService(mongodb_service, app.config['MAX_PHOTO_BYTES'])
health_service = HealthCheckService(mongodb_service, redis_service)

# Initialize middleware
hal_formatter = create_hal_formatter(app.config['BASE_URL'])
validation_middleware = ValidationMiddleware(app.config['BASE_URL'])
auth_middleware = AuthMiddleware(auth_service, redis_service)
error_handler = ErrorHandlerMiddleware(app, app.config['BASE_URL'])

cors_middleware = configure_cors(app, allow_credentials=True)

register_custom_error_handlers(app, hal_formatter)

# Make services available to routes
app.mongodb_service = mongodb_service
app.redis_service = redis_service
app.auth_service = auth_service
app.history_service = history_service
app.luminaria_repository = luminaria_repository
app.user_repository = user_repository
app.storage_service = storage_service
app.health_service = health_service
app.hal_formatter = hal_formatter
app.validation_middleware = validation_middleware
app.auth_middleware = auth_middleware

# Register routes
from routes.auth import auth_bp
from routes.luminarias import luminarias_bp, operations_bp
from routes.reports import reports_bp
from routes.users import users_bp

app.register_api(auth_bp)
app.register_api(luminarias_bp)
app.register_api(operations_bp)
app.register_api(reports_bp)
app.register_api(users_bp)

STARTED_AT = time.time()


def _health_links(path: str) -> dict:
    return {
        "self": {"href": f"{app.config['BASE_URL']}{path}"},
        "health": {"href": f"{app.config['BASE_URL']}/api/healthz"},
        "status": {"href": f"{app.config['BASE_URL']}/api/status"},
        "docs": {"href": f"{app.config['BASE_URL']}/openapi"}
    }


@app.route('/api/healthz')
def health_check():
    """Health check endpoint with dependency monitoring."""
    health_data = app.health_service.get_comprehensive_health()
    health_data["_links"] = _health_links("/api/healthz")

    status_code = 503 if health_data["status"] == "unhealthy" else 200
    return jsonify(health_data), status_code


@app.route('/api/status')
def system_status():
    """Detailed system status and configuration."""
    health_data = app.health_service.get_comprehensive_health()

    return jsonify({
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "environment": app.config['ENVIRONMENT'],
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "status": health_data["status"],
        "uptime": {
            "uptime_seconds": round(time.time() - STARTED_AT, 2),
            "started_at": datetime.utcfromtimestamp(STARTED_AT).isoformat() + "Z",
            "process_id": os.getpid()
        },
        "configuration": {
            "redis_configured": redis_service.is_available(),
            "base_url": app.config['BASE_URL'],
            "debug_mode": app.config['DEBUG'],
            "max_photo_bytes": app.config['MAX_PHOTO_BYTES']
        },
        "feature_flags": {
            "docs_enabled": app.config['DOCS_ENABLED'],
            "otel_enabled": app.config['OTEL_ENABLED']
        },
        "dependencies": health_data["dependencies"],
        "system_metrics": health_data["system_metrics"],
        "_links": _health_links("/api/status")
    })


if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=app.config['DEBUG']
    )
