# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.
"""

import io
import os
import zipfile
import pytest
from datetime import datetime
from unittest.mock import Mock, patch

# Set test environment before the application module is imported
os.environ['ENVIRONMENT'] = 'test'
os.environ['OTEL_ENABLED'] = 'false'
os.environ['MONGODB_DATABASE'] = 'lumin_test'
os.environ.pop('REDIS_URL', None)

from models.entities import Luminaria, User, UserContext
from services.mongodb import PaginationResult


@pytest.fixture(scope="session")
def flask_app():
    """The application with its real service wiring."""
    from app import app
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(flask_app):
    """Flask test client."""
    return flask_app.test_client()


@pytest.fixture
def luminaria_repository(flask_app):
    """Mocked luminaria repository attached to the app."""
    repository = Mock()
    with patch.object(flask_app, 'luminaria_repository', repository):
        yield repository


@pytest.fixture
def history_service(flask_app):
    """Mocked history service attached to the app."""
    service = Mock()
    service.record_many.side_effect = lambda entries: len(entries)
    with patch.object(flask_app, 'history_service', service):
        yield service


@pytest.fixture
def storage_service(flask_app):
    """Mocked photo storage attached to the app."""
    service = Mock()
    service.delete_photos_for.return_value = 0
    with patch.object(flask_app, 'storage_service', service):
        yield service


@pytest.fixture
def user_repository(flask_app):
    """Mocked user repository attached to the app."""
    repository = Mock()
    with patch.object(flask_app, 'user_repository', repository):
        yield repository


def build_user(role="viewer", user_id="user-1", email=None, password_hash="$2b$12$hash"):
    return User(
        id=user_id,
        email=email or f"{role}@lumin.example",
        name=f"{role.title()} User",
        password_hash=password_hash,
        role=role,
        created_by="system",
        updated_by="system"
    )


@pytest.fixture
def make_user():
    """Factory for users of a given role."""
    return build_user


@pytest.fixture
def auth_headers(flask_app):
    """Factory returning an Authorization header for a role."""
    def _headers(role="viewer", user_id=None):
        user = build_user(role, user_id or f"{role}-id")
        tokens = flask_app.auth_service.generate_tokens(user)
        return {"Authorization": f"Bearer {tokens['access_token']}"}
    return _headers


@pytest.fixture
def actor():
    """Inspector context used by domain tests."""
    return UserContext(user_id="inspector-1", name="Ana Inspectora", role="inspector")


@pytest.fixture
def now():
    """Fixed local instant for workflow steps."""
    return datetime(2024, 1, 11, 4, 0, 0)


@pytest.fixture
def make_luminaria():
    """Factory for luminarias in any state."""
    def _make(luminaria_id="LUM-001", **fields):
        data = {
            "id": luminaria_id,
            "name": luminaria_id,
            "lat": -34.6037,
            "lng": -58.3816,
            "created_by": "system",
            "updated_by": "system",
        }
        data.update(fields)
        return Luminaria(**data)
    return _make


@pytest.fixture
def page_of():
    """Wrap items in a pagination result."""
    def _page(items, page=1, page_size=50, total=None):
        return PaginationResult(items, len(items) if total is None else total, page, page_size)
    return _page


def build_kml(placemarks):
    """Render (name, coordinates) pairs as a KML document."""
    body = "".join(
        "<Placemark>"
        + (f"<name>{name}</name>" if name is not None else "")
        + f"<Point><coordinates>{coords}</coordinates></Point>"
        "</Placemark>"
        for name, coords in placemarks
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<kml xmlns="http://www.opengis.net/kml/2.2"><Document>'
        f"{body}"
        "</Document></kml>"
    ).encode("utf-8")


def build_kmz(kml: bytes, entry_name="doc.kml") -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(entry_name, kml)
    return buffer.getvalue()


@pytest.fixture
def kmz_bytes():
    """A KMZ archive with two waypoints."""
    return build_kmz(build_kml([
        ("LUM-001", "-58.3816,-34.6037,0"),
        ("LUM-002", "-58.3820,-34.6040,0"),
    ]))


@pytest.fixture
def kml_factory():
    """Factory rendering (name, coordinates) pairs as KML bytes."""
    return build_kml


@pytest.fixture
def kmz_factory():
    """Factory zipping KML bytes into a KMZ archive."""
    return build_kmz
