# SPDX-License-Identifier: Apache-2.0

"""
Persistence of user accounts on top of the MongoDB service.
"""

import logging
from datetime import datetime
from typing import Optional

from opentelemetry import trace
from pymongo import ASCENDING

from .mongodb import MongoDBService, PaginationResult, USERS
from models.entities import User
from middleware.error_handler import ConflictException, NotFoundException

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class UserRepository:
    """Loads, creates and updates users; deletion is soft."""

    def __init__(self, mongo_service: MongoDBService):
        self.mongo_service = mongo_service
        self.collection_name = USERS

    def get(self, user_id: str) -> User:
        """
        Load a live user by id.

        Raises:
            NotFoundException: If the user does not exist or was deleted
        """
        document = self.mongo_service.find_one(self.collection_name, user_id)
        if not document:
            raise NotFoundException(f"User {user_id} not found")
        return User.from_document(document)

    def find_by_email(self, email: str) -> Optional[User]:
        document = self.mongo_service.find_one_by(self.collection_name, {"email": email.lower()})
        return User.from_document(document) if document else None

    def create(self, user: User) -> User:
        """
        Store a new user.

        Raises:
            ConflictException: If the email is already registered
        """
        with tracer.start_as_current_span("users.create") as span:
            span.set_attributes({"user.id": user.id, "user.role": user.role})
            try:
                self.mongo_service.create(self.collection_name, user.to_document(), user.created_by)
            except ValueError:
                raise ConflictException(f"Email {user.email} is already registered")
            return user

    def list(self, page: int = 1, page_size: int = 20) -> PaginationResult:
        """Page through live users sorted by email; items are ``User`` instances."""
        result = self.mongo_service.paginate(
            self.collection_name,
            page=page,
            page_size=page_size,
            sort_by="email",
            sort_order=ASCENDING
        )
        result.items = [User.from_document(doc) for doc in result.items]
        return result

    def update_role(self, user_id: str, role: str, updated_by: str) -> User:
        """Change a user's role and return the updated user."""
        if not self.mongo_service.update(self.collection_name, user_id, {"role": role}, updated_by):
            raise NotFoundException(f"User {user_id} not found")
        logger.info("User role changed", extra={"user_id": user_id, "role": role, "updated_by": updated_by})
        return self.get(user_id)

    def record_login(self, user_id: str) -> None:
        self.mongo_service.update(
            self.collection_name, user_id, {"lastLogin": datetime.utcnow()}, user_id
        )

    def delete(self, user_id: str, deleted_by: str) -> bool:
        """Soft delete a user."""
        if not self.mongo_service.soft_delete(self.collection_name, user_id, deleted_by):
            raise NotFoundException(f"User {user_id} not found")
        logger.info("User deleted", extra={"user_id": user_id, "deleted_by": deleted_by})
        return True
