#!/usr/bin/env python3
# SPDX-License-Identifier: Apache-2.0

"""
Bootstrap the first administrator account.

Public signups only create viewers, so a fresh deployment needs one admin
created out of band. Reads ADMIN_EMAIL, ADMIN_PASSWORD and ADMIN_NAME.
"""

import os
import sys
import logging

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.mongodb import get_mongodb_service
from services.users import UserRepository
from services.auth import AuthService
from models.entities import User
from models.enums import UserRole
from middleware.error_handler import ConflictException

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def main() -> int:
    email = os.getenv("ADMIN_EMAIL")
    password = os.getenv("ADMIN_PASSWORD")
    if not email or not password:
        logger.error("ADMIN_EMAIL and ADMIN_PASSWORD must be set")
        return 1

    mongodb_service = get_mongodb_service()
    users = UserRepository(mongodb_service)
    try:
        admin = User(
            email=email,
            name=os.getenv("ADMIN_NAME", "Administrador"),
            password_hash=AuthService().hash_password(password),
            role=UserRole.ADMIN,
            created_by="bootstrap",
            updated_by="bootstrap"
        )
        users.create(admin)
    except ConflictException as e:
        logger.error(e.message)
        return 1
    finally:
        mongodb_service.close_connection()

    logger.info(f"Administrator {admin.email} created with id {admin.id}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
