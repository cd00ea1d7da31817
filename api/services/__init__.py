# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - External integrations and side effects.
"""

from .mongodb import MongoDBService, PaginationResult, get_mongodb_service
from .history import HistoryService
from .kmz import KmlPoint, KmzProcessingError, process_kmz_file

__all__ = [
    "MongoDBService",
    "PaginationResult",
    "get_mongodb_service",
    "HistoryService",
    "KmlPoint",
    "KmzProcessingError",
    "process_kmz_file"
]
