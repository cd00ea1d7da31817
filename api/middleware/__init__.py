# SPDX-License-Identifier: Apache-2.0

"""
Middleware package for request processing.

This package contains middleware components for authentication, capability
checks, validation, CORS and error handling in the Lumin streetlight API.
"""
