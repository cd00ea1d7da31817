# SPDX-License-Identifier: Apache-2.0

"""
Domain logic package for the Lumin platform.

This package contains pure business logic functions with no side effects:
downtime computation, role capabilities and the luminaria workflow.
"""
