# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
HAL (Hypertext Application Language) response formatting utilities.
Implements HATEOAS Level-3 API responses with conditional affordance links.
"""

from typing import Dict, List, Any, Optional
from urllib.parse import quote, urlencode
import math

from models.responses import HalLink
from domain.authorization import (
    LUMINARIA_UPLOAD,
    available_luminaria_actions,
    can_manage_user,
    has_capability
)

PROBLEM_TYPE_BASE = "https://api.lumin.example/problems"

LUMINARIA_ACTION_TITLES = {
    "report": "Report problem",
    "verify": "Verify in field",
    "fix": "Mark as fixed",
}


def _dump_links(links: Dict[str, HalLink]) -> Dict[str, Dict[str, Any]]:
    return {rel: link.model_dump(exclude_none=True) for rel, link in links.items()}


class HalLinkBuilder:
    """Builder for HAL links with proper URL construction."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/')

    def build_link(
        self,
        path: str,
        method: str = "GET",
        content_type: Optional[str] = None,
        title: Optional[str] = None,
        templated: bool = False
    ) -> HalLink:
        """Build a HAL link with an absolute href."""
        href = f"{self.base_url}/{path.lstrip('/')}"

        return HalLink(
            href=href,
            method=method,
            type=content_type,
            title=title,
            templated=templated or None
        )

    def build_self_link(self, resource_path: str) -> HalLink:
        """Build self link for a resource."""
        return self.build_link(resource_path, title="Self")

    def build_collection_link(self, collection_path: str) -> HalLink:
        """Build link to parent collection."""
        return self.build_link(collection_path, title="Collection")

    def build_action_link(
        self,
        resource_path: str,
        action: str,
        method: str = "POST",
        title: Optional[str] = None
    ) -> HalLink:
        """Build action link for a resource."""
        return self.build_link(
            f"{resource_path}/{action}",
            method=method,
            content_type="application/json",
            title=title or action.title()
        )


class PaginationLinkBuilder:
    """Builder for pagination links in HAL collections."""

    def __init__(self, base_url: str):
        self.link_builder = HalLinkBuilder(base_url)

    def _page_link(self, base_path: str, params: Dict[str, Any], page: int,
                   page_size: int, title: str) -> HalLink:
        query = urlencode({**params, 'page': page, 'page_size': page_size})
        return self.link_builder.build_link(f"{base_path}?{query}", title=title)

    def build_pagination_links(
        self,
        base_path: str,
        current_page: int,
        total_pages: int,
        page_size: int,
        query_params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, HalLink]:
        """Build self/first/prev/next/last links for a collection page."""
        params = {k: v for k, v in (query_params or {}).items() if v is not None}
        links = {'self': self._page_link(base_path, params, current_page, page_size, "Current page")}

        if current_page > 1:
            links['first'] = self._page_link(base_path, params, 1, page_size, "First page")
            links['prev'] = self._page_link(base_path, params, current_page - 1, page_size, "Previous page")

        if current_page < total_pages:
            links['next'] = self._page_link(base_path, params, current_page + 1, page_size, "Next page")
            links['last'] = self._page_link(base_path, params, total_pages, page_size, "Last page")

        return links


class AffordanceLinkBuilder:
    """Builder for conditional affordance links based on role and state."""

    def __init__(self, base_url: str):
        self.link_builder = HalLinkBuilder(base_url)

    def build_luminaria_affordances(
        self,
        luminaria_id: str,
        status: str,
        actor: Any,
        photo_url: Optional[str] = None
    ) -> Dict[str, HalLink]:
        """Build links for a luminaria; workflow actions depend on status and role."""
        base_path = f"/api/luminarias/{quote(luminaria_id, safe='')}"

        links = {
            'self': self.link_builder.build_self_link(base_path),
            'collection': self.link_builder.build_collection_link("/api/luminarias"),
            'history': self.link_builder.build_link(f"{base_path}/history", title="History"),
        }

        if photo_url:
            links['photo'] = self.link_builder.build_link(photo_url, title="Verification photo")

        for action in available_luminaria_actions(status, actor):
            if action == "delete":
                links['delete'] = self.link_builder.build_link(
                    base_path,
                    method="DELETE",
                    title="Delete luminaria"
                )
            else:
                links[action] = self.link_builder.build_action_link(
                    base_path, action, title=LUMINARIA_ACTION_TITLES[action]
                )

        return links

    def build_user_affordances(
        self,
        user_id: str,
        actor: Any,
        current_user_id: str
    ) -> Dict[str, HalLink]:
        """Build conditional affordance links for users."""
        base_path = f"/api/users/{user_id}"

        links = {
            'self': self.link_builder.build_self_link(base_path),
            'collection': self.link_builder.build_collection_link("/api/users"),
        }

        if can_manage_user(actor, current_user_id, user_id).allowed:
            links['assign_role'] = self.link_builder.build_action_link(
                base_path, "role", method="PUT", title="Change role"
            )
            links['delete'] = self.link_builder.build_link(
                base_path,
                method="DELETE",
                title="Delete user"
            )

        return links


class HalResponseBuilder:
    """Main HAL response builder."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/')
        self.link_builder = HalLinkBuilder(base_url)
        self.pagination_builder = PaginationLinkBuilder(base_url)
        self.affordance_builder = AffordanceLinkBuilder(base_url)

    def build_resource_response(
        self,
        data: Dict[str, Any],
        resource_type: str,
        resource_id: str,
        actor: Any = None,
        current_user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Build a HAL resource response with affordance links for the actor."""
        response = dict(data)

        if resource_type == "luminaria":
            links = self.affordance_builder.build_luminaria_affordances(
                resource_id,
                data.get('status', ''),
                actor,
                data.get('photo_url')
            )
        elif resource_type == "user":
            links = self.affordance_builder.build_user_affordances(
                resource_id,
                actor,
                current_user_id or ""
            )
        elif resource_type == "history":
            links = {
                'luminaria': self.link_builder.build_link(
                    f"/api/luminarias/{quote(str(data.get('luminaria_id')), safe='')}", title="Luminaria"
                )
            }
        else:
            links = {'self': self.link_builder.build_self_link(f"/api/{resource_type}/{resource_id}")}

        response['_links'] = _dump_links(links)
        return response

    def build_collection_response(
        self,
        items: List[Dict[str, Any]],
        total: int,
        page: int,
        page_size: int,
        collection_path: str,
        query_params: Optional[Dict[str, Any]] = None,
        extra_links: Optional[Dict[str, HalLink]] = None
    ) -> Dict[str, Any]:
        """Build a HAL collection response with pagination links."""
        total_pages = math.ceil(total / page_size) if page_size > 0 else 1

        links = self.pagination_builder.build_pagination_links(
            collection_path,
            page,
            total_pages,
            page_size,
            query_params
        )
        links.update(extra_links or {})

        return {
            'total': total,
            'page': page,
            'page_size': page_size,
            'total_pages': total_pages,
            '_links': _dump_links(links),
            '_embedded': {
                'items': items
            }
        }

    def build_error_response(
        self,
        error_type: str,
        title: str,
        status: int,
        detail: str,
        instance: str,
        validation_errors: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """Build RFC 7807 compliant error response with HAL links."""
        error_response = {
            'type': f"{PROBLEM_TYPE_BASE}/{error_type}",
            'title': title,
            'status': status,
            'detail': detail,
            'instance': instance
        }

        if validation_errors:
            error_response['errors'] = validation_errors

        links = {
            'help': self.link_builder.build_link(
                f"/docs/errors#{error_type}",
                title="Error documentation"
            )
        }

        if error_type == "validation-error":
            links['schema'] = self.link_builder.build_link("/openapi/openapi.json", title="API schema")
        elif error_type == "authentication-required":
            links['login'] = self.link_builder.build_link(
                "/api/auth/login",
                method="POST",
                content_type="application/json",
                title="Login"
            )
        elif error_type == "insufficient-permissions":
            links['permissions'] = self.link_builder.build_link("/api/auth/me", title="Current user")

        error_response['_links'] = _dump_links(links)
        return error_response


class HalFormatter:
    """High-level HAL formatter with convenience methods."""

    def __init__(self, base_url: str):
        self.builder = HalResponseBuilder(base_url)

    def format_luminaria(self, luminaria: Dict[str, Any], actor: Any) -> Dict[str, Any]:
        """Format a luminaria with workflow affordances."""
        return self.builder.build_resource_response(luminaria, "luminaria", luminaria['id'], actor)

    def format_luminaria_collection(
        self,
        luminarias: List[Dict[str, Any]],
        total: int,
        page: int,
        page_size: int,
        actor: Any,
        filters: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Format a page of luminarias."""
        items = [self.format_luminaria(lum, actor) for lum in luminarias]
        extra = {
            'summary': self.builder.link_builder.build_link("/api/luminarias/summary", title="Status summary")
        }
        if has_capability(actor, LUMINARIA_UPLOAD):
            extra['upload'] = self.builder.link_builder.build_link(
                "/api/luminarias/upload",
                method="POST",
                content_type="multipart/form-data",
                title="Import KMZ file"
            )
        return self.builder.build_collection_response(
            items, total, page, page_size, "/api/luminarias", filters, extra
        )

    def format_history_collection(
        self,
        entries: List[Dict[str, Any]],
        total: int,
        page: int,
        page_size: int,
        collection_path: str = "/api/history",
        filters: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Format history entries, each linked to its luminaria."""
        items = [
            self.builder.build_resource_response(entry, "history", entry['id'])
            for entry in entries
        ]
        return self.builder.build_collection_response(
            items, total, page, page_size, collection_path, filters
        )

    def format_user(self, user: Dict[str, Any], actor: Any, current_user_id: str) -> Dict[str, Any]:
        """Format a user with HAL links."""
        return self.builder.build_resource_response(user, "user", user['id'], actor, current_user_id)

    def format_user_collection(
        self,
        users: List[Dict[str, Any]],
        total: int,
        page: int,
        page_size: int,
        actor: Any,
        current_user_id: str
    ) -> Dict[str, Any]:
        """Format a page of users."""
        items = [self.format_user(user, actor, current_user_id) for user in users]
        return self.builder.build_collection_response(items, total, page, page_size, "/api/users")

    def format_validation_error(
        self,
        detail: str,
        instance: str,
        validation_errors: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """Format a validation error response."""
        return self.builder.build_error_response(
            "validation-error", "Validation Error", 400, detail, instance, validation_errors
        )

    def format_authentication_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format an authentication error response."""
        return self.builder.build_error_response(
            "authentication-required", "Authentication Required", 401, detail, instance
        )

    def format_authorization_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format an authorization error response."""
        return self.builder.build_error_response(
            "insufficient-permissions", "Insufficient Permissions", 403, detail, instance
        )

    def format_not_found_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format a not found error response."""
        return self.builder.build_error_response(
            "resource-not-found", "Resource Not Found", 404, detail, instance
        )

    def format_conflict_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format a conflict error response."""
        return self.builder.build_error_response(
            "resource-conflict", "Resource Conflict", 409, detail, instance
        )

    def format_service_unavailable_error(self, detail: str, instance: str) -> Dict[str, Any]:
        return self.builder.build_error_response(
            "service-unavailable", "Service Unavailable", 503, detail, instance
        )

    def format_server_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format a server error response."""
        return self.builder.build_error_response(
            "internal-server-error", "Internal Server Error", 500, detail, instance
        )


def create_hal_formatter(base_url: str) -> HalFormatter:
    """Create a HAL formatter instance."""
    return HalFormatter(base_url)
