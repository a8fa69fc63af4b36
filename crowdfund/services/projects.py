"""Project discovery and project owner endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from crowdfund.http.client import ApiClient
from crowdfund.services.pagination import Page, parse_page


async def list_projects(api: ApiClient, params: Optional[Mapping[str, Any]] = None) -> Page:
    """
    List projects.

    Args:
        api: Session-bound client
        params: Query parameters passed through (e.g. `featured`, `limit`, `category`, `page`)
    """
    resp = await api.get("project/", params=dict(params or {}))
    page = int((params or {}).get("page") or 1)
    return parse_page(resp.payload, page=page)


async def get_project(api: ApiClient, slug: str) -> Dict[str, Any]:
    resp = await api.get(f"projects/{slug}/")
    return resp.payload if isinstance(resp.payload, dict) else {}


async def list_categories(api: ApiClient) -> List[Dict[str, Any]]:
    resp = await api.get("categories/")
    return parse_page(resp.payload).results


async def my_projects(api: ApiClient) -> List[Dict[str, Any]]:
    """Projects owned by the logged-in user (401 forces logout)."""
    resp = await api.get("projects/my-projects/")
    return parse_page(resp.payload).results


async def create_project(
    api: ApiClient, fields: Mapping[str, Any], files: Optional[Mapping[str, Any]] = None
) -> Dict[str, Any]:
    if files:
        resp = await api.post("project/", data=dict(fields), files=files)
    else:
        resp = await api.post("project/", json=dict(fields))
    return resp.payload if isinstance(resp.payload, dict) else {}


async def update_project(
    api: ApiClient, slug: str, fields: Mapping[str, Any], files: Optional[Mapping[str, Any]] = None
) -> Dict[str, Any]:
    if files:
        resp = await api.put(f"projects/{slug}/", data=dict(fields), files=files)
    else:
        resp = await api.put(f"projects/{slug}/", json=dict(fields))
    return resp.payload if isinstance(resp.payload, dict) else {}
