from __future__ import annotations

from typing import Any, Dict

from crowdfund.http.client import ApiClient
from crowdfund.services.pagination import Page, parse_page


async def list_donations(api: ApiClient, page: int = 1) -> Page:
    """Donations made by the logged-in user, one page at a time."""
    page = max(1, int(page))
    resp = await api.get("donations/", params={"page": page})
    return parse_page(resp.payload, page=page)


async def donate(api: ApiClient, project_id: int, amount: Any) -> Dict[str, Any]:
    # Amount is sent as given; the server owns validation.
    resp = await api.post("donations/", json={"project": project_id, "amount": amount})
    return resp.payload if isinstance(resp.payload, dict) else {}
