from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Page(BaseModel):
    """One page of a list endpoint (paginated envelope or bare list)."""

    model_config = ConfigDict(extra="ignore")

    results: List[Dict[str, Any]] = Field(default_factory=list)
    count: Optional[int] = None
    page_size: Optional[int] = None
    page: int = 1
    next: Optional[str] = None
    previous: Optional[str] = None

    @property
    def total_pages(self) -> int:
        if self.count and self.page_size:
            return max(1, math.ceil(self.count / self.page_size))
        return 1


def parse_page(payload: Any, *, page: int = 1) -> Page:
    if isinstance(payload, list):
        items = [x for x in payload if isinstance(x, dict)]
        return Page(results=items, count=len(items), page=page)
    if isinstance(payload, dict):
        results = payload.get("results")
        if not isinstance(results, list):
            results = []
        return Page.model_validate({**payload, "results": [x for x in results if isinstance(x, dict)], "page": page})
    return Page(page=page)
