"""Resource endpoint models.

The core only inspects the paging envelope; each item is passed through
unchanged to whoever consumes the collection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict

MAX_PAGE_LIMIT = 50


@dataclass(frozen=True)
class ResourceRequest:
    """Bearer-authenticated page request against the resource endpoint."""

    resource_endpoint: str
    access_token: str = field(repr=False)
    limit: int = 20
    offset: int = 0

    def __post_init__(self) -> None:
        if not (1 <= self.limit <= MAX_PAGE_LIMIT):
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_LIMIT}")
        if self.offset < 0:
            raise ValueError("offset must not be negative")

    def to_query_params(self) -> dict[str, int]:
        return {"limit": self.limit, "offset": self.offset}

    def to_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
        }


class ResourceItem(BaseModel):
    """One entry of the saved-items collection: ``{added_at, track}``."""

    model_config = ConfigDict(extra="allow")

    added_at: str | None = None
    track: dict[str, Any] | None = None


class ResourceCollection(BaseModel):
    """Paging object returned by the resource endpoint."""

    model_config = ConfigDict(extra="allow")

    items: list[ResourceItem]
    limit: int | None = None
    offset: int | None = None
    total: int | None = None
    next: str | None = None
    previous: str | None = None

    def __len__(self) -> int:
        return len(self.items)

    def has_more(self) -> bool:
        return self.next is not None
