"""Limit/offset pagination for list endpoints."""

from dataclasses import dataclass

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


@dataclass
class Pagination:
    limit: int = DEFAULT_LIMIT
    offset: int = 0
    total: int = 0
    has_more: bool = False

    @classmethod
    def from_params(cls, limit: int | None = None, offset: int | None = None) -> "Pagination":
        """Clamp raw query parameters into a usable window."""
        if limit is None or limit <= 0:
            limit = DEFAULT_LIMIT
        if limit > MAX_LIMIT:
            limit = MAX_LIMIT
        if offset is None or offset < 0:
            offset = 0
        return cls(limit=limit, offset=offset)

    def set_total(self, total: int) -> None:
        self.total = total
        self.has_more = self.offset + self.limit < total

    @property
    def page(self) -> int:
        """Current page number (1-indexed)."""
        return self.offset // self.limit + 1

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 0
        return -(-self.total // self.limit)

    def to_response(self) -> dict:
        return {
            "limit": self.limit,
            "offset": self.offset,
            "total": self.total,
            "has_more": self.has_more,
            "page": self.page,
            "total_pages": self.total_pages,
        }
