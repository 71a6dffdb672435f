"""Pagination parameters and paged list responses."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

DEFAULT_OFFSET_SIZE = 0
DEFAULT_LIMIT_SIZE = 20

_U64_MAX = 2**64 - 1
_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1


def _parse_int(args: Mapping[str, Any], key: str, low: int, high: int) -> int | None:
    raw = args.get(key)
    if raw is None:
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"invalid value for `{key}`: {raw!r}") from None
    if not low <= value <= high:
        raise ValueError(f"value for `{key}` out of range: {raw!r}")
    return value


@dataclass(frozen=True)
class Pagination:
    """Optional offset and limit taken from a query string."""

    offset: int | None = None
    limit: int | None = None

    @classmethod
    def from_query(cls, args: Mapping[str, Any]) -> Pagination:
        """Parse ``offset`` and ``limit``; raise ``ValueError`` on bad values."""
        return cls(
            offset=_parse_int(args, "offset", 0, _U64_MAX),
            limit=_parse_int(args, "limit", _I64_MIN, _I64_MAX),
        )

    def effective(self) -> tuple[int, int]:
        """Offset and limit with defaults filled in."""
        offset = DEFAULT_OFFSET_SIZE if self.offset is None else self.offset
        limit = DEFAULT_LIMIT_SIZE if self.limit is None else self.limit
        return offset, limit


def _href(resource: str, offset: int, limit: int) -> dict[str, str]:
    return {"href": f"/api/{resource}?offset={offset}&limit={limit}"}


def build_list_response(
    resource: str,
    items: Iterable[Any],
    offset: int,
    limit: int,
    total: int,
) -> dict[str, Any]:
    """Build a paged response with ``data``, ``meta`` and ``_link`` sections."""
    if limit == 0:
        raise ValueError("limit must not be zero")
    # A negative limit acts as a huge unsigned divisor, so the last page is 0.
    last_offset = (total // limit) * limit if limit > 0 else 0
    signed_offset = offset if offset <= _I64_MAX else 0
    next_offset = signed_offset + limit
    previous_offset = signed_offset - limit

    previous = None if previous_offset < 0 else _href(resource, previous_offset, limit)
    following = (
        None
        if next_offset < 0 or next_offset > last_offset
        else _href(resource, next_offset, limit)
    )
    return {
        "data": list(items),
        "meta": {
            "offset": offset,
            "limit": limit,
            "total_results": total,
            "search_criteria": None,
            "sort_by": None,
        },
        "_link": {
            "first": _href(resource, 0, limit),
            "last": _href(resource, last_offset, limit),
            "previous": previous,
            "next": following,
            "self_link": _href(resource, offset, limit),
        },
    }