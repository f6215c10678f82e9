from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class Collection:
    name: str


@dataclass(frozen=True)
class SchemaDocument:
    """Parsed schema listing; collections keep the order the store returned."""

    collections: Tuple[Collection, ...] = ()

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(c.name for c in self.collections)


@dataclass(frozen=True)
class SearchHit:
    id: Optional[str] = None
    title: Optional[str] = None
    body: Optional[str] = None
    distance: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize, leaving out fields the store did not return."""
        out: Dict[str, Any] = {}
        for key in ("id", "title", "body", "distance"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out

    def snippet(self, max_len: int = 160) -> str:
        """Return a centered snippet of the body: beginning + ... + ending.

        If the body is shorter than or equal to max_len, returns it whole.
        If max_len <= 3, returns leading max_len characters (no ellipsis logic).
        """
        s = self.body or ""
        if len(s) <= max_len:
            return s
        if max_len <= 3:
            return s[:max_len]
        budget = max_len - 3
        head_len = budget // 2
        tail_len = budget - head_len
        return f"{s[:head_len]}...{s[-tail_len:]}"


def format_search_hit(hit: "SearchHit", max_len: int = 160) -> str:
    """Create a compact string representation for logs/printing.

    Example: "id=42; dist=0.1234; title=Cookies; body=<snippet>"
    """
    dist_str = f"{hit.distance:.4f}" if hit.distance is not None else "?"
    return f"id={hit.id or '?'}; dist={dist_str}; title={hit.title or ''}; body={hit.snippet(max_len)}"
