from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

from concept_search.errors import ErrorKind, InvalidQueryError
from concept_search.vectorstore.schemas import SearchHit

DEFAULT_LIMIT = 5
MIN_LIMIT = 1
MAX_LIMIT = 50


def clamp_limit(limit: Optional[int], default: int = DEFAULT_LIMIT) -> int:
    """Clamp a result limit to [MIN_LIMIT, MAX_LIMIT]; None means default."""
    if limit is None:
        limit = default
    return max(MIN_LIMIT, min(MAX_LIMIT, int(limit)))


@dataclass(frozen=True)
class Query:
    text: str
    limit: int = DEFAULT_LIMIT

    @classmethod
    def create(cls, text: Any, limit: Any = None, *, default_limit: int = DEFAULT_LIMIT) -> "Query":
        """Validate raw caller input and build a Query.

        Raises InvalidQueryError for empty/non-string text or a limit that is
        not an integer. Out-of-range limits are clamped, not rejected.
        """
        if not isinstance(text, str) or not text.strip():
            raise InvalidQueryError("Query text must be a non-empty string")

        if limit is None or limit == "":
            parsed: Optional[int] = None
        elif isinstance(limit, bool):
            raise InvalidQueryError(f"Invalid limit: {limit!r}")
        elif isinstance(limit, int):
            parsed = limit
        elif isinstance(limit, float) and limit.is_integer():
            # JSON numbers such as 10.0
            parsed = int(limit)
        elif isinstance(limit, str):
            try:
                parsed = int(limit.strip())
            except ValueError as e:
                raise InvalidQueryError(f"Invalid limit: {limit!r}") from e
        else:
            raise InvalidQueryError(f"Invalid limit: {limit!r}")

        return cls(text=text.strip(), limit=clamp_limit(parsed, default_limit))


@dataclass(frozen=True)
class Found:
    collection: str
    hits: Tuple[SearchHit, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "collection": self.collection,
            "results": [hit.to_dict() for hit in self.hits],
        }


@dataclass(frozen=True)
class Empty:
    def to_dict(self) -> Dict[str, Any]:
        return {"success": True, "collection": None, "results": []}


@dataclass(frozen=True)
class Failed:
    reason: ErrorKind
    detail: str = field(default="")

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.reason.value, "details": self.detail}


SearchOutcome = Union[Found, Empty, Failed]
