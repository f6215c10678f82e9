"""Hit normalization and ranking.

Both functions are pure: they never touch the store and never mutate input.
"""

from __future__ import annotations

import math
from typing import Any, Iterable, List, Mapping, Optional

from concept_search.errors import InternalStoreError
from concept_search.vectorstore.schemas import SearchHit


def _optional_str(record: Mapping[str, Any], key: str) -> Optional[str]:
    value = record.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if key == "id" and isinstance(value, int) and not isinstance(value, bool):
        # Milvus INT64 primary keys
        return str(value)
    raise InternalStoreError(f"Field '{key}' has unexpected type {type(value).__name__}")


def _optional_distance(record: Mapping[str, Any]) -> Optional[float]:
    value = record.get("distance")
    if value is None:
        return None
    if isinstance(value, bool):
        raise InternalStoreError("Field 'distance' is not a number")
    try:
        dist = float(value)
    except (TypeError, ValueError) as e:
        raise InternalStoreError(f"Field 'distance' is not a number: {value!r}") from e
    if math.isnan(dist):
        raise InternalStoreError("Field 'distance' is NaN")
    return dist


def normalize_hit(record: Any) -> SearchHit:
    """Turn one raw record into a SearchHit.

    Missing fields stay None. Anything that is not a mapping, or a field of the
    wrong type, raises InternalStoreError.
    """
    if not isinstance(record, Mapping):
        raise InternalStoreError(f"Hit record is not a mapping: {type(record).__name__}")
    return SearchHit(
        id=_optional_str(record, "id"),
        title=_optional_str(record, "title"),
        body=_optional_str(record, "body"),
        distance=_optional_distance(record),
    )


def _ranking_key(hit: SearchHit) -> float:
    # Absent distance ranks as 0.0, ahead of every scored hit.
    return hit.distance or 0.0


def rank_hits(hits: Iterable[SearchHit]) -> List[SearchHit]:
    """Stable sort by distance ascending; ties keep response order."""
    return sorted(hits, key=_ranking_key)
