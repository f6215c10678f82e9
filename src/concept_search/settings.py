from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from concept_search.search.types import DEFAULT_LIMIT

load_dotenv(override=True)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    seconds = float(value)
    # 0 or negative disables the deadline
    return seconds if seconds > 0 else None


def _base_path(raw: str) -> str:
    # Optional base path for deployments under a subpath (e.g. /concept-search)
    path = raw.strip()
    if path and not path.startswith("/"):
        path = "/" + path
    if path.endswith("/") and path != "/":
        path = path.rstrip("/")
    return path


@dataclass(frozen=True)
class Settings:
    milvus_uri: str = "http://localhost:19530"
    milvus_token: str = "root:Milvus"
    vector_field: Optional[str] = None
    metric_type: Optional[str] = None
    default_limit: int = DEFAULT_LIMIT
    deadline_seconds: Optional[float] = 10.0
    concurrent: bool = False
    log_level: str = "INFO"
    api_base_path: str = ""

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            milvus_uri=os.getenv("MILVUS_URI", cls.milvus_uri),
            milvus_token=os.getenv("MILVUS_TOKEN", cls.milvus_token),
            vector_field=os.getenv("MILVUS_VECTOR_FIELD") or None,
            metric_type=os.getenv("MILVUS_METRIC_TYPE") or None,
            default_limit=int(os.getenv("SEARCH_DEFAULT_LIMIT", str(DEFAULT_LIMIT))),
            deadline_seconds=_env_float("SEARCH_DEADLINE_SECONDS", cls.deadline_seconds),
            concurrent=_env_bool("SEARCH_CONCURRENT"),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            api_base_path=_base_path(os.getenv("API_BASE_PATH", "")),
        )
