import logging
import os
import threading
import time
from typing import Optional

from dotenv import load_dotenv
from pymilvus import MilvusClient
from pymilvus.exceptions import MilvusException

load_dotenv(override=True)

logger = logging.getLogger(__name__)


def get_milvus_client(
    uri: Optional[str] = None,
    token: Optional[str] = None,
    wait_ready: bool = True,
    retries: int = 10,
    backoff_sec: float = 1.0,
) -> MilvusClient:
    """Create a Milvus client using env defaults if not provided and optionally wait for readiness.

    Env overrides:
      - MILVUS_URI (default http://localhost:19530)
      - MILVUS_TOKEN (default root:Milvus)
    """
    uri = uri or os.environ.get("MILVUS_URI", "http://localhost:19530")
    token = token or os.environ.get("MILVUS_TOKEN", "root:Milvus")
    client = MilvusClient(uri=uri, token=token)

    if wait_ready:
        for i in range(max(1, retries)):
            try:
                # A light call to verify connectivity
                client.list_collections()
                break
            except (MilvusException, OSError) as e:
                if i >= retries - 1:
                    raise
                logger.info("Milvus not ready (%s); retrying in %.1fs", e, backoff_sec)
                time.sleep(backoff_sec)
    return client


class SharedMilvusClient:
    """Process-wide Milvus client, built on first use and closed explicitly.

    Construction is guarded by a lock so concurrent requests share a single
    connection. After close() the next get() reconnects.
    """

    def __init__(
        self,
        uri: Optional[str] = None,
        token: Optional[str] = None,
        *,
        retries: int = 1,
    ) -> None:
        self.uri = uri
        self.token = token
        self.retries = retries
        self._client: Optional[MilvusClient] = None
        self._lock = threading.Lock()

    def get(self) -> MilvusClient:
        client = self._client
        if client is not None:
            return client
        with self._lock:
            if self._client is None:
                logger.info("Connecting to Milvus at %s", self.uri or os.environ.get("MILVUS_URI"))
                self._client = get_milvus_client(
                    self.uri, self.token, wait_ready=True, retries=self.retries
                )
            return self._client

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                logger.info("Closing Milvus client.")
                self._client.close()
                self._client = None
