from typing import List, Optional, Dict, Any
from pathlib import Path
from langchain.embeddings.base import init_embeddings
import logging
import yaml


# The function now requires a path. No more magic defaults.
def load_config(config_path: Path | str) -> Dict[str, Any]:
    """Load configuration from a given YAML file path.

    Args:
        config_path: Explicit path to the configuration file.

    Returns:
        Parsed configuration dictionary.

    Raises:
        FileNotFoundError: If the configuration file is not found.
        ValueError: If there is an error parsing the YAML file.
    """
    path = Path(config_path)

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise FileNotFoundError(f"Configuration file not found: {path}") from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML file '{path}': {e}") from e

    return data or {}


CONFIG_FILE_PATH = Path(__file__).parent / "config.yaml"

logger = logging.getLogger(__name__)


class Embedder:
    """Query embedder backed by LangChain's init_embeddings.

    Turns the free-text search concept into the dense vector Milvus searches
    with. Credentials are read from environment as required by the chosen
    provider (e.g., OPENAI_API_KEY, COHERE_API_KEY).
    """

    def __init__(
        self,
        model: Optional[str] = None,
        *,
        provider: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> None:
        # Start from explicit config dict if provided, else load from vectorstore/config.yaml
        if config is not None:
            cfg: Dict[str, Any] = dict(config)
        else:
            try:
                cfg = load_config(CONFIG_FILE_PATH)
            except FileNotFoundError:
                cfg = {}

        embedding_cfg = dict(cfg.get("embedding_model") or {}) if isinstance(cfg, dict) else {}

        # Override with explicit args if provided
        if provider is not None:
            embedding_cfg["provider"] = provider
        if model is not None:
            embedding_cfg["model"] = model

        if not embedding_cfg.get("provider") or not embedding_cfg.get("model"):
            raise ValueError(
                "Embedding configuration missing 'provider' and/or 'model'. "
                "Set them in concept_search/vectorstore/config.yaml under 'embedding_model', "
                "or pass them to Embedder()."
            )
        self.provider = embedding_cfg["provider"]
        self.model = embedding_cfg["model"]

        logger.info(
            "Initializing embeddings via init_embeddings provider=%s model=%s",
            self.provider,
            self.model,
        )
        self._emb = init_embeddings(**embedding_cfg)

    def embed_query(self, text: str) -> List[float]:
        """Embed a single query string synchronously.

        Uses provider embed_query when available; otherwise falls back to embed_documents().
        """
        emb = self._emb
        if hasattr(emb, "embed_query"):
            return emb.embed_query(text)  # type: ignore[attr-defined]
        vecs = emb.embed_documents([text])  # type: ignore[attr-defined]
        return vecs[0] if vecs else []

