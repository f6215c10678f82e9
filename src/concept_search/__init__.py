"""Semantic search across the collections of a Milvus vector store."""

__version__ = "0.1.0"
