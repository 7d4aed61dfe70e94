"""WikiLLM — wiki page indexing and an LLM writing assistant with retrieval tools."""

__version__ = "0.1.0"
