"""
Ingestion — page discovery, identifier parsing, chunking and embedding.

This module turns wiki page files into embedded chunks stored in the
vector store, re-indexing only pages changed since their last run.
"""
