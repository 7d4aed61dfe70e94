"""Serving — FastAPI front-end for the assistant and the indexer."""
