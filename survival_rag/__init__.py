"""Offline hybrid retrieval knowledge base for survival manuals."""
