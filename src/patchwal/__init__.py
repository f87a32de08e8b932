"""Transactional application of LLM-authored patches with a write-ahead log."""

__version__ = "0.1.0"
