"""Prefetching photo-stack cache and image pipeline for swipe triage sessions."""

__version__ = "0.1.0"
