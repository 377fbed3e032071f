"""Shared helpers: structured logging and atomic file writes."""
