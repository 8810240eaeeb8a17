"""Utility helpers (configuration, logging)."""
