"""Shared schema keys to avoid magic strings across novelharvest modules."""

from __future__ import annotations

# Chapter keys
K_NAME = "name"
K_URL = "url"
K_CONTENT = "content"
K_FETCHED = "fetched"

# Catalogue / summary keys
K_SOURCE = "source"
K_CHAPTERS = "chapters"
K_ERROR = "error"
K_COUNTS = "counts"
