"""Core schema helpers for novelharvest."""

from .keys import *  # noqa: F401,F403 re-export stable keys
from .models import Catalogue, Chapter

__all__ = [name for name in globals() if name.startswith("K_")] + ["Catalogue", "Chapter"]
