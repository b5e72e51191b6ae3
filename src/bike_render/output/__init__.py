"""
Persistence of rendered images for scripts and batch runs.
"""
from .store import OutputStore

__all__ = ["OutputStore"]
