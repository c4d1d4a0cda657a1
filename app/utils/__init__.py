"""
Utilities package.
"""

from app.utils.storage import essay_store, EssayStore

__all__ = [
    "essay_store",
    "EssayStore",
]
