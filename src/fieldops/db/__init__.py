# src/fieldops/db/__init__.py
# Don't import session on package import; the engine is built by the app factory
from .base import Base  # safe to import

__all__ = ["Base"]
