"""Context package - host capabilities passed down by injection."""

from .app_module import AppModule

__all__ = ["AppModule"]
