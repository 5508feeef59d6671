"""Extension host - namespaced extension loading and panel registration."""

__version__ = "0.1.0"
