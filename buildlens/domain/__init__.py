"""Domain entities and boundary contracts."""

from . import contracts, graph, models

__all__ = ["contracts", "graph", "models"]
