"""Storage repositories for the inspection engine."""

from .inspection_store import InspectionRepository, inspection_store

__all__ = ["InspectionRepository", "inspection_store"]
