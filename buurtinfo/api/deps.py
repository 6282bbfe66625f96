"""FastAPI dependency injection."""

from functools import lru_cache

from buurtinfo.data.pipeline import NeighbourhoodPipeline


@lru_cache
def get_pipeline() -> NeighbourhoodPipeline:
    """One pipeline (and HTTP connection pool) per process."""
    return NeighbourhoodPipeline()
