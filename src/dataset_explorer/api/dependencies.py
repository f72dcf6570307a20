"""FastAPI dependency injection providers.

The AggregationService is created once by the application lifespan and shared by
every request; tests replace it with ``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, status

from dataset_explorer.core.aggregation_service import AggregationService

# Module-level singleton set by the lifespan
_aggregation_service: AggregationService | None = None


def set_aggregation_service(service: AggregationService | None) -> None:
    """Install (or clear, with None) the service used by the routes."""
    global _aggregation_service
    _aggregation_service = service


def get_aggregation_service() -> AggregationService:
    """Get the shared AggregationService.

    Raises:
        HTTPException: 503 if the application has not finished starting up
    """
    if _aggregation_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Aggregation service is not initialized",
        )
    return _aggregation_service


# ============================================================================
# Type Aliases for Route Injection
# ============================================================================

AggregationServiceDep = Annotated[AggregationService, Depends(get_aggregation_service)]
