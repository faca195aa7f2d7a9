from fastapi import APIRouter, Depends

from app.dependencies import require_admin_id
from app.observability import metrics_store
from app.schemas.metrics import MetricsResponse

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("", summary="Observability metrics", response_model=MetricsResponse)
def metrics_endpoint(_admin_id: str = Depends(require_admin_id)) -> MetricsResponse:
    """Counters and timings for back-office dashboards."""
    snapshot = metrics_store.snapshot()

    return MetricsResponse(
        counters=snapshot.counters or {},
        timings=snapshot.timings or {},
    )
