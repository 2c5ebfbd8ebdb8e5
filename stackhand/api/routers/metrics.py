"""Usage samples pushed by the monitoring agent."""

import hmac

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from stackhand.models import Server, ServerMetric

from ..database import get_async_session
from ..schemas import MetricsAccepted, MetricsPayload

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/servers/{server_id}/metrics", tags=["metrics"])


async def _authenticated_server(
    server_id: int,
    x_monitoring_token: str | None = Header(None, alias="X-Monitoring-Token"),
    db: AsyncSession = Depends(get_async_session),
) -> Server:
    """Resolve the server whose monitoring token matches the header.

    Unknown servers answer 401 like a bad token, so the endpoint does not
    reveal which ids exist.
    """
    server = await db.get(Server, server_id)
    if (
        not x_monitoring_token
        or server is None
        or not hmac.compare_digest(server.monitoring_token.encode(), x_monitoring_token.encode())
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid monitoring token",
        )
    return server


@router.post("", response_model=MetricsAccepted, status_code=status.HTTP_201_CREATED)
async def ingest_metrics(
    payload: MetricsPayload,
    server: Server = Depends(_authenticated_server),
    db: AsyncSession = Depends(get_async_session),
) -> MetricsAccepted:
    metric = ServerMetric(server_id=server.id, **payload.model_dump())
    db.add(metric)
    await db.commit()
    await db.refresh(metric)
    logger.debug("metrics_ingested", server_id=server.id, metric_id=metric.id)
    return MetricsAccepted(metric_id=metric.id)
