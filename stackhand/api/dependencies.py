"""FastAPI dependencies: ownership checks and service wiring."""

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from stackhand.broadcast import EventBroadcaster
from stackhand.config import Settings, get_settings
from stackhand.errors import AuthorizationDenied, ResourceNotFound
from stackhand.lifecycle.service import LifecycleService
from stackhand.models import Server
from stackhand.provisioning.tracker import ProvisionStepTracker
from stackhand.redis import RedisStreamClient
from stackhand.store import RecordStore

from .database import get_async_session


def get_queue(request: Request) -> RedisStreamClient:
    return request.app.state.queue


def get_broadcaster(request: Request) -> EventBroadcaster:
    return request.app.state.broadcaster


def get_store(
    db: AsyncSession = Depends(get_async_session),
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
) -> RecordStore:
    return RecordStore(db, broadcaster)


def get_lifecycle_service(
    store: RecordStore = Depends(get_store),
    queue: RedisStreamClient = Depends(get_queue),
) -> LifecycleService:
    return LifecycleService(store, queue)


def get_tracker(
    store: RecordStore = Depends(get_store),
    queue: RedisStreamClient = Depends(get_queue),
) -> ProvisionStepTracker:
    return ProvisionStepTracker(store, queue)


def get_app_settings() -> Settings:
    return get_settings()


async def get_owned_server(
    server_id: int,
    x_user_id: int = Header(..., alias="X-User-ID"),
    db: AsyncSession = Depends(get_async_session),
) -> Server:
    """Load the path's server and check that the caller owns it.

    Raises 404 if the server does not exist, 403 if it belongs to someone else.
    """
    server = await db.get(Server, server_id)
    if server is None:
        raise ResourceNotFound("server", server_id)
    if server.user_id != x_user_id:
        raise AuthorizationDenied("You do not have access to this server")
    return server
