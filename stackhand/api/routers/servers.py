"""Servers router."""

from fastapi import APIRouter, Depends, Header, status
import structlog

from stackhand.config import Settings
from stackhand.models import Server
from stackhand.provisioning.signing import signed_callback_url
from stackhand.store import RecordStore

from ..dependencies import get_app_settings, get_owned_server, get_store
from ..schemas import ServerCreate, ServerCreated, ServerRead

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/servers", tags=["servers"])


@router.post("/", response_model=ServerCreated, status_code=status.HTTP_201_CREATED)
async def create_server(
    server_in: ServerCreate,
    x_user_id: int = Header(..., alias="X-User-ID"),
    store: RecordStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> ServerCreated:
    """Register a server. The response carries the signed bootstrap callback URL."""
    server = await store.add(Server(user_id=x_user_id, **server_in.model_dump()))
    logger.info("server_registered", server_id=server.id, public_ip=server.public_ip)
    return ServerCreated(
        **ServerRead.model_validate(server).model_dump(),
        monitoring_token=server.monitoring_token,
        callback_url=signed_callback_url(settings, server.id),
    )


@router.get("/{server_id}", response_model=ServerRead)
async def get_server(server: Server = Depends(get_owned_server)) -> Server:
    return server


@router.delete("/{server_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_server(
    server: Server = Depends(get_owned_server),
    store: RecordStore = Depends(get_store),
) -> None:
    """Delete a server and every record it owns. Nothing is run on the host."""
    await store.delete_server(server)
