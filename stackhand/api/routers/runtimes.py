"""Language runtimes."""

from fastapi import APIRouter, Depends, status

from stackhand.lifecycle.service import LifecycleService
from stackhand.models import Server, ServerRuntime

from ..dependencies import get_lifecycle_service, get_owned_server
from ..schemas import RuntimeCreate, RuntimeRead

router = APIRouter(prefix="/servers/{server_id}/runtimes", tags=["runtimes"])

ACCEPTED = status.HTTP_202_ACCEPTED


@router.post("/", response_model=RuntimeRead, status_code=ACCEPTED)
async def install_runtime(
    runtime_in: RuntimeCreate,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerRuntime:
    return await service.install_runtime(
        server.id, version=runtime_in.version, language=runtime_in.language.value
    )


@router.delete("/{runtime_id}", response_model=RuntimeRead, status_code=ACCEPTED)
async def remove_runtime(
    runtime_id: int,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerRuntime:
    """Refused while the runtime is the CLI or site default."""
    record = await service.get_record(ServerRuntime, server.id, runtime_id)
    return await service.request_removal(record)


@router.post("/{runtime_id}/retry", response_model=RuntimeRead, status_code=ACCEPTED)
async def retry_runtime(
    runtime_id: int,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerRuntime:
    record = await service.get_record(ServerRuntime, server.id, runtime_id)
    return await service.retry(record)


@router.post("/{runtime_id}/cli-default", response_model=RuntimeRead, status_code=ACCEPTED)
async def set_cli_default(
    runtime_id: int,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerRuntime:
    record = await service.get_record(ServerRuntime, server.id, runtime_id)
    return await service.set_cli_default(record)


@router.post("/{runtime_id}/site-default", response_model=RuntimeRead, status_code=ACCEPTED)
async def set_site_default(
    runtime_id: int,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerRuntime:
    """Only a database flag: new sites pick it up, nothing runs on the host."""
    record = await service.get_record(ServerRuntime, server.id, runtime_id)
    return await service.set_site_default(record)
