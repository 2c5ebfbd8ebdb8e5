"""Supervised processes."""

from fastapi import APIRouter, Depends, status

from stackhand.lifecycle.service import LifecycleService
from stackhand.models import Server, ServerSupervisorTask

from ..dependencies import get_lifecycle_service, get_owned_server
from ..schemas import SupervisorTaskCreate, SupervisorTaskRead, SupervisorTaskUpdate

router = APIRouter(prefix="/servers/{server_id}/supervisor/tasks", tags=["supervisor"])

ACCEPTED = status.HTTP_202_ACCEPTED


@router.post("/", response_model=SupervisorTaskRead, status_code=ACCEPTED)
async def create_task(
    task_in: SupervisorTaskCreate,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerSupervisorTask:
    record = ServerSupervisorTask(server_id=server.id, **task_in.model_dump())
    return await service.request_install(record)


@router.patch("/{task_id}", response_model=SupervisorTaskRead, status_code=ACCEPTED)
async def update_task(
    task_id: int,
    task_in: SupervisorTaskUpdate,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerSupervisorTask:
    """Rewrite the program config and restart it."""
    record = await service.get_record(ServerSupervisorTask, server.id, task_id)
    return await service.request_update(record, **task_in.model_dump(exclude_none=True))


@router.delete("/{task_id}", response_model=SupervisorTaskRead, status_code=ACCEPTED)
async def remove_task(
    task_id: int,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerSupervisorTask:
    record = await service.get_record(ServerSupervisorTask, server.id, task_id)
    return await service.request_removal(record)


@router.post("/{task_id}/retry", response_model=SupervisorTaskRead, status_code=ACCEPTED)
async def retry_task(
    task_id: int,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerSupervisorTask:
    record = await service.get_record(ServerSupervisorTask, server.id, task_id)
    return await service.retry(record)
