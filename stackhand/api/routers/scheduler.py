"""Scheduled (cron) tasks."""

from fastapi import APIRouter, Depends, status

from stackhand.config import Settings
from stackhand.errors import ValidationFailed
from stackhand.lifecycle.service import LifecycleService
from stackhand.models import ScheduleFrequency, Server, ServerScheduledTask

from ..dependencies import get_app_settings, get_lifecycle_service, get_owned_server
from ..schemas import ScheduledTaskCreate, ScheduledTaskRead, ScheduledTaskUpdate

router = APIRouter(prefix="/servers/{server_id}/scheduler/tasks", tags=["scheduler"])

ACCEPTED = status.HTTP_202_ACCEPTED


def _check_timeout(timeout: int | None, settings: Settings) -> None:
    if timeout is not None and timeout > settings.scheduler_max_timeout:
        raise ValidationFailed.single(
            "timeout",
            f"The timeout may not be greater than {settings.scheduler_max_timeout} seconds.",
        )


@router.post("/", response_model=ScheduledTaskRead, status_code=ACCEPTED)
async def create_task(
    task_in: ScheduledTaskCreate,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
    settings: Settings = Depends(get_app_settings),
) -> ServerScheduledTask:
    _check_timeout(task_in.timeout, settings)
    fields = task_in.model_dump()
    fields["frequency"] = task_in.frequency.value
    return await service.add_scheduled_task(
        server.id, max_tasks=settings.scheduler_max_tasks, **fields
    )


@router.patch("/{task_id}", response_model=ScheduledTaskRead, status_code=ACCEPTED)
async def update_task(
    task_id: int,
    task_in: ScheduledTaskUpdate,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
    settings: Settings = Depends(get_app_settings),
) -> ServerScheduledTask:
    _check_timeout(task_in.timeout, settings)
    record = await service.get_record(ServerScheduledTask, server.id, task_id)
    fields = task_in.model_dump(exclude_none=True)
    if task_in.frequency is not None:
        fields["frequency"] = task_in.frequency.value
        if task_in.frequency is not ScheduleFrequency.CUSTOM:
            fields["cron_expression"] = None
    elif "cron_expression" in fields and record.frequency != ScheduleFrequency.CUSTOM.value:
        raise ValidationFailed.single(
            "cron_expression", "A cron expression only applies to custom frequency."
        )
    return await service.request_update(record, **fields)


@router.delete("/{task_id}", response_model=ScheduledTaskRead, status_code=ACCEPTED)
async def remove_task(
    task_id: int,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerScheduledTask:
    record = await service.get_record(ServerScheduledTask, server.id, task_id)
    return await service.request_removal(record)


@router.post("/{task_id}/retry", response_model=ScheduledTaskRead, status_code=ACCEPTED)
async def retry_task(
    task_id: int,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerScheduledTask:
    record = await service.get_record(ServerScheduledTask, server.id, task_id)
    return await service.retry(record)
