"""Database engines, their schemas and users."""

from fastapi import APIRouter, Depends, status

from stackhand.lifecycle.service import LifecycleService
from stackhand.models import Server, ServerDatabase, ServerDatabaseSchema, ServerDatabaseUser

from ..dependencies import get_lifecycle_service, get_owned_server
from ..schemas import (
    DatabaseCreate,
    DatabaseRead,
    DatabaseSchemaCreate,
    DatabaseSchemaRead,
    DatabaseUpdate,
    DatabaseUserCreate,
    DatabaseUserRead,
    DatabaseUserUpdate,
)

router = APIRouter(prefix="/servers/{server_id}/databases", tags=["databases"])

ACCEPTED = status.HTTP_202_ACCEPTED


@router.post("/", response_model=DatabaseRead, status_code=ACCEPTED)
async def install_database(
    database_in: DatabaseCreate,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerDatabase:
    """Queue a database engine install. One SQL engine and one cache service per server."""
    return await service.install_database(
        server.id,
        engine=database_in.engine.value,
        version=database_in.version,
        port=database_in.port,
        name=database_in.name,
        root_password=database_in.root_password,
    )


@router.patch("/{database_id}", response_model=DatabaseRead, status_code=ACCEPTED)
async def update_database(
    database_id: int,
    database_in: DatabaseUpdate,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerDatabase:
    record = await service.get_record(ServerDatabase, server.id, database_id)
    return await service.update_database(record, database_in.version)


@router.delete("/{database_id}", response_model=DatabaseRead, status_code=ACCEPTED)
async def remove_database(
    database_id: int,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerDatabase:
    record = await service.get_record(ServerDatabase, server.id, database_id)
    return await service.request_removal(record)


@router.post("/{database_id}/retry", response_model=DatabaseRead, status_code=ACCEPTED)
async def retry_database(
    database_id: int,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerDatabase:
    record = await service.get_record(ServerDatabase, server.id, database_id)
    return await service.retry(record)


# === Schemas ===


@router.post("/{database_id}/schemas", response_model=DatabaseSchemaRead, status_code=ACCEPTED)
async def create_schema(
    database_id: int,
    schema_in: DatabaseSchemaCreate,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerDatabaseSchema:
    database = await service.get_record(ServerDatabase, server.id, database_id)
    return await service.add_database_schema(database, **schema_in.model_dump())


@router.delete(
    "/{database_id}/schemas/{schema_id}",
    response_model=DatabaseSchemaRead,
    status_code=ACCEPTED,
)
async def drop_schema(
    database_id: int,
    schema_id: int,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerDatabaseSchema:
    record = await service.get_child_record(ServerDatabaseSchema, server.id, database_id, schema_id)
    return await service.request_removal(record)


@router.post(
    "/{database_id}/schemas/{schema_id}/retry",
    response_model=DatabaseSchemaRead,
    status_code=ACCEPTED,
)
async def retry_schema(
    database_id: int,
    schema_id: int,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerDatabaseSchema:
    record = await service.get_child_record(ServerDatabaseSchema, server.id, database_id, schema_id)
    return await service.retry(record)


# === Users ===


@router.post("/{database_id}/users", response_model=DatabaseUserRead, status_code=ACCEPTED)
async def create_user(
    database_id: int,
    user_in: DatabaseUserCreate,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerDatabaseUser:
    database = await service.get_record(ServerDatabase, server.id, database_id)
    return await service.add_database_user(database, **user_in.model_dump())


@router.patch(
    "/{database_id}/users/{user_id}",
    response_model=DatabaseUserRead,
    status_code=ACCEPTED,
)
async def update_user(
    database_id: int,
    user_id: int,
    user_in: DatabaseUserUpdate,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerDatabaseUser:
    """Change a user's password."""
    record = await service.get_child_record(ServerDatabaseUser, server.id, database_id, user_id)
    return await service.request_update(record, password=user_in.password)


@router.delete(
    "/{database_id}/users/{user_id}",
    response_model=DatabaseUserRead,
    status_code=ACCEPTED,
)
async def drop_user(
    database_id: int,
    user_id: int,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerDatabaseUser:
    record = await service.get_child_record(ServerDatabaseUser, server.id, database_id, user_id)
    return await service.request_removal(record)


@router.post(
    "/{database_id}/users/{user_id}/retry",
    response_model=DatabaseUserRead,
    status_code=ACCEPTED,
)
async def retry_user(
    database_id: int,
    user_id: int,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerDatabaseUser:
    record = await service.get_child_record(ServerDatabaseUser, server.id, database_id, user_id)
    return await service.retry(record)
