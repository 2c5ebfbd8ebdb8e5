"""Category uniqueness: one SQL engine and one cache service per server."""

import pytest

from stackhand.errors import ResourceNotFound, ValidationFailed
from stackhand.models import Server, ServerDatabase
from stackhand.validation import databases


async def add_database(db_session, server, engine, status, port=None):
    record = ServerDatabase(
        server_id=server.id,
        engine=engine,
        version=databases.default_version(engine),
        port=port or databases.DEFAULT_PORTS[databases.DatabaseEngine(engine)],
        status=status,
    )
    db_session.add(record)
    await db_session.commit()
    return record


class TestCanInstall:
    @pytest.mark.asyncio
    async def test_empty_server(self, db_session, server):
        assert await databases.can_install(db_session, server.id, databases.SQL)
        assert await databases.can_install(db_session, server.id, databases.CACHE)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["pending", "installing", "active", "updating"])
    async def test_occupying_statuses_block_the_category(self, db_session, server, status):
        await add_database(db_session, server, "mysql", status)

        assert not await databases.can_install(db_session, server.id, databases.SQL)
        assert await databases.can_install(db_session, server.id, databases.CACHE)

    @pytest.mark.asyncio
    async def test_failed_record_does_not_block(self, db_session, server):
        await add_database(db_session, server, "mysql", "failed")

        assert await databases.can_install(db_session, server.id, databases.SQL)

    @pytest.mark.asyncio
    async def test_removing_record_does_not_block(self, db_session, server):
        await add_database(db_session, server, "postgresql", "removing")

        assert await databases.can_install(db_session, server.id, databases.SQL)


class TestEnsureCanInstall:
    @pytest.mark.asyncio
    async def test_second_sql_engine_rejected(self, db_session, server):
        await add_database(db_session, server, "mariadb", "active")

        with pytest.raises(ValidationFailed) as exc_info:
            await databases.ensure_can_install(db_session, server.id, "postgresql")

        assert exc_info.value.errors == {
            "engine": "This server already has a database installed. "
            "Please uninstall the existing database before installing a new one."
        }

    @pytest.mark.asyncio
    async def test_second_cache_service_rejected(self, db_session, server):
        await add_database(db_session, server, "redis", "installing")

        with pytest.raises(ValidationFailed, match="cache/queue service"):
            await databases.ensure_can_install(db_session, server.id, "redis")

    @pytest.mark.asyncio
    async def test_sql_and_cache_coexist(self, db_session, server):
        await add_database(db_session, server, "mysql", "active")

        await databases.ensure_can_install(db_session, server.id, "redis")

    @pytest.mark.asyncio
    async def test_other_servers_do_not_count(self, db_session, server):
        other = Server(user_id=2, vanity_name="other", public_ip="203.0.113.20")
        db_session.add(other)
        await db_session.commit()
        await add_database(db_session, other, "mysql", "active")

        await databases.ensure_can_install(db_session, server.id, "mysql")


class TestPorts:
    @pytest.mark.asyncio
    async def test_default_port(self, db_session, server):
        assert await databases.next_available_port(db_session, server.id, "postgresql") == 5432

    @pytest.mark.asyncio
    async def test_next_port_skips_taken(self, db_session, server):
        await add_database(db_session, server, "redis", "active", port=3306)

        assert await databases.next_available_port(db_session, server.id, "mysql") == 3307

    @pytest.mark.asyncio
    async def test_failed_record_frees_its_port(self, db_session, server):
        await add_database(db_session, server, "mysql", "failed", port=3306)

        await databases.ensure_port_free(db_session, server.id, 3306)

    @pytest.mark.asyncio
    async def test_port_in_use(self, db_session, server):
        await add_database(db_session, server, "redis", "active", port=6379)

        with pytest.raises(ValidationFailed, match="Port 6379 is already in use"):
            await databases.ensure_port_free(db_session, server.id, 6379)


@pytest.mark.asyncio
async def test_lock_server_missing(db_session):
    with pytest.raises(ResourceNotFound):
        await databases.lock_server(db_session, 999)
