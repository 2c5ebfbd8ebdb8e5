"""LifecycleService: checks run before writes, and each request queues one job."""

import pytest

from stackhand.errors import GuardViolation, InvalidTransition, ValidationFailed
from stackhand.lifecycle.service import LifecycleService
from stackhand.models import ServerDatabase, ServerRuntime, ServerScheduledTask, ServerSite
from stackhand.redis import LIFECYCLE_QUEUE


@pytest.fixture
def service(store, queue) -> LifecycleService:
    return LifecycleService(store, queue)


async def add(db_session, record):
    db_session.add(record)
    await db_session.commit()
    return record


class TestInstall:
    @pytest.mark.asyncio
    async def test_database_install_queues_one_job(self, service, server, read_stream):
        record = await service.install_database(
            server.id, "mysql", root_password="secret-password"
        )

        assert record.status == "pending"
        assert record.port == 3306
        assert record.version == "8.0"
        jobs = await read_stream(LIFECYCLE_QUEUE)
        assert len(jobs) == 1
        assert jobs[0]["kind"] == "database"
        assert jobs[0]["resource_id"] == record.id
        assert jobs[0]["operation"] == "install"

    @pytest.mark.asyncio
    async def test_rejected_install_leaves_no_trace(self, service, server, db_session, read_stream):
        await add(
            db_session,
            ServerDatabase(
                server_id=server.id, engine="postgresql", version="16", port=5432, status="active"
            ),
        )

        with pytest.raises(ValidationFailed):
            await service.install_database(server.id, "mariadb", root_password="secret-password")

        assert await read_stream(LIFECYCLE_QUEUE) == []

    @pytest.mark.asyncio
    async def test_explicit_port_taken(self, service, server, db_session):
        await add(
            db_session,
            ServerDatabase(
                server_id=server.id, engine="redis", version="7.2", port=6379, status="active"
            ),
        )

        with pytest.raises(ValidationFailed, match="Port 6379"):
            await service.install_database(
                server.id, "mysql", port=6379, root_password="secret-password"
            )


class TestRetry:
    @pytest.mark.asyncio
    async def test_failed_record_goes_back_to_pending(
        self, service, server, db_session, read_stream
    ):
        runtime = await add(
            db_session,
            ServerRuntime(server_id=server.id, version="8.3", status="failed", error_log="boom"),
        )

        await service.retry(runtime)

        assert runtime.status == "pending"
        assert runtime.error_log is None
        jobs = await read_stream(LIFECYCLE_QUEUE)
        assert [job["operation"] for job in jobs] == ["install"]

    @pytest.mark.asyncio
    async def test_failed_database_cannot_reclaim_taken_category(
        self, service, server, db_session, read_stream
    ):
        mysql = await add(
            db_session,
            ServerDatabase(
                server_id=server.id, engine="mysql", version="8.0", port=3306, status="failed"
            ),
        )
        await add(
            db_session,
            ServerDatabase(
                server_id=server.id, engine="mariadb", version="11.4", port=3307, status="active"
            ),
        )

        with pytest.raises(ValidationFailed, match="already has a database installed"):
            await service.retry(mysql)

        assert mysql.status == "failed"
        assert await read_stream(LIFECYCLE_QUEUE) == []

    @pytest.mark.asyncio
    async def test_failed_database_cannot_reclaim_taken_port(
        self, service, server, db_session, read_stream
    ):
        mysql = await add(
            db_session,
            ServerDatabase(
                server_id=server.id, engine="mysql", version="8.0", port=6379, status="failed"
            ),
        )
        await add(
            db_session,
            ServerDatabase(
                server_id=server.id, engine="redis", version="7.2", port=6379, status="active"
            ),
        )

        with pytest.raises(ValidationFailed, match="Port 6379"):
            await service.retry(mysql)

        assert mysql.status == "failed"
        assert await read_stream(LIFECYCLE_QUEUE) == []

    @pytest.mark.asyncio
    async def test_failed_database_with_free_slot(self, service, server, db_session, read_stream):
        mysql = await add(
            db_session,
            ServerDatabase(
                server_id=server.id, engine="mysql", version="8.0", port=3306, status="failed"
            ),
        )

        await service.retry(mysql)

        assert mysql.status == "pending"
        assert len(await read_stream(LIFECYCLE_QUEUE)) == 1

    @pytest.mark.asyncio
    async def test_scheduled_task_retry_queues_one_job(
        self, service, server, db_session, read_stream
    ):
        task = await add(
            db_session,
            ServerScheduledTask(
                server_id=server.id, name="backup", command="backup.sh", status="failed"
            ),
        )

        await service.retry(task)

        assert task.status == "pending"
        jobs = await read_stream(LIFECYCLE_QUEUE)
        assert [(job["kind"], job["resource_id"]) for job in jobs] == [
            ("scheduled-task", task.id)
        ]

    @pytest.mark.asyncio
    async def test_scheduled_task_not_failed(self, service, server, db_session, read_stream):
        task = await add(
            db_session,
            ServerScheduledTask(
                server_id=server.id, name="backup", command="backup.sh", status="active"
            ),
        )

        with pytest.raises(GuardViolation):
            await service.retry(task)

        assert task.status == "active"
        assert await read_stream(LIFECYCLE_QUEUE) == []

    @pytest.mark.asyncio
    async def test_only_failed_records(self, service, server, db_session, read_stream):
        runtime = await add(
            db_session, ServerRuntime(server_id=server.id, version="8.3", status="active")
        )

        with pytest.raises(GuardViolation, match="Only failed runtimes can be retried"):
            await service.retry(runtime)

        assert await read_stream(LIFECYCLE_QUEUE) == []


class TestRemoval:
    @pytest.mark.asyncio
    async def test_cli_default_cannot_be_removed(self, service, server, db_session, read_stream):
        runtime = await add(
            db_session,
            ServerRuntime(
                server_id=server.id, version="8.3", status="active", is_cli_default=True
            ),
        )

        with pytest.raises(GuardViolation, match="CLI default"):
            await service.request_removal(runtime)

        assert runtime.status == "active"
        assert await read_stream(LIFECYCLE_QUEUE) == []

    @pytest.mark.asyncio
    async def test_removal_records_previous_status(self, service, server, db_session, read_stream):
        runtime = await add(
            db_session, ServerRuntime(server_id=server.id, version="8.2", status="failed")
        )

        await service.request_removal(runtime)

        assert runtime.status == "removing"
        assert runtime.previous_status == "failed"
        jobs = await read_stream(LIFECYCLE_QUEUE)
        assert [job["operation"] for job in jobs] == ["remove"]

    @pytest.mark.asyncio
    async def test_second_removal_rejected(self, service, server, db_session, read_stream):
        runtime = await add(
            db_session, ServerRuntime(server_id=server.id, version="8.2", status="active")
        )
        await service.request_removal(runtime)

        with pytest.raises(GuardViolation, match="currently being modified"):
            await service.request_removal(runtime)

        assert len(await read_stream(LIFECYCLE_QUEUE)) == 1

    @pytest.mark.asyncio
    async def test_pending_record_cannot_be_removed(self, service, server, db_session):
        runtime = await add(
            db_session, ServerRuntime(server_id=server.id, version="8.2", status="pending")
        )

        with pytest.raises(InvalidTransition):
            await service.request_removal(runtime)

    @pytest.mark.asyncio
    async def test_database_used_by_site(self, service, server, db_session, read_stream):
        database = await add(
            db_session,
            ServerDatabase(
                server_id=server.id, engine="mysql", version="8.0", port=3306, status="active"
            ),
        )
        await add(
            db_session, ServerSite(server_id=server.id, domain="shop.test", database_id=database.id)
        )

        with pytest.raises(GuardViolation, match="sites depend on it"):
            await service.request_removal(database)

        assert database.status == "active"
        assert await read_stream(LIFECYCLE_QUEUE) == []


class TestRuntimes:
    @pytest.mark.asyncio
    async def test_first_runtime_gets_both_defaults(self, service, server):
        first = await service.install_runtime(server.id, "8.3")
        second = await service.install_runtime(server.id, "8.2")

        assert first.is_cli_default and first.is_site_default
        assert not second.is_cli_default and not second.is_site_default

    @pytest.mark.asyncio
    async def test_duplicate_version(self, service, server):
        await service.install_runtime(server.id, "8.3")

        with pytest.raises(GuardViolation, match="already installed"):
            await service.install_runtime(server.id, "8.3")

    @pytest.mark.asyncio
    async def test_set_cli_default_moves_flag(self, service, server, db_session, read_stream):
        old = await add(
            db_session,
            ServerRuntime(
                server_id=server.id, version="8.2", status="active", is_cli_default=True
            ),
        )
        new = await add(
            db_session, ServerRuntime(server_id=server.id, version="8.3", status="active")
        )

        await service.set_cli_default(new)

        await db_session.refresh(old)
        assert old.is_cli_default is False
        assert new.is_cli_default is True
        assert new.status == "updating"
        jobs = await read_stream(LIFECYCLE_QUEUE)
        assert [(job["resource_id"], job["operation"]) for job in jobs] == [(new.id, "update")]

    @pytest.mark.asyncio
    async def test_set_site_default_is_local_only(self, service, server, db_session, read_stream):
        old = await add(
            db_session,
            ServerRuntime(
                server_id=server.id, version="8.2", status="active", is_site_default=True
            ),
        )
        new = await add(
            db_session, ServerRuntime(server_id=server.id, version="8.3", status="active")
        )

        await service.set_site_default(new)

        await db_session.refresh(old)
        assert old.is_site_default is False
        assert new.is_site_default is True
        assert new.status == "active"
        assert await read_stream(LIFECYCLE_QUEUE) == []


class TestUpdate:
    @pytest.mark.asyncio
    async def test_writes_fields_with_updating(self, service, server, db_session, read_stream):
        database = await add(
            db_session,
            ServerDatabase(
                server_id=server.id, engine="redis", version="7.0", port=6379, status="active"
            ),
        )

        await service.update_database(database, "7.2")

        assert database.version == "7.2"
        assert database.status == "updating"
        assert len(await read_stream(LIFECYCLE_QUEUE)) == 1

    @pytest.mark.asyncio
    async def test_firewall_rules_cannot_be_updated(self, service, server):
        rule = await service.add_firewall_rule(server.id, "web", "80", None, "allow")

        with pytest.raises(GuardViolation, match="cannot be updated"):
            await service.request_update(rule, name="http")


class TestFirewallAndScheduler:
    @pytest.mark.asyncio
    async def test_duplicate_rule_port(self, service, server, read_stream):
        await service.add_firewall_rule(server.id, "web", "80", None, "allow")

        with pytest.raises(ValidationFailed, match="already exists"):
            await service.add_firewall_rule(server.id, "http", "80", "198.51.100.4", "allow")

        assert len(await read_stream(LIFECYCLE_QUEUE)) == 1

    @pytest.mark.asyncio
    async def test_rules_share_one_firewall(self, service, server):
        first = await service.add_firewall_rule(server.id, "web", "80", None, "allow")
        second = await service.add_firewall_rule(server.id, "tls", "443", None, "allow")

        assert first.firewall_id == second.firewall_id

    @pytest.mark.asyncio
    async def test_scheduled_task_limit(self, service, server, db_session):
        await add(
            db_session,
            ServerScheduledTask(server_id=server.id, name="backup", command="backup.sh"),
        )

        with pytest.raises(ValidationFailed, match="at most 1 scheduled tasks"):
            await service.add_scheduled_task(
                server.id, max_tasks=1, name="cleanup", command="cleanup.sh"
            )


class TestDatabaseChildren:
    @pytest.mark.asyncio
    async def test_redis_has_no_schemas(self, service, server, db_session):
        database = await add(
            db_session,
            ServerDatabase(
                server_id=server.id, engine="redis", version="7.2", port=6379, status="active"
            ),
        )

        with pytest.raises(GuardViolation, match="Redis does not support"):
            await service.add_database_schema(database, "app")

    @pytest.mark.asyncio
    async def test_database_must_be_active(self, service, server, db_session):
        database = await add(
            db_session,
            ServerDatabase(
                server_id=server.id, engine="mysql", version="8.0", port=3306, status="installing"
            ),
        )

        with pytest.raises(GuardViolation, match="must be active"):
            await service.add_database_user(database, "app", "password123")

    @pytest.mark.asyncio
    async def test_duplicate_schema_name(self, service, server, db_session, read_stream):
        database = await add(
            db_session,
            ServerDatabase(
                server_id=server.id, engine="mysql", version="8.0", port=3306, status="active"
            ),
        )
        schema = await service.add_database_schema(database, "app")

        with pytest.raises(ValidationFailed, match="already exists"):
            await service.add_database_schema(database, "app")

        assert schema.database_id == database.id
        jobs = await read_stream(LIFECYCLE_QUEUE)
        assert [job["kind"] for job in jobs] == ["database-schema"]
