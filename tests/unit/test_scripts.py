"""Unit tests for quoting in generated database commands."""

from shlex import split

from pydantic import ValidationError
import pytest

from stackhand.api.schemas import DatabaseCreate, DatabaseUserCreate, DatabaseUserUpdate
from stackhand.lifecycle import scripts
from stackhand.models import DatabaseEngine, ServerDatabase, ServerDatabaseUser

HOSTILE_PASSWORD = "x'; DROP DATABASE prod; --"


def database(engine: str = "mysql", **fields) -> ServerDatabase:
    defaults = {
        "id": 2,
        "server_id": 1,
        "engine": engine,
        "version": "8.0",
        "port": 3306,
        "root_password": "secret-password",
    }
    return ServerDatabase(**{**defaults, **fields})


def db_user(**fields) -> ServerDatabaseUser:
    defaults = {
        "id": 3,
        "server_id": 1,
        "database_id": 2,
        "username": "app",
        "password": HOSTILE_PASSWORD,
        "host": "%",
        "privileges": "all",
    }
    return ServerDatabaseUser(**{**defaults, **fields})


def remote_sql(command: str) -> str:
    """The statement the database client receives after the remote shell parses it."""
    return split(command)[-1]


class TestSqlString:
    def test_doubles_single_quotes(self):
        assert scripts.sql_string("it's", DatabaseEngine.POSTGRESQL) == "'it''s'"

    def test_mysql_escapes_backslash(self):
        assert scripts.sql_string("a\\'b", DatabaseEngine.MYSQL) == "'a\\\\''b'"

    def test_postgresql_keeps_backslash(self):
        assert scripts.sql_string("a\\b", DatabaseEngine.POSTGRESQL) == "'a\\b'"


class TestUserStatements:
    def test_mysql_password_stays_inside_literal(self):
        (command,) = scripts.user_create(database(), db_user())

        statement = remote_sql(command)
        assert "IDENTIFIED BY 'x''; DROP DATABASE prod; --';" in statement
        assert statement.startswith("CREATE USER 'app'@'%' ")

    def test_postgresql_password_stays_inside_literal(self):
        (command,) = scripts.user_update(
            database("postgresql", version="16", port=5432), db_user()
        )

        assert remote_sql(command) == (
            "ALTER ROLE \"app\" PASSWORD 'x''; DROP DATABASE prod; --';"
        )

    def test_mysql_host_is_quoted(self):
        (command,) = scripts.user_drop(database(), db_user(host="10.0.0.%"))

        assert remote_sql(command) == "DROP USER IF EXISTS 'app'@'10.0.0.%'; FLUSH PRIVILEGES;"


class TestRootPasswords:
    def test_mariadb_root_statement(self):
        commands = scripts.database_install(
            database("mariadb", version="11.4", root_password=HOSTILE_PASSWORD)
        )

        alter = next(command for command in commands if "ALTER USER" in command)
        assert remote_sql(alter) == (
            "ALTER USER 'root'@'localhost' IDENTIFIED BY 'x''; DROP DATABASE prod; --';"
        )

    def test_postgresql_root_statement(self):
        commands = scripts.database_install(
            database("postgresql", version="16", port=5432, root_password=HOSTILE_PASSWORD)
        )

        alter = next(command for command in commands if "ALTER USER" in command)
        assert remote_sql(alter) == "ALTER USER postgres PASSWORD 'x''; DROP DATABASE prod; --';"

    def test_redis_password_is_not_expanded_by_the_shell(self):
        commands = scripts.database_install(
            database("redis", version="7.2", port=6379, root_password="p$(touch /tmp/pwn)x&1")
        )

        sed = next(command for command in commands if "requirepass" in command)
        assert split(sed) == [
            "sed",
            "-i",
            "s/^# requirepass .*/requirepass p$(touch \\/tmp\\/pwn)x\\&1/",
            "/etc/redis/redis.conf",
        ]


class TestCredentialSchemas:
    @pytest.mark.parametrize("host", ["x'@'%", "host name", "a;b"])
    def test_rejects_unsafe_host(self, host):
        with pytest.raises(ValidationError):
            DatabaseUserCreate(username="app", password="password123", host=host)

    @pytest.mark.parametrize("host", ["%", "localhost", "10.0.0.%", "db.example.com", "::1"])
    def test_accepts_account_hosts(self, host):
        assert DatabaseUserCreate(username="app", password="password123", host=host).host == host

    def test_rejects_control_characters_in_password(self):
        with pytest.raises(ValidationError):
            DatabaseUserUpdate(password="password\nmore")

        with pytest.raises(ValidationError):
            DatabaseCreate(engine="mysql", root_password="root\tpassword")

    def test_accepts_quotes_in_password(self):
        assert DatabaseUserUpdate(password=HOSTILE_PASSWORD).password == HOSTILE_PASSWORD
