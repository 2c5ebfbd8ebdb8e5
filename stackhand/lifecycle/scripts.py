"""Shell commands that install, update and remove each resource kind.

Every builder returns a list of discrete commands. Each one is sent as its
own SSH invocation and must exit non-zero on failure.
"""

from shlex import quote

from stackhand.models import (
    DatabaseEngine,
    ServerDatabase,
    ServerDatabaseSchema,
    ServerDatabaseUser,
    ServerFirewallRule,
    ServerReverseProxy,
    ServerRuntime,
    ServerScheduledTask,
)

APT = "DEBIAN_FRONTEND=noninteractive apt-get"
SUPERVISOR_CONF_DIR = "/etc/supervisor/conf.d"
SCHEDULER_DIR = "/opt/stackhand/scheduler/tasks"
CRON_DIR = "/etc/cron.d"


def sql_string(value: str, engine: DatabaseEngine) -> str:
    """Quote ``value`` as an SQL string literal for ``engine``."""
    if engine is not DatabaseEngine.POSTGRESQL:
        # MySQL treats backslash as an escape inside literals
        value = value.replace("\\", "\\\\")
    return "'" + value.replace("'", "''") + "'"


def sed_replacement(value: str) -> str:
    """Escape ``value`` for the replacement side of a ``s/.../.../`` expression."""
    return value.replace("\\", "\\\\").replace("/", "\\/").replace("&", "\\&")


def write_file(path: str, content: str, mode: str = "644") -> list[str]:
    return [
        f"printf '%s\\n' {quote(content)} > {path}",
        f"chmod {mode} {path}",
    ]


# === Databases ===


def _mysql_family_install(db: ServerDatabase, service: str, packages: str) -> list[str]:
    password = quote(db.root_password or "")
    commands = [
        f"{APT} update -y",
        f"{APT} install -y ca-certificates curl gnupg lsb-release",
    ]
    if service == "mysql":
        # Preseed so apt-get never prompts for the root password
        for question in ("root_password", "root_password_again"):
            selection = f"mysql-server mysql-server/{question} password {db.root_password}"
            commands.append(f"echo {quote(selection)} | debconf-set-selections")
    commands += [
        f"{APT} install -y {packages}",
        f"systemctl enable --now {service}",
    ]
    if service == "mariadb":
        # MariaDB root starts out on unix_socket auth
        secret = sql_string(db.root_password or "", DatabaseEngine.MARIADB)
        statement = f"ALTER USER 'root'@'localhost' IDENTIFIED BY {secret};"
        commands.append(f"mysql -u root -e {quote(statement)}")
    return commands + [
        f"mysql -u root -p{password} -e "
        + quote(
            "DELETE FROM mysql.user WHERE User=''; DROP DATABASE IF EXISTS test; FLUSH PRIVILEGES;"
        ),
        f"sed -i 's/^port.*/port = {db.port}/; s/^bind-address.*/bind-address = 0.0.0.0/' "
        f"/etc/mysql/{service}.conf.d/*.cnf || true",
        f"systemctl restart {service}",
        f"ufw allow {db.port}/tcp >/dev/null 2>&1 || true",
        f"mysql -u root -p{password} -e 'SELECT VERSION();'",
    ]


def _postgresql_install(db: ServerDatabase) -> list[str]:
    conf = f"/etc/postgresql/{db.version}/main/postgresql.conf"
    secret = sql_string(db.root_password or "", DatabaseEngine.POSTGRESQL)
    return [
        f"{APT} update -y",
        f"{APT} install -y postgresql-common",
        "/usr/share/postgresql-common/pgdg/apt.postgresql.org.sh -y",
        f"{APT} install -y postgresql-{db.version} postgresql-client-{db.version}",
        f"sed -i \"s/^#\\?port = .*/port = {db.port}/\" {conf}",
        f"sed -i \"s/^#\\?listen_addresses = .*/listen_addresses = '*'/\" {conf}",
        "systemctl enable --now postgresql",
        "systemctl restart postgresql",
        "sudo -u postgres psql -c " + quote(f"ALTER USER postgres PASSWORD {secret};"),
        f"ufw allow {db.port}/tcp >/dev/null 2>&1 || true",
    ]


def _redis_install(db: ServerDatabase) -> list[str]:
    conf = "/etc/redis/redis.conf"
    commands = [
        f"{APT} update -y",
        f"{APT} install -y redis-server",
        f"sed -i 's/^bind .*/bind 0.0.0.0/' {conf}",
        f"sed -i 's/^port .*/port {db.port}/' {conf}",
        f"sed -i 's/^supervised no/supervised systemd/' {conf}",
        f"sed -i 's/^appendonly no/appendonly yes/' {conf}",
    ]
    if db.root_password:
        expression = f"s/^# requirepass .*/requirepass {sed_replacement(db.root_password)}/"
        commands.append(f"sed -i {quote(expression)} {conf}")
    commands += [
        "systemctl enable --now redis-server",
        "systemctl restart redis-server",
        f"ufw allow {db.port}/tcp >/dev/null 2>&1 || true",
        "systemctl is-active redis-server",
    ]
    return commands


def database_install(db: ServerDatabase) -> list[str]:
    engine = DatabaseEngine(db.engine)
    if engine is DatabaseEngine.MYSQL:
        return _mysql_family_install(db, "mysql", "mysql-server mysql-client")
    if engine is DatabaseEngine.MARIADB:
        return _mysql_family_install(db, "mariadb", "mariadb-server mariadb-client")
    if engine is DatabaseEngine.POSTGRESQL:
        return _postgresql_install(db)
    return _redis_install(db)


def database_remove(db: ServerDatabase) -> list[str]:
    engine = DatabaseEngine(db.engine)
    service, packages, data_dir = {
        DatabaseEngine.MYSQL: ("mysql", "mysql-server mysql-client mysql-common", "/var/lib/mysql"),
        DatabaseEngine.MARIADB: ("mariadb", "mariadb-server mariadb-client", "/var/lib/mysql"),
        DatabaseEngine.POSTGRESQL: ("postgresql", "postgresql*", "/var/lib/postgresql"),
        DatabaseEngine.REDIS: ("redis-server", "redis-server", "/var/lib/redis"),
    }[engine]
    return [
        f"systemctl stop {service} || true",
        f"systemctl disable {service} || true",
        f"{APT} purge -y {packages}",
        f"{APT} autoremove -y",
        f"rm -rf {data_dir}",
        f"ufw delete allow {db.port}/tcp >/dev/null 2>&1 || true",
    ]


def database_update(db: ServerDatabase) -> list[str]:
    engine = DatabaseEngine(db.engine)
    if engine is DatabaseEngine.POSTGRESQL:
        return [
            f"{APT} update -y",
            f"{APT} install -y postgresql-{db.version}",
            "pg_upgradecluster -v " + quote(db.version) + " $(pg_lsclusters -h | head -1 | "
            "awk '{print $1\" \"$2}')",
            "systemctl restart postgresql",
        ]
    if engine is DatabaseEngine.REDIS:
        return [
            f"{APT} update -y",
            f"{APT} install -y --only-upgrade redis-server",
            "systemctl restart redis-server",
        ]
    service = "mysql" if engine is DatabaseEngine.MYSQL else "mariadb"
    return [
        f"{APT} update -y",
        f"{APT} install -y --only-upgrade {service}-server",
        f"systemctl restart {service}",
        f"mysql_upgrade -u root -p{quote(db.root_password or '')} || true",
    ]


def _sql(db: ServerDatabase, statement: str) -> str:
    if DatabaseEngine(db.engine) is DatabaseEngine.POSTGRESQL:
        return f"sudo -u postgres psql -p {db.port} -c {quote(statement)}"
    return f"mysql -u root -p{quote(db.root_password or '')} -P {db.port} -e {quote(statement)}"


def schema_create(db: ServerDatabase, schema: ServerDatabaseSchema) -> list[str]:
    if DatabaseEngine(db.engine) is DatabaseEngine.POSTGRESQL:
        return [_sql(db, f'CREATE DATABASE "{schema.name}" ENCODING \'UTF8\';')]
    return [
        _sql(
            db,
            f"CREATE DATABASE IF NOT EXISTS `{schema.name}` "
            f"CHARACTER SET {schema.character_set} COLLATE {schema.collation};",
        )
    ]


def schema_drop(db: ServerDatabase, schema: ServerDatabaseSchema) -> list[str]:
    if DatabaseEngine(db.engine) is DatabaseEngine.POSTGRESQL:
        return [_sql(db, f'DROP DATABASE IF EXISTS "{schema.name}";')]
    return [_sql(db, f"DROP DATABASE IF EXISTS `{schema.name}`;")]


def _mysql_account(user: ServerDatabaseUser) -> str:
    engine = DatabaseEngine.MYSQL
    return f"{sql_string(user.username, engine)}@{sql_string(user.host, engine)}"


def _mysql_grant(user: ServerDatabaseUser) -> str:
    privileges = "SELECT" if user.privileges == "read" else "ALL PRIVILEGES"
    return f"GRANT {privileges} ON *.* TO {_mysql_account(user)};"


def user_create(db: ServerDatabase, user: ServerDatabaseUser) -> list[str]:
    if DatabaseEngine(db.engine) is DatabaseEngine.POSTGRESQL:
        secret = sql_string(user.password, DatabaseEngine.POSTGRESQL)
        return [_sql(db, f"CREATE ROLE \"{user.username}\" LOGIN PASSWORD {secret};")]
    return [
        _sql(
            db,
            f"CREATE USER {_mysql_account(user)} "
            f"IDENTIFIED BY {sql_string(user.password, DatabaseEngine.MYSQL)}; "
            f"{_mysql_grant(user)} FLUSH PRIVILEGES;",
        )
    ]


def user_update(db: ServerDatabase, user: ServerDatabaseUser) -> list[str]:
    if DatabaseEngine(db.engine) is DatabaseEngine.POSTGRESQL:
        secret = sql_string(user.password, DatabaseEngine.POSTGRESQL)
        return [_sql(db, f"ALTER ROLE \"{user.username}\" PASSWORD {secret};")]
    return [
        _sql(
            db,
            f"ALTER USER {_mysql_account(user)} "
            f"IDENTIFIED BY {sql_string(user.password, DatabaseEngine.MYSQL)}; "
            f"REVOKE ALL PRIVILEGES ON *.* FROM {_mysql_account(user)}; "
            f"{_mysql_grant(user)} FLUSH PRIVILEGES;",
        )
    ]


def user_drop(db: ServerDatabase, user: ServerDatabaseUser) -> list[str]:
    if DatabaseEngine(db.engine) is DatabaseEngine.POSTGRESQL:
        return [_sql(db, f'DROP ROLE IF EXISTS "{user.username}";')]
    return [_sql(db, f"DROP USER IF EXISTS {_mysql_account(user)}; FLUSH PRIVILEGES;")]


# === Runtimes ===

PHP_EXTENSIONS = (
    "fpm",
    "cli",
    "common",
    "curl",
    "mbstring",
    "xml",
    "zip",
    "intl",
    "mysql",
    "pgsql",
    "gd",
    "bcmath",
    "opcache",
    "readline",
)


def runtime_install(runtime: ServerRuntime) -> list[str]:
    if runtime.language == "node":
        major = runtime.version.split(".")[0]
        return [
            f"curl -fsSL https://deb.nodesource.com/setup_{major}.x | bash -",
            f"{APT} install -y nodejs",
            "node --version",
        ]
    version = runtime.version
    packages = " ".join(f"php{version}-{ext}" for ext in PHP_EXTENSIONS)
    ini = f"/etc/php/{version}/fpm/php.ini"
    return [
        f"{APT} update -y",
        f"{APT} install -y software-properties-common",
        "add-apt-repository -y ppa:ondrej/php",
        f"{APT} update -y",
        f"{APT} install -y --no-install-recommends {packages}",
        f"sed -i 's/^;*upload_max_filesize.*/upload_max_filesize = 100M/' {ini}",
        f"sed -i 's/^;*post_max_size.*/post_max_size = 100M/' {ini}",
        f"systemctl enable --now php{version}-fpm",
        f"php{version} --version",
    ]


def runtime_remove(runtime: ServerRuntime) -> list[str]:
    if runtime.language == "node":
        return [f"{APT} purge -y nodejs", f"{APT} autoremove -y"]
    version = runtime.version
    return [
        f"systemctl stop php{version}-fpm || true",
        f"{APT} purge -y 'php{version}-*'",
        f"{APT} autoremove -y",
    ]


def runtime_set_cli_default(runtime: ServerRuntime) -> list[str]:
    return [f"update-alternatives --set php /usr/bin/php{runtime.version}"]


# === Firewall ===


def _ufw_rule(rule: ServerFirewallRule) -> str:
    parts = [rule.rule_type]
    if rule.from_ip_address:
        parts.append(f"from {rule.from_ip_address}")
        if rule.port:
            parts.append(f"to any port {rule.port.replace('-', ':')} proto tcp")
    elif rule.port:
        parts.append(f"{rule.port.replace('-', ':')}/tcp")
    return " ".join(parts)


def firewall_rule_install(rule: ServerFirewallRule) -> list[str]:
    return [
        'which ufw >/dev/null 2>&1 || (echo "UFW is not installed" && exit 1)',
        f"ufw {_ufw_rule(rule)} comment {quote(rule.name)}",
        "ufw reload",
    ]


def firewall_rule_remove(rule: ServerFirewallRule) -> list[str]:
    return [f"ufw delete {_ufw_rule(rule)}", "ufw reload"]


def firewall_enable() -> list[str]:
    return [
        f"{APT} install -y ufw",
        "ufw default deny incoming",
        "ufw default allow outgoing",
        "ufw allow 22/tcp",
        "ufw --force enable",
    ]


# === Supervisor ===


def supervisor_task_install(program: str, config: str) -> list[str]:
    path = f"{SUPERVISOR_CONF_DIR}/{program}.conf"
    return [
        f"mkdir -p {SUPERVISOR_CONF_DIR}",
        *write_file(path, config),
        "supervisorctl reread",
        "supervisorctl update",
        f"supervisorctl start {quote(program + ':*')}",
    ]


def supervisor_task_remove(program: str) -> list[str]:
    return [
        f"supervisorctl stop {quote(program + ':*')} || true",
        f"rm -f {SUPERVISOR_CONF_DIR}/{program}.conf",
        "supervisorctl reread",
        "supervisorctl update",
    ]


def supervisor_task_update(program: str, config: str) -> list[str]:
    return [
        *write_file(f"{SUPERVISOR_CONF_DIR}/{program}.conf", config),
        "supervisorctl reread",
        "supervisorctl update",
        f"supervisorctl restart {quote(program + ':*')}",
    ]


def supervisor_stack_install() -> list[str]:
    return [
        f"{APT} install -y supervisor",
        f"mkdir -p {SUPERVISOR_CONF_DIR}",
        "systemctl enable --now supervisor",
        "supervisorctl version",
    ]


# === Scheduler ===


def scheduled_task_install(task: ServerScheduledTask, wrapper: str, cron_entry: str) -> list[str]:
    script = f"{SCHEDULER_DIR}/{task.id}.sh"
    cron_file = f"{CRON_DIR}/stackhand-task-{task.id}"
    return [
        f"mkdir -p {SCHEDULER_DIR}",
        *write_file(script, wrapper, mode="755"),
        *write_file(cron_file, cron_entry),
        f"test -f {cron_file} || (echo 'Cron entry creation failed' && exit 1)",
    ]


def scheduled_task_remove(task: ServerScheduledTask) -> list[str]:
    return [
        f"rm -f {CRON_DIR}/stackhand-task-{task.id}",
        f"rm -f {SCHEDULER_DIR}/{task.id}.sh",
    ]


def scheduler_stack_install() -> list[str]:
    return [
        f"mkdir -p {SCHEDULER_DIR}",
        "chmod 755 /opt/stackhand/scheduler",
        "systemctl enable --now cron",
    ]


# === Reverse proxy ===


def reverse_proxy_install(proxy: ServerReverseProxy) -> list[str]:
    workers = proxy.worker_processes or "auto"
    return [
        f"{APT} update -y",
        f"{APT} install -y nginx",
        f"sed -i 's/^worker_processes .*/worker_processes {workers};/' /etc/nginx/nginx.conf",
        "nginx -t",
        "systemctl enable --now nginx",
        "systemctl reload nginx",
        "ufw allow 'Nginx Full' >/dev/null 2>&1 || true",
    ]


def reverse_proxy_remove(proxy: ServerReverseProxy) -> list[str]:
    return [
        "systemctl stop nginx || true",
        f"{APT} purge -y nginx nginx-common",
        f"{APT} autoremove -y",
    ]


# === Access verification ===


def detect_os() -> str:
    """Prints name, version and codename on three lines."""
    return (
        ". /etc/os-release && "
        "printf '%s\\n%s\\n%s\\n' \"$NAME\" \"$VERSION_ID\" \"$VERSION_CODENAME\""
    )
