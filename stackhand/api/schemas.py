"""Request and response schemas."""

from datetime import datetime
from ipaddress import ip_address
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from stackhand.models import DatabaseEngine, RuntimeLanguage, ScheduleFrequency
from stackhand.validation.firewall import port_error
from stackhand.validation.scheduler import cron_error

NAME_PATTERN = r"^[a-zA-Z0-9_-]+$"
VERSION_PATTERN = r"^\d+(\.\d+)*$"
# MySQL account host: name, address, or a % wildcard
HOST_PATTERN = r"^[a-zA-Z0-9._%:-]+$"
PASSWORD_PATTERN = r"^[^\x00-\x1f\x7f]+$"


class ResourceRead(BaseModel):
    """Fields every lifecycle record exposes."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    server_id: int
    status: str
    error_log: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# === Servers ===


class ServerCreate(BaseModel):
    vanity_name: str = Field(..., min_length=1, max_length=255)
    public_ip: str
    private_ip: str | None = None
    ssh_port: int = Field(default=22, ge=1, le=65535)

    @field_validator("public_ip", "private_ip")
    @classmethod
    def validate_ip(cls, v: str | None) -> str | None:
        if v is not None:
            ip_address(v)
        return v


class ServerRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int | None = None
    vanity_name: str
    public_ip: str
    private_ip: str | None = None
    ssh_port: int
    connection: str
    provision_status: str
    provision: dict[str, str] = {}
    os_name: str | None = None
    os_version: str | None = None
    os_codename: str | None = None


class ServerCreated(ServerRead):
    """Returned once, on creation. Carries the secrets the bootstrap script needs."""

    monitoring_token: str
    callback_url: str


# === Provisioning ===


class ProvisionStepReport(BaseModel):
    """Step report in the JSON body (the query string works too)."""

    step: int | None = None
    status: str | None = None


class CallbackUrlRead(BaseModel):
    url: str


# === Databases ===


class DatabaseCreate(BaseModel):
    engine: DatabaseEngine
    version: str | None = Field(default=None, pattern=VERSION_PATTERN, max_length=16)
    port: int | None = Field(default=None, ge=1, le=65535)
    name: str | None = Field(default=None, pattern=NAME_PATTERN, max_length=64)
    root_password: str | None = Field(
        default=None, min_length=8, max_length=128, pattern=PASSWORD_PATTERN
    )

    @model_validator(mode="after")
    def sql_engines_need_credentials(self) -> "DatabaseCreate":
        if self.engine is not DatabaseEngine.REDIS and not self.root_password:
            raise ValueError("root_password is required for SQL databases")
        return self


class DatabaseUpdate(BaseModel):
    version: str = Field(..., pattern=VERSION_PATTERN, max_length=16)


class DatabaseRead(ResourceRead):
    name: str | None = None
    engine: str
    version: str
    port: int


class DatabaseSchemaCreate(BaseModel):
    name: str = Field(..., pattern=NAME_PATTERN, max_length=64)
    character_set: str = Field(default="utf8mb4", pattern=NAME_PATTERN, max_length=32)
    collation: str = Field(default="utf8mb4_unicode_ci", pattern=NAME_PATTERN, max_length=64)


class DatabaseSchemaRead(ResourceRead):
    database_id: int
    name: str
    character_set: str
    collation: str


class DatabaseUserCreate(BaseModel):
    username: str = Field(..., pattern=NAME_PATTERN, max_length=32)
    password: str = Field(..., min_length=8, max_length=128, pattern=PASSWORD_PATTERN)
    host: str = Field(default="%", pattern=HOST_PATTERN, max_length=255)
    privileges: Literal["all", "read"] = "all"


class DatabaseUserUpdate(BaseModel):
    password: str = Field(..., min_length=8, max_length=128, pattern=PASSWORD_PATTERN)


class DatabaseUserRead(ResourceRead):
    database_id: int
    username: str
    host: str
    privileges: str


# === Runtimes ===


class RuntimeCreate(BaseModel):
    language: RuntimeLanguage = RuntimeLanguage.PHP
    version: str = Field(..., pattern=VERSION_PATTERN, max_length=16)


class RuntimeRead(ResourceRead):
    language: str
    version: str
    is_cli_default: bool
    is_site_default: bool


# === Firewall ===


class FirewallRuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    port: str | None = None
    from_ip_address: str | None = None
    rule_type: Literal["allow", "deny"] = "allow"

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: str | None) -> str | None:
        if v is None or v == "":
            return None
        error = port_error(v)
        if error:
            raise ValueError(error)
        return v

    @field_validator("from_ip_address")
    @classmethod
    def validate_ip(cls, v: str | None) -> str | None:
        if not v:
            return None
        ip_address(v)
        return v

    @model_validator(mode="after")
    def port_or_source(self) -> "FirewallRuleCreate":
        if self.port is None and self.from_ip_address is None:
            raise ValueError("A rule needs a port, a source IP address, or both")
        return self


class FirewallRuleRead(ResourceRead):
    firewall_id: int
    name: str
    port: str | None = None
    from_ip_address: str | None = None
    rule_type: str


# === Supervisor ===


class SupervisorTaskCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    command: str = Field(..., min_length=1, max_length=1000)
    working_directory: str = Field(default="/home/stackhand", max_length=255)
    processes: int = Field(default=1, ge=1, le=20)
    user: str = Field(default="stackhand", pattern=NAME_PATTERN, max_length=64)
    auto_restart: bool = True
    autorestart_unexpected: bool = False
    stdout_logfile: str | None = Field(default=None, max_length=255)
    stderr_logfile: str | None = Field(default=None, max_length=255)


class SupervisorTaskUpdate(BaseModel):
    command: str | None = Field(default=None, min_length=1, max_length=1000)
    working_directory: str | None = Field(default=None, max_length=255)
    processes: int | None = Field(default=None, ge=1, le=20)
    auto_restart: bool | None = None
    autorestart_unexpected: bool | None = None


class SupervisorTaskRead(ResourceRead):
    name: str
    command: str
    working_directory: str
    processes: int
    user: str
    auto_restart: bool
    autorestart_unexpected: bool
    stdout_logfile: str | None = None
    stderr_logfile: str | None = None
    installed_at: datetime | None = None


# === Scheduler ===


class ScheduledTaskCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    command: str = Field(..., min_length=1, max_length=1000)
    frequency: ScheduleFrequency = ScheduleFrequency.DAILY
    cron_expression: str | None = Field(default=None, max_length=255)
    timeout: int = Field(default=300, ge=1)
    send_notifications: bool = False

    @model_validator(mode="after")
    def custom_needs_expression(self) -> "ScheduledTaskCreate":
        if self.frequency is ScheduleFrequency.CUSTOM:
            if not self.cron_expression:
                raise ValueError("cron_expression is required for custom frequency")
            error = cron_error(self.cron_expression)
            if error:
                raise ValueError(error)
        else:
            self.cron_expression = None
        return self


class ScheduledTaskRead(ResourceRead):
    name: str
    command: str
    frequency: str
    cron_expression: str | None = None
    timeout: int
    send_notifications: bool


# === Metrics ===


class MetricsPayload(BaseModel):
    cpu_usage: float = Field(..., ge=0, le=100)
    memory_total_mb: int = Field(..., ge=0)
    memory_used_mb: int = Field(..., ge=0)
    memory_usage_percentage: float = Field(..., ge=0, le=100)
    storage_total_gb: int = Field(..., ge=0)
    storage_used_gb: int = Field(..., ge=0)
    storage_usage_percentage: float = Field(..., ge=0, le=100)
    collected_at: datetime


class MetricsAccepted(BaseModel):
    success: bool = True
    metric_id: int


class ScheduledTaskUpdate(BaseModel):
    command: str | None = Field(default=None, min_length=1, max_length=1000)
    frequency: ScheduleFrequency | None = None
    cron_expression: str | None = Field(default=None, max_length=255)
    timeout: int | None = Field(default=None, ge=1)
    send_notifications: bool | None = None

    @model_validator(mode="after")
    def custom_needs_expression(self) -> "ScheduledTaskUpdate":
        if self.frequency is ScheduleFrequency.CUSTOM and not self.cron_expression:
            raise ValueError("cron_expression is required for custom frequency")
        if self.cron_expression:
            error = cron_error(self.cron_expression)
            if error:
                raise ValueError(error)
        return self
