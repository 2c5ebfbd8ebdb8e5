"""Configuration text rendered for remote daemons."""

from .cron import cron_expression, render_cron_entry, render_task_wrapper
from .supervisor import program_name, render_supervisor_config

__all__ = [
    "render_supervisor_config",
    "program_name",
    "render_cron_entry",
    "render_task_wrapper",
    "cron_expression",
]
