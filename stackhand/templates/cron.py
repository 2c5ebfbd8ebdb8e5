"""Cron entry and wrapper script for a scheduled task."""

from shlex import quote

from stackhand.lifecycle.scripts import SCHEDULER_DIR
from stackhand.models import ScheduleFrequency, ServerScheduledTask

FREQUENCY_EXPRESSIONS = {
    ScheduleFrequency.MINUTELY: "* * * * *",
    ScheduleFrequency.HOURLY: "0 * * * *",
    ScheduleFrequency.DAILY: "0 0 * * *",
    ScheduleFrequency.WEEKLY: "0 0 * * 0",
    ScheduleFrequency.MONTHLY: "0 0 1 * *",
}

WRAPPER_TEMPLATE = """#!/bin/bash
# stackhand scheduled task #{task_id}: {name}
timeout {timeout} bash -c {command}
"""

CRON_ENTRY_TEMPLATE = """# stackhand scheduled task #{task_id}
{expression} root {script} >> /var/log/stackhand-task-{task_id}.log 2>&1
"""


def cron_expression(task: ServerScheduledTask) -> str:
    frequency = ScheduleFrequency(task.frequency)
    if frequency is ScheduleFrequency.CUSTOM:
        if not task.cron_expression:
            raise ValueError(f"Scheduled task #{task.id} has no cron expression")
        return task.cron_expression
    return FREQUENCY_EXPRESSIONS[frequency]


def render_task_wrapper(task: ServerScheduledTask) -> str:
    return WRAPPER_TEMPLATE.format(
        task_id=task.id,
        name=task.name.replace("\n", " "),
        timeout=task.timeout,
        command=quote(task.command),
    )


def render_cron_entry(task: ServerScheduledTask) -> str:
    return CRON_ENTRY_TEMPLATE.format(
        task_id=task.id,
        expression=cron_expression(task),
        script=f"{SCHEDULER_DIR}/{task.id}.sh",
    )
