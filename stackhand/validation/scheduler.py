"""Scheduled task validation."""

import re

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stackhand.errors import ValidationFailed
from stackhand.models import ServerScheduledTask

# minute hour day-of-month month day-of-week
_FIELD = r"(\*|\d+)(-\d+)?(/\d+)?(,(\d+)(-\d+)?(/\d+)?)*"
CRON_PATTERN = re.compile(rf"^{_FIELD}( {_FIELD}){{4}}$")

CRON_RANGES = ((0, 59), (0, 23), (1, 31), (1, 12), (0, 7))


def cron_error(expression: str) -> str | None:
    expression = " ".join(expression.split())
    if not CRON_PATTERN.match(expression):
        return "The cron expression must have five space-separated fields."
    for field, (low, high) in zip(expression.split(" "), CRON_RANGES, strict=True):
        for number in re.findall(r"(?<!/)\b\d+", field):
            if not low <= int(number) <= high:
                return f"Cron value {number} is out of range {low}-{high}."
    return None


async def ensure_task_limit(db: AsyncSession, server_id: int, limit: int) -> None:
    result = await db.execute(
        select(func.count())
        .select_from(ServerScheduledTask)
        .where(ServerScheduledTask.server_id == server_id)
    )
    if result.scalar_one() >= limit:
        raise ValidationFailed.single(
            "name", f"A server can have at most {limit} scheduled tasks."
        )
