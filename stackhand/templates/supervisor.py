"""supervisord program block for a supervised task."""

import re

from stackhand.models import ServerSupervisorTask

LOG_DIR = "/var/log/supervisor"
LOG_MAX_BYTES = "10MB"
LOG_BACKUPS = 5

SUPERVISOR_PROGRAM_TEMPLATE = """[program:{program}]
command={command}
directory={directory}
user={user}
numprocs={numprocs}
process_name=%(program_name)s_%(process_num)02d
autostart=true
autorestart={autorestart}
startsecs=1
stopasgroup=true
killasgroup=true
stdout_logfile={stdout_logfile}
stdout_logfile_maxbytes={max_bytes}
stdout_logfile_backups={backups}
stderr_logfile={stderr_logfile}
stderr_logfile_maxbytes={max_bytes}
stderr_logfile_backups={backups}
"""


def program_name(name: str) -> str:
    """Reduce a task name to characters supervisord accepts in a program name."""
    return re.sub(r"[^a-zA-Z0-9_-]", "_", name)


def autorestart_policy(task: ServerSupervisorTask) -> str:
    if task.autorestart_unexpected:
        return "unexpected"
    return "true" if task.auto_restart else "false"


def render_supervisor_config(task: ServerSupervisorTask) -> str:
    program = program_name(task.name)
    return SUPERVISOR_PROGRAM_TEMPLATE.format(
        program=program,
        command=task.command,
        directory=task.working_directory,
        user=task.user,
        numprocs=max(task.processes or 1, 1),
        autorestart=autorestart_policy(task),
        stdout_logfile=task.stdout_logfile or f"{LOG_DIR}/{program}.out.log",
        stderr_logfile=task.stderr_logfile or f"{LOG_DIR}/{program}.err.log",
        max_bytes=LOG_MAX_BYTES,
        backups=LOG_BACKUPS,
    )
