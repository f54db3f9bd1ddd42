"""Built-in remediation actions.

Import modules here so registration works in static contexts.
"""

from services.remediation.actions import influx as _influx
from services.remediation.actions import log_line as _log_line
from services.remediation.actions import noop as _noop
from services.remediation.actions import reboot as _reboot
from services.remediation.actions import restart_service as _restart_service
from services.remediation.actions import run_command as _run_command

__all__ = ["_influx", "_log_line", "_noop", "_reboot", "_restart_service", "_run_command"]
