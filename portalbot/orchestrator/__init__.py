"""Login-cycle orchestration, timers, and command routing.

Public API
----------
* :class:`~portalbot.orchestrator.login_cycle.LoginCycle`: the retry /
  rotation state machine.
* :class:`~portalbot.orchestrator.scheduler.Scheduler`: named repeating
  asyncio timers.
* :func:`~portalbot.orchestrator.runner.open_service` /
  :class:`~portalbot.orchestrator.runner.Service`: component wiring and
  command dispatch.
* :func:`~portalbot.orchestrator.runner.run_service`: foreground runtime.
"""

from portalbot.orchestrator.login_cycle import (
    ALARM_NAME,
    STATUS_CONNECTED,
    STATUS_DISCONNECTED,
    STATUS_NO_CREDENTIALS,
    STATUS_STARTING,
    STATUS_STOPPED_BY_USER,
    LoginCycle,
    connected_status,
    exhausted_status,
    testing_status,
)
from portalbot.orchestrator.runner import Service, open_service, run_service
from portalbot.orchestrator.scheduler import Scheduler

__all__ = [
    # State machine
    "LoginCycle",
    "ALARM_NAME",
    "STATUS_CONNECTED",
    "STATUS_DISCONNECTED",
    "STATUS_NO_CREDENTIALS",
    "STATUS_STARTING",
    "STATUS_STOPPED_BY_USER",
    "connected_status",
    "exhausted_status",
    "testing_status",
    # Timers
    "Scheduler",
    # Wiring
    "Service",
    "open_service",
    "run_service",
]
