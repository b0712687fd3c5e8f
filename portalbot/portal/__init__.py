"""Network collaborators: portal login/logout, connectivity probe, speed test."""

from portalbot.portal.client import PortalClient, is_login_success
from portalbot.portal.speedtest import format_speed, measure_speed

__all__ = [
    "PortalClient",
    "format_speed",
    "is_login_success",
    "measure_speed",
]
