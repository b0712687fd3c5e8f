"""Captive-portal HTTP client: connectivity probe, login and logout.

Provides :class:`PortalClient`, a thin async wrapper around one
:class:`httpx.AsyncClient`.  Every public method returns a plain ``bool`` and
never raises for network reasons: transport errors, timeouts and unexpected
responses are all folded into ``False`` at this boundary, because the caller's
corrective action (try the next credential, assume we are offline) is the
same either way.

Each request runs under one total deadline (``probe_timeout_s`` or
``login_timeout_s``) covering connect, send and the full body read.  httpx's
own timeouts only bound each of those steps separately.

Wire contract
-------------
Login
    ``POST`` ``application/x-www-form-urlencoded`` to the login URL with
    ``mode=191``, ``username``, ``password`` and ``a=<unix millis>``.  The
    portal answers with a small XML document; the login succeeded iff its
    ``<message>`` text contains :data:`SUCCESS_PHRASES` (either one).

Logout
    ``POST`` form with ``mode=193``, ``username`` and ``a=<unix millis>`` to
    the logout URL.  The body is not inspected.

Probe
    Unauthenticated ``GET`` of a 204-style endpoint.  Reachable iff the
    request completes, whatever the status or body.

Typical usage::

    async with PortalClient(settings) as portal:
        if not await portal.probe():
            ok = await portal.login(Credential(username="alice", password="pw"))
"""

from __future__ import annotations

import asyncio
import logging
import time
import xml.etree.ElementTree as ET
from typing import Final

import httpx

from portalbot.core.models import Credential
from portalbot.core.settings import Settings

__all__ = [
    "LOGIN_MODE",
    "LOGOUT_MODE",
    "PortalClient",
    "SUCCESS_PHRASES",
    "is_login_success",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Form ``mode`` value the portal expects for a login submission.
LOGIN_MODE: Final[str] = "191"

#: Form ``mode`` value the portal expects for a logout submission.
LOGOUT_MODE: Final[str] = "193"

#: Phrases in the portal's ``<message>`` element that mean "logged in".
SUCCESS_PHRASES: Final[tuple[str, ...]] = (
    "You are signed in as",
    "You have successfully logged in",
)

_USER_AGENT: Final[str] = "portalbot/0.1"


def _unix_millis() -> str:
    """Current Unix time in milliseconds, as the decimal string the portal wants."""
    return str(int(time.time() * 1000))


def _extract_message(body: str) -> str:
    """Return the text of the first ``<message>`` element in *body*.

    Falls back to the raw body when it is not well-formed XML or carries no
    ``<message>`` element, so a portal that answers in plain text is still
    classified by the same phrases.
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        return body
    for element in root.iter("message"):
        return "".join(element.itertext())
    return body


def is_login_success(response: httpx.Response) -> bool:
    """Classify a login response.

    Args:
        response: Completed response from the login endpoint.

    Returns:
        ``True`` iff the status is 2xx and the message carries one of
        :data:`SUCCESS_PHRASES`.
    """
    if not response.is_success:
        return False
    message = _extract_message(response.text)
    return any(phrase in message for phrase in SUCCESS_PHRASES)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class PortalClient:
    """Async client for the captive portal and the connectivity probe.

    Use as an ``async with`` context manager (preferred), or call
    :meth:`close` explicitly when done.

    Args:
        settings: Supplies the endpoint URLs and per-request timeouts.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`
            in tests.  ``None`` uses the default network transport.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._login_url = settings.portal_login_url
        self._logout_url = settings.portal_logout_url
        self._probe_url = settings.probe_url
        self._login_timeout_s = settings.login_timeout_s
        self._probe_timeout_s = settings.probe_timeout_s
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> PortalClient:
        self._ensure_http_client()
        return self

    async def __aexit__(self, *_args: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def probe(self) -> bool:
        """Return ``True`` if the probe endpoint answers at all.

        The response content is ignored; any :class:`httpx.HTTPError`, or
        running past the deadline, means unreachable.
        """
        client = self._ensure_http_client()
        try:
            async with asyncio.timeout(self._probe_timeout_s):
                response = await client.get(self._probe_url, timeout=self._probe_timeout_s)
        except (httpx.HTTPError, TimeoutError) as exc:
            logger.debug("Probe %s failed: %s", self._probe_url, type(exc).__name__)
            return False
        logger.debug("Probe %s answered HTTP %d", self._probe_url, response.status_code)
        return True

    async def login(self, credential: Credential) -> bool:
        """Submit *credential* to the portal's login form.

        Returns:
            ``True`` only for a 2xx response carrying a success phrase.
            Every failure, including transport errors and timeouts, is
            ``False``.
        """
        client = self._ensure_http_client()
        form = {
            "mode": LOGIN_MODE,
            "username": credential.username,
            "password": credential.password,
            "a": _unix_millis(),
        }
        try:
            async with asyncio.timeout(self._login_timeout_s):
                response = await client.post(
                    self._login_url,
                    data=form,
                    timeout=self._login_timeout_s,
                )
        except (httpx.HTTPError, TimeoutError) as exc:
            logger.debug(
                "Login request for %s failed: %s: %s",
                credential.username,
                type(exc).__name__,
                exc,
            )
            return False

        success = is_login_success(response)
        logger.debug(
            "Login response for %s: HTTP %d, success=%s",
            credential.username,
            response.status_code,
            success,
        )
        return success

    async def logout(self, username: str) -> bool:
        """Ask the portal to end the session of *username*.

        Returns:
            ``True`` if the request completed (content not inspected),
            ``False`` on a transport error or timeout.
        """
        client = self._ensure_http_client()
        form = {
            "mode": LOGOUT_MODE,
            "username": username,
            "a": _unix_millis(),
        }
        try:
            async with asyncio.timeout(self._login_timeout_s):
                response = await client.post(
                    self._logout_url,
                    data=form,
                    timeout=self._login_timeout_s,
                )
        except (httpx.HTTPError, TimeoutError) as exc:
            logger.warning("Logout request for %s failed: %r", username, exc)
            return False
        logger.debug("Logout response for %s: HTTP %d", username, response.status_code)
        return True

    async def close(self) -> None:
        """Close the underlying HTTP client.  Safe to call multiple times."""
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
            logger.debug("PortalClient HTTP session closed.")
        self._http = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_http_client(self) -> httpx.AsyncClient:
        """Return the open HTTP client, creating it lazily if necessary."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                transport=self._transport,
                headers={"User-Agent": _USER_AGENT},
            )
            logger.debug("PortalClient HTTP session opened.")
        return self._http
