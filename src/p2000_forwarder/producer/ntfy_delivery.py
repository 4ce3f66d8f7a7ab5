"""
ntfy delivery client — pushes one notification per forwarded P2000 message.

POSTs a plain-text body to {server}/{topic} with ntfy's Title / Priority / Tags
headers. Each message gets up to MAX_ATTEMPTS attempts with a linear backoff
(2s before the 2nd attempt, 4s before the 3rd). Every attempt, from connect to
the last body byte, must finish within 10s or it counts as a failed attempt;
the caller's overall timeout, when given, cuts through both requests and
backoff waits.

Authentication, in precedence order:
    password set → HTTP Basic (username, password)
    token set    → Authorization: Bearer <token>
    otherwise    → unauthenticated
"""

import asyncio
import logging
import time
from typing import Optional

import httpx

from p2000_forwarder.connectors.models import Message
from p2000_forwarder.framework.capcode_lookup import CapcodeLookup
from p2000_forwarder.framework.lineage import get_forwarder_version

logger = logging.getLogger(__name__)

TITLE_PREFIX = "🚨"
PLACEHOLDER_TITLE = f"{TITLE_PREFIX} P2000"
UNSPECIFIED_AGENCY = "overig"
EMERGENCY_KIND = "FLEX"
EMERGENCY_TAGS = "rotating_light,emergency"
DEFAULT_TAGS = "warning"
DEFAULT_PRIORITY = "3"


class DeliveryError(Exception):
    """Base exception for notification delivery failures."""


class UnexpectedStatusError(DeliveryError):
    """The ntfy server answered with a non-2xx status."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"unexpected status code: {status_code}")
        self.status_code = status_code


class AllAttemptsExhaustedError(DeliveryError):
    """Every attempt failed; carries the attempt count and the last cause."""

    def __init__(self, attempts: int, last_error: Optional[BaseException]) -> None:
        super().__init__(f"failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class RequestTimeoutError(DeliveryError):
    """A single attempt ran past REQUEST_TIMEOUT_SECONDS."""


class DeliveryCancelledError(DeliveryError):
    """The caller's timeout expired before the notification was delivered."""


class NtfyDeliveryClient:
    """
    Async ntfy client with retry and backoff.

    Safe to call concurrently: apart from the pooled HTTP client it holds only
    immutable configuration.

    Usage (Forwarder):
        client = NtfyDeliveryClient("https://ntfy.sh", "p2000", token="tk_...", lookup=lookup)
        await client.send(message, timeout=30)
        await client.aclose()
    """

    MAX_ATTEMPTS = 3
    RETRY_BACKOFF_SECONDS = 2.0
    REQUEST_TIMEOUT_SECONDS = 10.0

    def __init__(
        self,
        server: str,
        topic: str,
        token: str = "",
        username: str = "",
        password: str = "",
        lookup: Optional[CapcodeLookup] = None,
        priority: str = DEFAULT_PRIORITY,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Args:
            server: ntfy base URL; a trailing slash is ignored
            topic: ntfy topic to publish to
            token: Bearer token, used when no password is set
            username: Basic auth username
            password: Basic auth password; enables Basic auth when non-empty
            lookup: Capcode reference data; None renders bare capcodes
            priority: ntfy priority "1".."5"
            http_client: Injected client (tests); one is created otherwise
        """
        self.server = server.rstrip("/")
        self.topic = topic
        self.token = token
        self.username = username
        self.password = password
        self.lookup = lookup
        self.priority = priority
        self._client = http_client or httpx.AsyncClient(timeout=self.REQUEST_TIMEOUT_SECONDS)

    @property
    def url(self) -> str:
        return f"{self.server}/{self.topic}"

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(self, message: Message, timeout: Optional[float] = None) -> None:
        """
        Deliver one message, retrying failed attempts.

        Args:
            message: The P2000 message to publish
            timeout: Overall seconds budget for all attempts and waits; None for no limit

        Raises:
            AllAttemptsExhaustedError: All MAX_ATTEMPTS attempts failed
            DeliveryCancelledError: `timeout` expired first
        """
        title = self.format_title(message)
        body = self.format_body(message)
        tags = self.tags_for(message.kind)

        try:
            async with asyncio.timeout(timeout):
                await self._send_with_retry(title, body, tags)
        except TimeoutError as exc:
            raise DeliveryCancelledError(f"delivery cancelled after {timeout}s") from exc

    async def _send_with_retry(self, title: str, body: str, tags: str) -> None:
        last_error: Optional[BaseException] = None
        for attempt in range(self.MAX_ATTEMPTS):
            if attempt > 0:
                delay = self.retry_delay(attempt)
                logger.debug(
                    "Retrying notification | attempt=%d/%d | wait=%.1fs",
                    attempt + 1,
                    self.MAX_ATTEMPTS,
                    delay,
                )
                await asyncio.sleep(delay)

            try:
                await self._post_within_deadline(title, body, tags)
            except (
                httpx.HTTPError,
                httpx.InvalidURL,
                UnexpectedStatusError,
                RequestTimeoutError,
                ValueError,
            ) as exc:
                last_error = exc
                logger.warning(
                    "Notification attempt failed | attempt=%d/%d | error=%s",
                    attempt + 1,
                    self.MAX_ATTEMPTS,
                    exc,
                )
                continue

            logger.info(
                "Notification sent | title=%s | priority=%s | attempt=%d",
                title,
                self.priority,
                attempt + 1,
            )
            return

        raise AllAttemptsExhaustedError(self.MAX_ATTEMPTS, last_error)

    def retry_delay(self, attempt: int) -> float:
        """Seconds to wait before retry number `attempt` (1-based): 2s, 4s, ..."""
        return self.RETRY_BACKOFF_SECONDS * attempt

    async def _post_within_deadline(self, title: str, body: str, tags: str) -> httpx.Response:
        """
        Bound one whole attempt by REQUEST_TIMEOUT_SECONDS.

        httpx timeouts limit each connect/read/write separately, so a server
        trickling its response would otherwise hold the attempt open.

        Raises:
            RequestTimeoutError: The attempt did not complete in time
        """
        try:
            async with asyncio.timeout(self.REQUEST_TIMEOUT_SECONDS):
                return await self._post(title, body, tags)
        except TimeoutError as exc:
            raise RequestTimeoutError(
                f"request did not complete within {self.REQUEST_TIMEOUT_SECONDS}s"
            ) from exc

    async def _post(self, title: str, body: str, tags: str) -> httpx.Response:
        """
        Send one HTTP request.

        Raises:
            UnexpectedStatusError: Non-2xx response
            httpx.HTTPError: Transport failure or per-attempt timeout
        """
        headers: dict[str, str | bytes] = {
            # ntfy accepts raw UTF-8 in the Title header; httpx would ASCII-encode a str.
            "Title": title.encode("utf-8"),
            "Priority": self.priority,
            "Tags": tags,
            "User-Agent": f"p2000-forwarder/{get_forwarder_version()}",
        }
        auth: Optional[httpx.Auth] = None
        if self.password:
            auth = httpx.BasicAuth(self.username, self.password)
        elif self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        started = time.monotonic()
        response = await self._client.post(
            self.url,
            content=body.encode("utf-8"),
            headers=headers,
            auth=auth,
            timeout=self.REQUEST_TIMEOUT_SECONDS,
        )
        logger.debug(
            "ntfy responded | status=%d | elapsed=%.3fs",
            response.status_code,
            time.monotonic() - started,
        )
        if not 200 <= response.status_code < 300:
            raise UnexpectedStatusError(response.status_code)
        return response

    # ------------------------------------------------------------------
    # Formatting
    # ------------------------------------------------------------------

    def format_title(self, message: Message) -> str:
        """Message text behind the 🚨 prefix, or the "🚨 P2000" placeholder when empty."""
        if message.message:
            return f"{TITLE_PREFIX} {message.message}"
        return PLACEHOLDER_TITLE

    def format_body(self, message: Message) -> str:
        """
        Agency of the first capcode, then one line per capcode.

        Example:
            Brandweer

            0101001: Utrecht - Centrum - Kazernealarm
            9999999
        """
        lines = [self._agency_label(message), ""]
        for capcode in message.capcodes:
            lines.append(self._capcode_line(capcode))
        return "\n".join(lines).rstrip("\n")

    def tags_for(self, kind: str) -> str:
        if kind == EMERGENCY_KIND:
            return EMERGENCY_TAGS
        return DEFAULT_TAGS

    def _agency_label(self, message: Message) -> str:
        if self.lookup is not None and message.capcodes:
            record = self.lookup.get(message.capcodes[0])
            if record is not None and record.agency:
                return record.agency
        return UNSPECIFIED_AGENCY

    def _capcode_line(self, capcode: str) -> str:
        record = self.lookup.get(capcode) if self.lookup is not None else None
        if record is None:
            return capcode
        details = [part for part in (record.region, record.station, record.function) if part]
        if not details:
            return capcode
        return f"{capcode}: {' - '.join(details)}"
