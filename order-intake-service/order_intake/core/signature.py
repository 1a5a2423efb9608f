"""Webhook signature and replay-window verification.

The shop signs every delivery with a hex HMAC-SHA256 of the raw request body
and sends the Unix time of sending in a separate header. Both checks run
before the body is parsed, and the first failing check wins.
"""

import hashlib
import hmac
import logging
import re
import time
from typing import Callable

from order_intake.core.errors import AuthenticationFailure, ReplayRejected

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300

# ASCII integer seconds only; `int()` alone also takes "1_000" and non-ASCII digits.
_TIMESTAMP_RE = re.compile(r"-?[0-9]+")


class WebhookVerifier:
    def __init__(
        self,
        secret: str | None,
        tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._secret = secret or ""
        self._tolerance_seconds = int(tolerance_seconds)
        self._clock = clock

    @property
    def is_configured(self) -> bool:
        return bool(self._secret)

    def sign(self, raw_body: bytes) -> str:
        if not self.is_configured:
            raise AuthenticationFailure("Webhook secret is not configured")

        return hmac.new(
            self._secret.encode("utf-8"), raw_body, hashlib.sha256
        ).hexdigest()

    def verify_signature(self, raw_body: bytes, signature: str | None) -> None:
        if not self.is_configured:
            logger.error("Webhook secret is not configured, rejecting delivery")
            raise AuthenticationFailure("Webhook secret is not configured")
        if not signature:
            raise AuthenticationFailure("Missing webhook signature")

        expected = self.sign(raw_body)
        if not hmac.compare_digest(
            expected.encode("utf-8"), signature.encode("utf-8")
        ):
            raise AuthenticationFailure("Webhook signature mismatch")

    def verify_timestamp(self, timestamp: str | None) -> None:
        """Accept timestamps at most ``tolerance_seconds`` away from now, inclusive."""
        if timestamp is None or not timestamp.strip():
            raise ReplayRejected("Missing webhook timestamp")

        if not _TIMESTAMP_RE.fullmatch(timestamp.strip()):
            raise ReplayRejected(f"Invalid webhook timestamp: {timestamp!r}")
        sent_at = int(timestamp.strip())

        drift = abs(int(self._clock()) - sent_at)
        if drift > self._tolerance_seconds:
            logger.warning(f"Webhook timestamp outside window: {drift} seconds")
            raise ReplayRejected(f"Webhook timestamp is {drift} seconds old")

    def verify(
        self, raw_body: bytes, signature: str | None, timestamp: str | None
    ) -> None:
        self.verify_signature(raw_body, signature)
        self.verify_timestamp(timestamp)
