"""
Offer-letter email draft generator gateway.

All outbound HTTP calls to the external draft generator go through this
class.  The generator receives the application context as JSON and returns
the email text; the text is stored verbatim and never parsed.

  - Timeout: DRAFT_GENERATOR_TIMEOUT seconds (default 30)
  - Disabled when DRAFT_GENERATOR_URL is empty: ``generate`` raises
    ExternalServiceError so the caller records the failure

Testability: pass a mock `session` to DraftGenerator() in tests instead of
letting it create a real requests.Session internally.
"""

from __future__ import annotations

import logging
import time

import requests

from app.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30


class DraftGenerator:
    """HTTP client for the email draft generator.

    Usage:
        from app.integrations.draft_generator import DraftGenerator
        text = DraftGenerator(url, timeout=10).generate(context)
    """

    def __init__(
        self,
        url: str | None,
        *,
        timeout: float = _DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url or ""
        self.timeout = timeout
        # Inject custom session for testing; create real one lazily otherwise.
        self._session: requests.Session | None = session

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def generate(self, context: dict) -> str:
        """Return generated email text for *context*.

        Raises:
            ExternalServiceError: generator disabled, unreachable, non-2xx,
                or an empty response body.
        """
        if not self.enabled:
            raise ExternalServiceError("draft_generator", "DRAFT_GENERATOR_URL is not configured")

        start = time.monotonic()
        try:
            resp = self.session.post(self.url, json=context, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.warning("Draft generator call failed after %dms: %s", duration_ms, exc)
            raise ExternalServiceError("draft_generator", str(exc)) from exc

        duration_ms = int((time.monotonic() - start) * 1000)
        content_type = resp.headers.get("Content-Type", "")
        if "json" in content_type:
            try:
                body = resp.json()
            except ValueError as exc:
                raise ExternalServiceError("draft_generator", "invalid JSON response") from exc
            text = None
            if isinstance(body, dict):
                text = body.get("email_content") or body.get("content")
        else:
            text = resp.text

        if not text or not str(text).strip():
            raise ExternalServiceError("draft_generator", "empty draft returned")

        logger.info("Draft generated in %dms (%d chars)", duration_ms, len(text))
        return str(text)
