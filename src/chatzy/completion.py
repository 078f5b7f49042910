"""Client for the Gemini ``generateContent`` endpoint.

Only the narrow contract the conversation store relies on is implemented:
post the user's text, then turn whatever comes back into something that
can be shown as a reply.  HTTP errors never raise here; they are mapped to
placeholder replies by :func:`interpret_response`.  Transport failures
(``requests.RequestException``) and undecodable success bodies
(``ValueError``) propagate so the caller can report them.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from . import constants
from .config import CompletionConfig
from .logging_utils import get_logger

logger = get_logger(__name__)

USER_AGENT = "Chatzy/1.0"


class CompletionError(RuntimeError):
    """Raised when a reply cannot be requested."""


class MissingCredentialsError(CompletionError):
    """Raised when no API key is configured for the completion endpoint."""


def _make_session(max_retries: int) -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT, "Content-Type": "application/json"})
    if max_retries > 0:
        # Connection failures only; a POST that reached the server is never resent.
        retry = Retry(
            total=max_retries,
            connect=max_retries,
            read=0,
            status=0,
            allowed_methods=None,
            backoff_factor=0.5,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
    return session


def build_payload(text: str) -> Dict[str, Any]:
    return {"contents": [{"parts": [{"text": text}]}]}


def extract_reply_text(payload: Any) -> Optional[str]:
    """Return ``candidates[0].content.parts[0].text`` or ``None``."""

    try:
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    return text if isinstance(text, str) else None


def _extract_error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return constants.UNKNOWN_ERROR
    error = payload.get("error") if isinstance(payload, dict) else None
    message = error.get("message") if isinstance(error, dict) else None
    if isinstance(message, str) and message.strip():
        return message
    return constants.UNKNOWN_ERROR


def interpret_response(response: requests.Response) -> str:
    """Map an HTTP response from the endpoint to the reply text to display."""

    status = response.status_code
    if status == 200:
        text = extract_reply_text(response.json())
        reply = text if text is not None else constants.NO_RESPONSE_REPLY
    elif status == 429:
        reply = constants.RATE_LIMITED_REPLY
    else:
        reply = constants.ERROR_REPLY_TEMPLATE.format(
            status=status, message=_extract_error_message(response)
        )
    return reply.strip()


class GeminiClient:
    """Blocking HTTP client; run it in a worker thread from async code."""

    def __init__(
        self,
        config: CompletionConfig,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config
        self._session = session or _make_session(config.max_retries)

    @property
    def is_configured(self) -> bool:
        return bool(self.config.api_key)

    def generate(self, text: str) -> requests.Response:
        if not self.is_configured:
            raise MissingCredentialsError(constants.MISSING_API_KEY)
        logger.debug("Requesting completion from %s (chars=%d)", self.config.model, len(text))
        response = self._session.post(
            self.config.endpoint,
            params={"key": self.config.api_key},
            json=build_payload(text),
            timeout=self.config.timeout,
        )
        logger.debug("Completion endpoint answered with status %s", response.status_code)
        return response

    def generate_reply(self, text: str) -> str:
        response = self.generate(text)
        if response.status_code != 200:
            logger.warning("Completion endpoint returned HTTP %s", response.status_code)
        return interpret_response(response)

    def close(self) -> None:
        self._session.close()


__all__ = [
    "CompletionError",
    "GeminiClient",
    "MissingCredentialsError",
    "build_payload",
    "extract_reply_text",
    "interpret_response",
]
