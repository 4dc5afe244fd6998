"""
Synchronous HTTP client for the chat backend.

Uses ``httpx.Client`` (sync): calls are issued from the chat session's
worker threads, and ``httpx.Client`` is safe to share between them.
"""

import logging

import httpx

from src.core.config import Settings, get_settings
from src.core.models import AudioBlob, SendMessageRequest

logger = logging.getLogger(__name__)


class APIError(Exception):
    """User-friendly API error with categorized message.

    Categories: "connection", "timeout", "http", "network", "decode".
    Used by the UI to display appropriate error messages.
    """

    def __init__(self, message: str, category: str = "unknown") -> None:
        self.message = message
        self.category = category
        super().__init__(message)


class APIClient:
    """Thin synchronous wrapper around httpx for the two chat endpoints.

    All methods return parsed JSON or raise ``APIError`` with user-friendly
    messages for display in the UI.
    """

    def __init__(
        self,
        base_url: str | None = None,
        settings: Settings | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the HTTP client.

        Args:
            base_url: Backend base URL; defaults to ``settings.api_base_url``.
            settings: Optional Settings instance (defaults to get_settings()).
            transport: Optional httpx transport (e.g. ``httpx.MockTransport``).

        Raises:
            APIError: If the base URL is malformed (category "connection").
        """
        self._settings = settings if settings is not None else get_settings()
        self._base_url = (base_url or self._settings.api_base_url).rstrip("/")
        try:
            url = httpx.URL(self._base_url)
            if url.scheme not in ("http", "https") or not url.host:
                raise httpx.InvalidURL("expected an http(s)://host[:port] URL")
            self._client = httpx.Client(
                base_url=self._base_url,
                timeout=self._settings.request_timeout,
                transport=transport,
            )
        except httpx.InvalidURL as exc:
            raise APIError(
                f"Invalid backend URL '{self._base_url}': {exc}",
                category="connection",
            ) from None

    @property
    def base_url(self) -> str:
        return self._base_url

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Execute an HTTP request with user-friendly error handling.

        Args:
            method: HTTP method name ("get", "post").
            path: API endpoint path (e.g. "/api/send-message").
            **kwargs: Passed through to httpx (json, files, timeout, etc.).

        Returns:
            The httpx Response object with a successful status code.

        Raises:
            APIError: On connection, timeout, HTTP status, or network errors.
        """
        try:
            resp = getattr(self._client, method)(path, **kwargs)
            resp.raise_for_status()
            return resp
        except httpx.ConnectError:
            raise APIError(
                f"Backend server is not reachable at {self._base_url}",
                category="connection",
            ) from None
        except httpx.TimeoutException:
            raise APIError(
                "Request timed out. The server may be overloaded.",
                category="timeout",
            ) from None
        except httpx.HTTPStatusError as exc:
            try:
                detail = exc.response.json().get("detail", exc.response.text)
            except Exception:
                detail = exc.response.text or str(exc)
            raise APIError(str(detail), category="http") from None
        except httpx.HTTPError as exc:
            raise APIError(f"Network error: {exc}", category="network") from None

    def _json(self, resp: httpx.Response):
        try:
            return resp.json()
        except ValueError:
            raise APIError(
                f"Backend returned invalid JSON from {resp.request.url.path}",
                category="decode",
            ) from None

    # -- messages --

    def send_message(self, content: str) -> dict:
        """POST a text message; the response body is returned as-is."""
        body = SendMessageRequest(message=content).model_dump(mode="json")
        resp = self._request("post", self._settings.send_message_path, json=body)
        return self._json(resp)

    # -- transcription --

    def transcribe_audio(self, blob: AudioBlob, filename: str = "recording.webm") -> dict:
        """Upload ``blob`` as multipart field ``file`` for speech-to-text.

        Returns:
            The decoded JSON body; ``transcription`` may be missing.
        """
        resp = self._request(
            "post",
            self._settings.transcribe_path,
            files={"file": (filename, blob.data, blob.mime_type)},
            timeout=self._settings.transcribe_timeout,
        )
        return self._json(resp)
