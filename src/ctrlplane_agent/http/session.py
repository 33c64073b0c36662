"""JSON HTTP session with timeouts that reports failures as results."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from ctrlplane_agent import __version__
from ctrlplane_agent.config import HttpSettings

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = f"ctrlplane-agent/{__version__}"
_BODY_PREVIEW_CHARS = 500


@dataclass(slots=True)
class HttpResult:
    """Outcome of one HTTP exchange."""

    method: str
    url: str
    status_code: int
    payload: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    is_success: bool = False
    error: str | None = None


class JsonSession:
    """httpx client wrapper bound to one base URL.

    Transport errors, timeouts and non-2xx responses are logged and returned as
    unsuccessful ``HttpResult`` values instead of being raised.
    """

    def __init__(
        self,
        base_url: str,
        *,
        settings: HttpSettings | None = None,
        headers: Mapping[str, str] | None = None,
        auth: httpx.Auth | tuple[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        settings = settings or HttpSettings()
        self.base_url = base_url.rstrip("/")
        base_headers = {
            "User-Agent": DEFAULT_USER_AGENT,
            "Accept": "application/json",
        }
        if headers:
            base_headers.update(headers)
        self._client = httpx.Client(
            timeout=httpx.Timeout(
                settings.request_timeout_seconds,
                connect=settings.connect_timeout_seconds,
            ),
            headers=base_headers,
            auth=auth,
            transport=transport or httpx.HTTPTransport(retries=settings.max_retries),
        )

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: Mapping[str, str] | None = None,
        data: Mapping[str, str] | None = None,
    ) -> HttpResult:
        """Send one request and parse a JSON body when present."""

        url = self.url_for(path)
        try:
            response = self._client.request(
                method,
                url,
                json=json_body,
                params=params,
                data=data,
            )
        except httpx.TimeoutException:
            logger.warning("Timeout during %s %s", method, url)
            return HttpResult(method=method, url=url, status_code=0, error="timeout")
        except httpx.HTTPError as exc:
            logger.warning("HTTP error during %s %s: %s", method, url, exc)
            return HttpResult(method=method, url=url, status_code=0, error=str(exc))

        if not response.is_success:
            body = response.text[:_BODY_PREVIEW_CHARS]
            log = logger.info if response.status_code == httpx.codes.NOT_FOUND else logger.error
            log("HTTP %s from %s %s: %s", response.status_code, method, url, body or "<empty>")
            return HttpResult(
                method=method,
                url=url,
                status_code=response.status_code,
                headers=response.headers,
                error=f"HTTP {response.status_code}",
            )

        payload: Any = None
        if response.content and response.status_code != httpx.codes.NO_CONTENT:
            try:
                payload = response.json()
            except (json.JSONDecodeError, UnicodeDecodeError):
                content_type = response.headers.get("content-type", "")
                if "json" in content_type:
                    logger.error("Unparsable JSON body from %s %s", method, url)
                    return HttpResult(
                        method=method,
                        url=url,
                        status_code=response.status_code,
                        headers=response.headers,
                        error="invalid JSON response",
                    )
        return HttpResult(
            method=method,
            url=url,
            status_code=response.status_code,
            payload=payload,
            headers=response.headers,
            is_success=True,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> JsonSession:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
