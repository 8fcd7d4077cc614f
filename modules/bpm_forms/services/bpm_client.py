"""
BPM HTTP Clients.

Low-level clients for the external BPM engine and the BPM middleware.

Design Principles:
    Both clients require httpx.AsyncClient via EXPLICIT dependency injection.
    The HTTP client lifecycle is owned by the application lifespan.

    Usage in FastAPI routes:
        @router.get("/forms/{form_id}")
        async def get_form(client: BpmClientDep):
            return await client.fetch_form_detail(form_id)
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from modules.bpm_forms.core.config import BpmSettings
from modules.bpm_forms.core.exceptions import BpmConnectionError, BpmResponseError

logger = logging.getLogger(__name__)

MIDDLEWARE_SUCCESS_CODES = ("200", "0")


class BpmClient:
    """
    BPM engine API client with header authentication (X-API-Key / X-API-Secret).

    Non-2xx responses and transport errors raise BpmConnectionError; bodies
    that are not JSON raise BpmResponseError.

    Args:
        http_client: Shared httpx.AsyncClient (required).
        settings: Module settings carrying base URL, credentials and timeout.
    """

    def __init__(self, http_client: httpx.AsyncClient, settings: BpmSettings) -> None:
        if http_client is None:
            raise ValueError("http_client is required. Use dependency injection via BpmClientDep.")

        self._client = http_client
        self._settings = settings
        self._base_url = settings.api_base_url.rstrip("/")
        self._timeout = settings.timeout_seconds

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for BPM engine requests."""
        return {
            "X-API-Key": self._settings.api_key.get_secret_value(),
            "X-API-Secret": self._settings.api_secret.get_secret_value(),
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _url(self, endpoint: str) -> str:
        return f"{self._base_url}/{endpoint.lstrip('/')}"

    def is_configured(self) -> bool:
        """Check if the engine base URL is set."""
        return bool(self._base_url)

    @staticmethod
    def _decode(response: httpx.Response, endpoint: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise BpmResponseError(f"BPM response for {endpoint} is not JSON: {e}") from e

    async def get_json(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET an engine endpoint and decode the JSON body.

        Args:
            endpoint: Path relative to the engine base URL.
            params: Optional query parameters.

        Raises:
            BpmConnectionError: Transport error or non-2xx status.
            BpmResponseError: Body is not JSON.
        """
        if not self.is_configured():
            raise BpmConnectionError("BPM engine base URL is not configured")

        try:
            response = await self._client.get(
                self._url(endpoint),
                params=params,
                headers=self._get_headers(),
                timeout=self._timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"BPM GET {endpoint} failed: {e.response.status_code} - {e.response.text}")
            raise BpmConnectionError(
                f"GET {endpoint} failed with status {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"BPM GET {endpoint} failed: {e}")
            raise BpmConnectionError(f"GET {endpoint} failed: {e}") from e

        return self._decode(response, endpoint)

    async def post_json(self, endpoint: str, payload: Dict[str, Any]) -> Any:
        """
        POST a JSON payload to an engine endpoint and decode the JSON body.

        Raises:
            BpmConnectionError: Transport error or non-2xx status.
            BpmResponseError: Body is not JSON.
        """
        if not self.is_configured():
            raise BpmConnectionError("BPM engine base URL is not configured")

        try:
            response = await self._client.post(
                self._url(endpoint),
                json=payload,
                headers=self._get_headers(),
                timeout=self._timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"BPM POST {endpoint} failed: {e.response.status_code} - {e.response.text}")
            raise BpmConnectionError(
                f"POST {endpoint} failed with status {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"BPM POST {endpoint} failed: {e}")
            raise BpmConnectionError(f"POST {endpoint} failed: {e}") from e

        return self._decode(response, endpoint)

    # =========================================================================
    # Engine Endpoints
    # =========================================================================

    async def fetch_form_detail(self, form_id: str) -> Any:
        """Direct form lookup: ``GET bpm/forms/{formId}``."""
        return await self.get_json(f"bpm/forms/{form_id}")

    async def search_process_instances(self, form_id: str, process_code: str) -> Any:
        """Process-instance search by serial number and process code."""
        return await self.get_json(
            "bpm/process-instances",
            params={"processSerialNo": form_id, "processCode": process_code},
        )

    async def abort_process(self, form_id: str, user_id: str, comment: str) -> bool:
        """
        Abort a running process instance.

        Returns:
            True when the engine reports success, either as
            ``results[0].success`` or a top-level ``status`` of ``SUCCESS``.

        Raises:
            BpmError: Transport, status or body errors.
        """
        payload = {
            "items": [
                {
                    "processInstanceSerialNo": form_id,
                    "userId": user_id,
                    "abortComment": comment,
                    "environment": self._settings.environment,
                }
            ]
        }
        body = await self.post_json("bpm/batch/abort-processes", payload)
        return is_abort_success(body)


def is_abort_success(body: Any) -> bool:
    """Interpret an abort-processes response body."""
    if not isinstance(body, dict):
        return False

    results = body.get("results")
    if isinstance(results, list) and results:
        first = results[0]
        if isinstance(first, dict) and "success" in first:
            return first.get("success") is True

    status = body.get("status")
    return isinstance(status, str) and status.upper() == "SUCCESS"


class BpmMiddlewareClient:
    """
    Client for the BPM middleware's process detail endpoint.

    Every failure is absorbed: callers fall back to the basic record they
    already have.
    """

    def __init__(self, http_client: httpx.AsyncClient, settings: BpmSettings) -> None:
        if http_client is None:
            raise ValueError("http_client is required. Use dependency injection.")

        self._client = http_client
        self._base_url = settings.middleware_base_url.rstrip("/")
        self._timeout = settings.timeout_seconds

    def is_configured(self) -> bool:
        return bool(self._base_url)

    async def fetch_process(self, process_serial_no: str) -> Optional[Dict[str, Any]]:
        """
        Fetch richer process detail for one serial number.

        Response body: ``{"code": "200", "message": ..., "data": {...}}``.

        Returns:
            The ``data`` object, or None on any failure.
        """
        if not self.is_configured():
            logger.debug("BPM middleware not configured; skipping detail lookup")
            return None

        url = f"{self._base_url}/api/bpm/process/{quote(process_serial_no, safe='')}"
        try:
            response = await self._client.get(url, timeout=self._timeout)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(
                f"BPM middleware lookup failed for {process_serial_no}: {e.response.status_code}"
            )
            return None
        except httpx.HTTPError as e:
            logger.warning(f"BPM middleware unreachable for {process_serial_no}: {e}")
            return None
        except ValueError as e:
            logger.warning(f"BPM middleware returned non-JSON for {process_serial_no}: {e}")
            return None

        if not isinstance(body, dict):
            logger.warning(f"BPM middleware returned unexpected body for {process_serial_no}")
            return None

        code = str(body.get("code", ""))
        if code not in MIDDLEWARE_SUCCESS_CODES:
            logger.warning(
                f"BPM middleware non-success for {process_serial_no}: {code} {body.get('message')}"
            )
            return None

        data = body.get("data")
        return data if isinstance(data, dict) else None
