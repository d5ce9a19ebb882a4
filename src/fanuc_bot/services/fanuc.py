"""HTTP client for the remote Fanuc machine-control service."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

import httpx

from fanuc_bot.config import FanucApiConfig
from fanuc_bot.core.errors import CollaboratorUnavailable, NotFoundError
from fanuc_bot.log import get_logger
from fanuc_bot.services.base import Service

logger = get_logger(__name__)

STATUS_CONNECTED = "connected"
MODE_POLLING = "polling"


@dataclass(frozen=True, slots=True)
class ConnectionRequest:
    endpoint: str
    timeout: int
    model: str
    series: str


@dataclass(frozen=True, slots=True)
class MachineInfo:
    id: str
    endpoint: str = ""
    model: str = ""
    series: str = ""
    timeout: int = 0
    status: str = ""
    mode: str = ""
    interval: int = 0

    @property
    def connected(self) -> bool:
        return self.status == STATUS_CONNECTED

    @property
    def polling(self) -> bool:
        return self.mode == MODE_POLLING

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> MachineInfo:
        return cls(
            id=str(data.get("id", "")),
            endpoint=str(data.get("endpoint", "")),
            model=str(data.get("model", "")),
            series=str(data.get("series", "")),
            timeout=int(data.get("timeout") or 0),
            status=str(data.get("status", "")),
            mode=str(data.get("mode", "")),
            interval=int(data.get("interval") or 0),
        )


def normalize_base_url(host: str) -> str:
    """Accept ``host:port`` as well as a full URL."""
    host = host.strip().rstrip("/")
    if "://" not in host:
        host = f"http://{host}"
    return host


class FanucApiClient(Service):
    """Thin async wrapper around the service's REST API.

    Every call takes the base URL and API key of the saved service, so one
    client instance serves all users and services.
    """

    def __init__(self, config: FanucApiConfig, transport: httpx.AsyncBaseTransport | None = None):
        self._config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def service_name(self) -> str:
        return "fanuc_api"

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._config.timeout, transport=self._transport)
        logger.info("fanuc_api_client_started", timeout=self._config.timeout)

    async def stop(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("fanuc_api_client_stopped")

    async def health_check(self) -> bool:
        return self._client is not None and not self._client.is_closed

    # -- connections --

    async def list_machines(self, base_url: str, api_key: str) -> list[MachineInfo]:
        data = await self._request("GET", base_url, api_key, "/connection", operation="list_machines")
        return _machines(data, "list_machines")

    async def get_machine(self, base_url: str, api_key: str, machine_id: str) -> MachineInfo:
        data = await self._request(
            "GET", base_url, api_key, f"/connection/{machine_id}",
            operation="get_machine", entity=("machine", machine_id),
        )
        return _machine(data or {"id": machine_id}, "get_machine")

    async def create_machine(
        self, base_url: str, api_key: str, request: ConnectionRequest
    ) -> MachineInfo:
        data = await self._request(
            "POST", base_url, api_key, "/connection", json=asdict(request), operation="create_machine"
        )
        return _machine(data or {}, "create_machine")

    async def delete_machine(self, base_url: str, api_key: str, machine_id: str) -> None:
        await self._request(
            "DELETE", base_url, api_key, f"/connection/{machine_id}",
            operation="delete_machine", entity=("machine", machine_id),
        )

    # -- polling --

    async def start_polling(
        self, base_url: str, api_key: str, machine_id: str, interval_ms: int
    ) -> None:
        await self._request(
            "POST", base_url, api_key, "/polling/start",
            json={"id": machine_id, "interval": interval_ms},
            operation="start_polling", entity=("machine", machine_id),
        )

    async def stop_polling(self, base_url: str, api_key: str, machine_id: str) -> None:
        await self._request(
            "POST", base_url, api_key, "/polling/stop",
            json={"id": machine_id},
            operation="stop_polling", entity=("machine", machine_id),
        )

    # -- programs --

    async def get_program_text(self, base_url: str, api_key: str, machine_id: str) -> str:
        data = await self._request(
            "GET", base_url, api_key, f"/program/{machine_id}",
            operation="get_program", entity=("machine", machine_id),
        )
        if isinstance(data, dict):
            return str(data.get("program", ""))
        return str(data or "")

    async def _request(
        self,
        method: str,
        base_url: str,
        api_key: str,
        path: str,
        *,
        operation: str,
        entity: tuple[str, str] | None = None,
        json: Any = None,
    ) -> Any:
        """Perform a call and return the unwrapped payload (``data`` envelope or raw body)."""
        if self._client is None:
            await self.start()
        url = f"{normalize_base_url(base_url)}{self._config.api_prefix}{path}"
        headers = {self._config.api_key_header: api_key}

        try:
            response = await self._client.request(method, url, headers=headers, json=json)  # type: ignore[union-attr]
        except httpx.HTTPError as e:
            logger.warning("fanuc_api_transport_error", operation=operation, url=url, error=str(e))
            raise CollaboratorUnavailable(operation, str(e) or type(e).__name__, url=url) from e

        if response.status_code == 404 and entity is not None:
            raise NotFoundError(entity[0], entity[1], _error_detail(response))
        if response.is_error:
            detail = _error_detail(response)
            logger.warning(
                "fanuc_api_error", operation=operation, status=response.status_code, detail=detail
            )
            raise CollaboratorUnavailable(operation, f"HTTP {response.status_code}: {detail}")

        try:
            return _payload(response)
        except ValueError as e:
            logger.warning("fanuc_api_bad_body", operation=operation, url=url, error=str(e))
            raise CollaboratorUnavailable(operation, f"invalid JSON body: {e}") from e


def _payload(response: httpx.Response) -> Any:
    if not response.content:
        return None
    content_type = response.headers.get("content-type", "")
    if "json" not in content_type:
        return response.text
    body = response.json()
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def _machine(data: Any, operation: str) -> MachineInfo:
    """Shape one connection object; anything but a JSON object is a broken reply."""
    if not isinstance(data, dict):
        raise CollaboratorUnavailable(operation, f"unexpected response body: {str(data)[:200]!r}")
    try:
        return MachineInfo.from_api(data)
    except (TypeError, ValueError) as e:
        raise CollaboratorUnavailable(operation, f"malformed connection: {e}") from e


def _machines(data: Any, operation: str) -> list[MachineInfo]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise CollaboratorUnavailable(operation, f"unexpected response body: {str(data)[:200]!r}")
    return [_machine(item, operation) for item in data]


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        for field in ("error", "message", "detail"):
            if body.get(field):
                return str(body[field])
    return str(body)[:200]
