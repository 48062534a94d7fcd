import logging
from typing import Any

import httpx

from .models import ChainEndpoint, ExplorerData

logger = logging.getLogger(__name__)


class ExplorerApiError(Exception):
    """Raised when the explorer API answers with a non-2xx status."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class ExplorerApiClient:
    """Drives a running explorer API over HTTP.

    Used by the poller in remote mode: the first request for a chain asks for
    ``initialLoad=true``, later ones pass the ``lastFetchedBlock`` cursor.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        """Initialize the API client.

        Args:
            base_url: Explorer API base URL (without the /api path)
            timeout: Request timeout in seconds
            transport: Optional transport override (used by tests)
        """
        self.base_url: str = base_url.rstrip('/')
        self.timeout: float = timeout
        self._transport = transport

    @staticmethod
    def build_params(initial_load: bool, last_fetched_block: int | None) -> dict[str, str]:
        """Query parameters of one explorer request."""
        if initial_load:
            return {"initialLoad": "true"}
        if last_fetched_block is not None:
            return {"lastFetchedBlock": str(last_fetched_block)}
        return {}

    async def fetch_chain(
        self,
        endpoint: ChainEndpoint,
        initial_load: bool,
        last_fetched_block: int | None
    ) -> ExplorerData:
        """Fetch explorer data of a chain from the API.

        Raises:
            ExplorerApiError: On a non-2xx response
            httpx.HTTPError: On transport failures
        """
        url = f"{self.base_url}/api/explorer/{endpoint.chain_id}"
        params = self.build_params(initial_load, last_fetched_block)

        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            response: httpx.Response = await client.get(url, params=params)

        if not response.is_success:
            message = f"Failed to fetch data for {endpoint.chain_name}: {response.status_code}"
            try:
                body: Any = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and body.get("error"):
                message = f"{message} ({body['error']})"
            raise ExplorerApiError(message, response.status_code)

        return ExplorerData.from_dict(response.json())
