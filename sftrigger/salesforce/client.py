"""Async Salesforce REST client with SOQL pagination."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from sftrigger.core.config import settings
from sftrigger.core.errors import SalesforceApiError
from sftrigger.core.logging import get_logger
from .credentials import AccessToken, CredentialResolver

log = get_logger("salesforce.client")


class SalesforceClient:
    """Thin wrapper over the REST API used by triggers and option loaders."""

    def __init__(
        self,
        credentials: CredentialResolver,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credentials = credentials
        self.api_version = api_version or settings.SALESFORCE_API_VERSION
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def api_base(self) -> str:
        return f"/services/data/v{self.api_version}"

    def _url(self, path: str) -> str:
        # nextRecordsUrl values already carry the full /services/data prefix
        if path.startswith("/services/"):
            return path
        return f"{self.api_base}/{path.lstrip('/')}"

    def _client(self, token: AccessToken) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=token.instance_url,
            headers={"Authorization": token.authorization, "Accept": "application/json"},
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = self._url(path)
        try:
            resp = await client.request(method, url, params=params, json=json)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise self._api_error(exc.response) from exc
        except httpx.HTTPError as exc:
            raise SalesforceApiError(f"{method} {url} failed: {exc!r}") from exc

        if resp.status_code == 204 or not resp.content:
            return {}
        return resp.json()

    @staticmethod
    def _api_error(resp: httpx.Response) -> SalesforceApiError:
        message = resp.reason_phrase or "Request failed"
        error_code = None
        try:
            body = resp.json()
        except ValueError:
            body = None
        # Salesforce reports errors as a list of {message, errorCode}
        if isinstance(body, list) and body and isinstance(body[0], dict):
            message = body[0].get("message") or message
            error_code = body[0].get("errorCode")
        elif isinstance(body, dict):
            message = body.get("message") or body.get("error_description") or message
            error_code = body.get("errorCode") or body.get("error")
        return SalesforceApiError(message, status_code=resp.status_code, error_code=error_code)

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        token = await self.credentials.resolve()
        async with self._client(token) as client:
            return await self._send(client, method, path, params=params, json=json)

    async def fetch_all(self, query: str, property_name: str = "records") -> List[Dict[str, Any]]:
        """Run a SOQL query and follow ``nextRecordsUrl`` until every page is read."""
        token = await self.credentials.resolve()
        results: List[Dict[str, Any]] = []
        pages = 0
        async with self._client(token) as client:
            data = await self._send(client, "GET", "/query", params={"q": query})
            while True:
                pages += 1
                results.extend(data.get(property_name) or [])
                next_url = data.get("nextRecordsUrl")
                if data.get("done", True) or not next_url:
                    break
                data = await self._send(client, "GET", next_url)

        log.debug(f"Query returned {len(results)} records in {pages} page(s)")
        return results

    async def list_custom_objects(self) -> List[Dict[str, str]]:
        """Custom object options (label + API name) sorted by label."""
        data = await self.request("GET", "/sobjects")
        options = [
            {"name": obj["label"], "value": obj["name"]}
            for obj in data.get("sobjects", [])
            if obj.get("custom") is True
        ]
        options.sort(key=lambda opt: opt["name"].lower())
        return options
