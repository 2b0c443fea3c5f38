import asyncio
import base64
import ipaddress
import logging
from dataclasses import dataclass
from typing import Any, List, Optional

import httpx

from .client_base import TransportAdapter
from ..errors import ConnectError, OperationError
from ..models import (
    UNKNOWN,
    AddressListCollection,
    AddressListEntry,
    BackupResult,
    CommandResult,
    NativeId,
    RouterIdentity,
    TransportKind,
    group_entries,
)


logger = logging.getLogger(__name__)

ADDRESS_LIST = "/ip/firewall/address-list"


@dataclass
class RestHandle:
    host: str
    base_url: str
    auth_token: str


def basic_auth_token(username: str, password: str) -> str:
    return base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")


def url_host(host: str) -> str:
    """Bracket IPv6 literals for use in a URL authority."""
    try:
        if ipaddress.ip_address(host.strip("[]")).version == 6:
            return f"[{host.strip('[]')}]"
    except ValueError:
        pass
    return host


class RouterOSRestAdapter(TransportAdapter):
    """REST API over HTTP(S) with Basic auth (RouterOS 7.1+).

    Stateless: the handle is only the base URL and the encoded credentials,
    every request re-sends the Authorization header.
    """

    kind = TransportKind.REST
    library = "httpx"

    def __init__(
        self,
        https: bool = True,
        tls_verify: bool = False,
        timeout: float = 10.0,
        backup_settle_seconds: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.https = https
        self.verify = tls_verify
        self.timeout = timeout
        self.backup_settle_seconds = backup_settle_seconds
        # Injected in tests (httpx.MockTransport)
        self._transport = transport

    def _base(self, host: str, https: bool) -> str:
        return f"{'https' if https else 'http'}://{url_host(host)}/rest"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            verify=self.verify,
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
        )

    async def _send(self, base_url: str, token: str, method: str, path: str, json=None, params=None):
        async with self._client() as c:
            r = await c.request(
                method,
                f"{base_url}{path}",
                json=json,
                params=params,
                headers={"Authorization": f"Basic {token}"},
            )
            r.raise_for_status()
            if r.headers.get("content-type", "").startswith("application/json"):
                return r.json()
            return r.text

    async def _request(self, handle: RestHandle, method: str, path: str, json=None, params=None):
        try:
            return await self._send(handle.base_url, handle.auth_token, method, path, json=json, params=params)
        except httpx.HTTPStatusError as e:
            raise OperationError(f"{method} {path} failed: {_error_detail(e.response)}") from e
        except httpx.TimeoutException as e:
            raise OperationError(f"{method} {path} timed out after {self.timeout}s") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise OperationError(f"{method} {path} failed: {type(e).__name__}: {e}") from e

    async def connect(self, host: str, username: str, password: str) -> RestHandle:
        token = basic_auth_token(username, password)
        last_error: Optional[ConnectError] = None
        # Try the preferred scheme first, then the opposite one
        for https in (self.https, not self.https):
            base_url = self._base(host, https)
            try:
                await self._send(base_url, token, "GET", "/system/identity")
                return RestHandle(host=host, base_url=base_url, auth_token=token)
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status in (401, 403):
                    raise ConnectError(f"authentication rejected (HTTP {status})", self.kind.value) from e
                last_error = ConnectError(f"HTTP {status} from {base_url}", self.kind.value)
            except httpx.TimeoutException:
                last_error = ConnectError(f"timeout after {self.timeout}s on {base_url}", self.kind.value)
            except httpx.HTTPError as e:
                last_error = ConnectError(f"{type(e).__name__} on {base_url}: {e}", self.kind.value)
            except Exception as e:
                # InvalidURL is not an HTTPError; the host cannot be reached over REST at all
                raise ConnectError(f"{type(e).__name__} on {base_url}: {e}", self.kind.value) from e
            logger.debug("REST probe failed for %s: %s", base_url, last_error)
        raise last_error

    async def fetch_identity(self, handle: RestHandle) -> RouterIdentity:
        resource = await self._request(handle, "GET", "/system/resource")
        identity = await self._request(handle, "GET", "/system/identity")
        resource = resource if isinstance(resource, dict) else {}
        identity = identity if isinstance(identity, dict) else {}
        return RouterIdentity(
            version=resource.get("version", UNKNOWN),
            identity=identity.get("name", UNKNOWN),
            uptime=resource.get("uptime"),
        )

    def _entries(self, rows: List[dict]) -> List[AddressListEntry]:
        return [
            AddressListEntry(
                list_name=row.get("list", ""),
                address=row.get("address", ""),
                comment=row.get("comment", "") or "",
                native_id=NativeId(self.kind, row.get(".id", "")),
            )
            for row in rows
        ]

    async def list_address_entries(self, handle: RestHandle) -> AddressListCollection:
        rows = await self._request(handle, "GET", ADDRESS_LIST)
        return group_entries(self._entries(rows or []))

    async def add_address_entry(self, handle: RestHandle, list_name: str, address: str, comment: str = "") -> None:
        body = {"list": list_name, "address": address}
        if comment:
            body["comment"] = comment
        await self._request(handle, "PUT", ADDRESS_LIST, json=body)

    async def find_address_entry(self, handle: RestHandle, list_name: str, address: str) -> Optional[NativeId]:
        rows = await self._request(handle, "GET", ADDRESS_LIST, params={"list": list_name, "address": address})
        for entry in self._entries(rows or []):
            if entry.list_name == list_name and entry.address == address:
                return entry.native_id
        return None

    async def remove_address_entry(self, handle: RestHandle, list_name: str, address: str) -> None:
        native_id = await self.find_address_entry(handle, list_name, address)
        if native_id is None:
            logger.info("REST remove: %s not in %s on %s, nothing to do", address, list_name, handle.host)
            return
        await self._request(handle, "DELETE", f"{ADDRESS_LIST}/{self._check_native_id(native_id)}")

    async def create_backup(self, handle: RestHandle, name: str) -> BackupResult:
        filename = f"{name}.backup"
        await self._request(handle, "POST", "/system/backup/save", json={"name": name})
        await asyncio.sleep(self.backup_settle_seconds)
        size = UNKNOWN
        try:
            files = await self._request(handle, "GET", "/file", params={"name": filename})
            if files:
                size = str(files[0].get("size", UNKNOWN))
        except OperationError as e:
            logger.warning("Could not read size of %s on %s: %s", filename, handle.host, e)
        return BackupResult(success=True, filename=filename, size=size)

    async def run_command(self, handle: RestHandle, command: str) -> CommandResult:
        return CommandResult(
            success=False,
            output="Custom commands are not supported over the REST connection. "
            "Reconnect the router via API or SSH to run raw commands.",
        )

    async def disconnect(self, handle: RestHandle) -> None:
        # Nothing to close: every request opens its own HTTP connection
        logger.debug("REST session for %s released", getattr(handle, "host", "?"))

    def auth_token(self, handle: RestHandle) -> str:
        return handle.auth_token


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
        if isinstance(data, dict):
            return f"HTTP {response.status_code}: {data.get('detail') or data.get('message') or data}"
    except ValueError:
        pass
    return f"HTTP {response.status_code}: {response.text}"
