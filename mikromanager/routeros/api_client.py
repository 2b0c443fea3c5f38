import asyncio
import json
import logging
import shlex
from typing import Dict, List, Optional, Tuple

from .client_base import TransportAdapter
from ..errors import ConnectError, OperationError, TransportUnavailable
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

try:
    from librouteros import connect
    from librouteros.exceptions import LibRouterosError
except ImportError:  # pragma: no cover - optional dependency
    connect = None
    LibRouterosError = None


logger = logging.getLogger(__name__)

ADDRESS_LIST = ("ip", "firewall", "address-list")


def parse_command(command: str) -> Tuple[str, Dict[str, str], List[str]]:
    """Split a raw command into an API path, its parameters and query words.

    Accepts both "/ip/address/print" and CLI spacing ("/ip address print"),
    followed by key=value words ("=key=value" is accepted too). Query words
    ("?list=x", "?#|") are kept verbatim and sent as API queries.
    """
    words = shlex.split(command)
    path_parts: List[str] = []
    params: Dict[str, str] = {}
    queries: List[str] = []
    for word in words:
        if word.startswith("?"):
            queries.append(word)
        elif queries and "=" in word.lstrip("="):
            raise ValueError(f"parameter after query words: {word!r}")
        elif "=" in word.lstrip("="):
            key, _, value = word.lstrip("=").partition("=")
            params[key] = value
        elif params or queries:
            raise ValueError(f"unexpected word after parameters: {word!r}")
        else:
            path_parts.append(word.strip("/"))
    if not path_parts:
        raise ValueError("empty command")
    return "/" + "/".join(p for p in path_parts if p), params, queries


class RouterOSApiAdapter(TransportAdapter):
    """Binary RouterOS API (port 8728) through librouteros.

    The handle is one persistent authenticated librouteros connection. The
    library is blocking, so every call runs in a worker thread.
    """

    kind = TransportKind.API
    library = "librouteros"
    available = connect is not None

    def __init__(self, port: int = 8728, timeout: float = 10.0, backup_settle_seconds: float = 2.0):
        self.port = port
        self.timeout = timeout
        self.backup_settle_seconds = backup_settle_seconds

    async def _call(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except (LibRouterosError, OSError) as e:
            raise OperationError(f"{type(e).__name__}: {e}") from e

    async def connect(self, host: str, username: str, password: str):
        if not self.available:
            raise TransportUnavailable(self.kind.value, self.library)
        try:
            return await asyncio.to_thread(
                connect,
                host=host,
                username=username,
                password=password,
                port=self.port,
                timeout=self.timeout,
            )
        except (LibRouterosError, OSError) as e:
            raise ConnectError(f"{type(e).__name__}: {e}", self.kind.value) from e

    async def fetch_identity(self, api) -> RouterIdentity:
        def _read():
            resource = tuple(api.path("system", "resource"))
            identity = tuple(api.path("system", "identity"))
            return (resource[0] if resource else {}), (identity[0] if identity else {})

        resource, identity = await self._call(_read)
        return RouterIdentity(
            version=resource.get("version", UNKNOWN),
            identity=identity.get("name", UNKNOWN),
            uptime=str(resource["uptime"]) if resource.get("uptime") is not None else None,
        )

    def _entries(self, rows) -> List[AddressListEntry]:
        return [
            AddressListEntry(
                list_name=row.get("list", ""),
                address=row.get("address", ""),
                comment=row.get("comment", "") or "",
                native_id=NativeId(self.kind, row.get(".id", "")),
            )
            for row in rows
        ]

    async def list_address_entries(self, api) -> AddressListCollection:
        rows = await self._call(lambda: tuple(api.path(*ADDRESS_LIST)))
        return group_entries(self._entries(rows))

    async def add_address_entry(self, api, list_name: str, address: str, comment: str = "") -> None:
        params = {"list": list_name, "address": address}
        if comment:
            params["comment"] = comment
        await self._call(lambda: api.path(*ADDRESS_LIST).add(**params))

    async def find_address_entry(self, api, list_name: str, address: str) -> Optional[NativeId]:
        rows = await self._call(lambda: tuple(api.path(*ADDRESS_LIST)))
        for entry in self._entries(rows):
            if entry.list_name == list_name and entry.address == address:
                return entry.native_id
        return None

    async def remove_address_entry(self, api, list_name: str, address: str) -> None:
        native_id = await self.find_address_entry(api, list_name, address)
        if native_id is None:
            logger.info("API remove: %s not in %s, nothing to do", address, list_name)
            return
        row_id = self._check_native_id(native_id)
        await self._call(lambda: api.path(*ADDRESS_LIST).remove(row_id))

    async def create_backup(self, api, name: str) -> BackupResult:
        filename = f"{name}.backup"
        await self._call(lambda: tuple(api("/system/backup/save", name=name)))
        await asyncio.sleep(self.backup_settle_seconds)
        size = UNKNOWN
        try:
            files = await self._call(lambda: [f for f in api.path("file") if f.get("name") == filename])
            if files and files[0].get("size") is not None:
                size = str(files[0]["size"])
        except OperationError as e:
            logger.warning("Could not read size of %s: %s", filename, e)
        return BackupResult(success=True, filename=filename, size=size)

    async def run_command(self, api, command: str) -> CommandResult:
        try:
            path, params, queries = parse_command(command)
        except ValueError as e:
            return CommandResult(success=False, output=str(e))
        try:
            if queries:
                words = [f"={key}={value}" for key, value in params.items()] + queries
                rows = await self._call(lambda: tuple(api.rawCmd(path, *words)))
            else:
                rows = await self._call(lambda: tuple(api(path, **params)))
        except OperationError as e:
            return CommandResult(success=False, output=str(e))
        return CommandResult(success=True, output=json.dumps(list(rows), indent=2, default=str))

    async def disconnect(self, api) -> None:
        try:
            await asyncio.to_thread(api.close)
        except Exception as e:
            logger.warning("API disconnect failed: %s", e)
