import asyncio
import logging
from typing import Optional, Tuple

from .client_base import TransportAdapter
from .ssh_parser import parse_address_lists, parse_ids, parse_value
from ..errors import ConnectError, OperationError, TransportUnavailable
from ..models import (
    UNKNOWN,
    AddressListCollection,
    BackupResult,
    CommandResult,
    NativeId,
    RouterIdentity,
    TransportKind,
)

try:
    import asyncssh
except ImportError:  # pragma: no cover - optional dependency
    asyncssh = None


logger = logging.getLogger(__name__)

ADDRESS_LIST = "/ip firewall address-list"

# RouterOS reports most CLI errors on stdout with exit status 0
ERROR_MARKERS = (
    "failure:",
    "syntax error",
    "bad command name",
    "expected end of command",
    "no such item",
    "input does not match any value",
    "invalid value",
)


def quote(value: str) -> str:
    """Quote a value for a RouterOS CLI line."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("$", "\\$")
    return f'"{escaped}"'


def looks_failed(output: str) -> bool:
    head = output.strip().lower()
    return any(head.startswith(marker) or f"\n{marker}" in head for marker in ERROR_MARKERS)


class RouterOSSSHAdapter(TransportAdapter):
    """RouterOS CLI over one persistent SSH connection.

    Every operation is a separate exec on the connection, bounded by the
    command timeout. Tabular output is parsed by ssh_parser.
    """

    kind = TransportKind.SSH
    library = "asyncssh"
    available = asyncssh is not None

    def __init__(
        self,
        port: int = 22,
        connect_timeout: float = 15.0,
        command_timeout: float = 20.0,
        backup_settle_seconds: float = 2.0,
    ):
        self.port = port
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self.backup_settle_seconds = backup_settle_seconds

    async def connect(self, host: str, username: str, password: str):
        if not self.available:
            raise TransportUnavailable(self.kind.value, self.library)
        try:
            return await asyncio.wait_for(
                asyncssh.connect(
                    host,
                    port=self.port,
                    username=username,
                    password=password,
                    known_hosts=None,  # routers use self-generated host keys
                    client_keys=None,
                ),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ConnectError(f"timeout after {self.connect_timeout}s", self.kind.value) from e
        except asyncssh.PermissionDenied as e:
            raise ConnectError("authentication rejected", self.kind.value) from e
        except (asyncssh.Error, OSError) as e:
            raise ConnectError(f"{type(e).__name__}: {e}", self.kind.value) from e

    async def _exec(self, conn, command: str) -> Tuple[bool, str]:
        """Run one command; return (ok, output). Raises OperationError on transport failure."""
        try:
            result = await asyncio.wait_for(conn.run(command, check=False), timeout=self.command_timeout)
        except asyncio.TimeoutError as e:
            raise OperationError(f"SSH command timeout after {self.command_timeout}s: {command}") from e
        except (asyncssh.Error, OSError) as e:
            raise OperationError(f"SSH command execution error: {type(e).__name__}: {e}") from e

        stdout = _text(result.stdout)
        stderr = _text(result.stderr)
        if stderr:
            logger.warning("SSH stderr for %r: %s", command, stderr.strip())
        ok = not result.exit_status and not looks_failed(stdout)
        output = stdout if ok or not stderr else f"{stdout}{stderr}"
        return ok, output

    async def _run(self, conn, command: str) -> str:
        ok, output = await self._exec(conn, command)
        if not ok:
            raise OperationError(f"SSH command failed: {command}: {output.strip()}")
        return output

    async def fetch_identity(self, conn) -> RouterIdentity:
        resource = await self._run(conn, "/system resource print")
        identity = await self._run(conn, "/system identity print")
        uptime = parse_value(resource, "uptime")
        return RouterIdentity(
            version=parse_value(resource, "version"),
            identity=parse_value(identity, "name"),
            uptime=None if uptime == UNKNOWN else uptime,
        )

    async def list_address_entries(self, conn) -> AddressListCollection:
        output = await self._run(conn, f"{ADDRESS_LIST} print without-paging")
        return parse_address_lists(output)

    async def add_address_entry(self, conn, list_name: str, address: str, comment: str = "") -> None:
        command = f"{ADDRESS_LIST} add list={quote(list_name)} address={quote(address)}"
        if comment:
            command += f" comment={quote(comment)}"
        await self._run(conn, command)

    async def find_address_entry(self, conn, list_name: str, address: str) -> Optional[NativeId]:
        output = await self._run(
            conn, f":put [{ADDRESS_LIST} find where list={quote(list_name)} address={quote(address)}]"
        )
        ids = parse_ids(output)
        return NativeId(self.kind, ids[0]) if ids else None

    async def remove_address_entry(self, conn, list_name: str, address: str) -> None:
        native_id = await self.find_address_entry(conn, list_name, address)
        if native_id is None:
            logger.info("SSH remove: %s not in %s, nothing to do", address, list_name)
            return
        await self._run(conn, f"{ADDRESS_LIST} remove {self._check_native_id(native_id)}")

    async def create_backup(self, conn, name: str) -> BackupResult:
        filename = f"{name}.backup"
        await self._run(conn, f"/system backup save name={quote(name)}")
        await asyncio.sleep(self.backup_settle_seconds)
        size = UNKNOWN
        try:
            output = (await self._run(conn, f":put [/file get [find name={quote(filename)}] size]")).strip()
            if output.isdigit():
                size = output
        except OperationError as e:
            logger.warning("Could not read size of %s: %s", filename, e)
        return BackupResult(success=True, filename=filename, size=size)

    async def run_command(self, conn, command: str) -> CommandResult:
        try:
            ok, output = await self._exec(conn, command)
        except OperationError as e:
            return CommandResult(success=False, output=str(e))
        return CommandResult(success=ok, output=output)

    async def disconnect(self, conn) -> None:
        try:
            conn.close()
            await conn.wait_closed()
        except Exception as e:
            logger.warning("SSH disconnect failed: %s", e)


def _text(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
