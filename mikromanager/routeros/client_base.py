from typing import Any

from ..errors import OperationError
from ..models import (
    AddressListCollection,
    BackupResult,
    CommandResult,
    NativeId,
    RouterIdentity,
    TransportKind,
)


class TransportAdapter:
    """One way of reaching a router administratively.

    Adapters are stateless strategies: everything that belongs to a single
    router lives in the handle returned by connect().
    """

    kind: TransportKind
    # Name of the client library this transport depends on
    library: str = ""
    available: bool = True

    async def connect(self, host: str, username: str, password: str) -> Any:
        """Open a session and return its handle; raise ConnectError on failure."""
        raise NotImplementedError

    async def fetch_identity(self, handle: Any) -> RouterIdentity:
        raise NotImplementedError

    async def list_address_entries(self, handle: Any) -> AddressListCollection:
        raise NotImplementedError

    async def add_address_entry(self, handle: Any, list_name: str, address: str, comment: str = "") -> None:
        raise NotImplementedError

    async def remove_address_entry(self, handle: Any, list_name: str, address: str) -> None:
        """Delete the first entry matching list+address. A missing entry is not an error."""
        raise NotImplementedError

    async def create_backup(self, handle: Any, name: str) -> BackupResult:
        raise NotImplementedError

    async def run_command(self, handle: Any, command: str) -> CommandResult:
        raise NotImplementedError

    async def disconnect(self, handle: Any) -> None:
        """Close the handle. Must never raise."""
        raise NotImplementedError

    def auth_token(self, handle: Any):
        """Pre-encoded auth material kept on the session, if the transport has any."""
        return None

    def _check_native_id(self, native_id: NativeId) -> str:
        if native_id.kind != self.kind:
            raise OperationError(
                f"{native_id.kind.value} identifier {native_id.value!r} passed to {self.kind.value} transport"
            )
        return native_id.value
