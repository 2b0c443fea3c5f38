from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from .routeros.client_base import TransportAdapter


UNKNOWN = "Unknown"


class TransportKind(str, Enum):
    REST = "rest"
    API = "api"
    SSH = "ssh"


@dataclass(frozen=True)
class NativeId:
    """Router-side row identifier, tagged with the transport that produced it."""

    kind: TransportKind
    value: str

    def __str__(self) -> str:
        return self.value


@dataclass
class RouterCredential:
    id: int
    host: str
    username: str
    password: str


@dataclass
class RouterIdentity:
    version: str
    identity: str
    uptime: Optional[str] = None


@dataclass
class AddressListEntry:
    list_name: str
    address: str
    comment: str
    native_id: NativeId

    def to_dict(self) -> Dict[str, str]:
        return {"address": self.address, "comment": self.comment, "id": self.native_id.value}


# list name -> entries in the order the transport returned them
AddressListCollection = Dict[str, List[AddressListEntry]]


def group_entries(entries: List[AddressListEntry]) -> AddressListCollection:
    grouped: AddressListCollection = {}
    for entry in entries:
        grouped.setdefault(entry.list_name, []).append(entry)
    return grouped


@dataclass
class CommandResult:
    success: bool
    output: str

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "output": self.output}


@dataclass
class BackupResult:
    success: bool
    filename: str
    size: str = UNKNOWN

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "filename": self.filename, "size": self.size}


@dataclass
class Session:
    router_id: int
    kind: TransportKind
    adapter: "TransportAdapter" = field(repr=False)
    handle: Any = field(repr=False)
    host: str
    auth_token: Optional[str] = field(default=None, repr=False)
