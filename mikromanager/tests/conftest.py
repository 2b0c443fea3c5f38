import os
import itertools
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

# FORCE environment variables before any other imports that might read settings
os.environ["BACKUP_SETTLE_SECONDS"] = "0"
os.environ["LOG_LEVEL"] = "DEBUG"

import sys
from pathlib import Path

# Add project root to sys.path so we can import 'mikromanager'
# This assumes conftest.py is in mikromanager/tests/
sys.path.append(str(Path(__file__).parent.parent.parent))

from mikromanager.errors import ConnectError, OperationError
from mikromanager.main import create_app
from mikromanager.models import (
    AddressListEntry,
    BackupResult,
    CommandResult,
    NativeId,
    RouterIdentity,
    TransportKind,
    group_entries,
)
from mikromanager.registry import SessionRegistry
from mikromanager.routeros.client_base import TransportAdapter
from mikromanager.settings import AppSettings


class FakeRouter:
    """Address-list state of one simulated RouterOS device."""

    def __init__(self, identity: str = "RB-Test", version: str = "7.12"):
        self.identity = identity
        self.version = version
        self.rows: List[dict] = []
        self._ids = itertools.count(1)

    def add(self, list_name: str, address: str, comment: str = "") -> str:
        row_id = f"*{next(self._ids):X}"
        self.rows.append({".id": row_id, "list": list_name, "address": address, "comment": comment})
        return row_id


class FakeHandle:
    _seq = itertools.count(1)

    def __init__(self, host: str):
        self.host = host
        self.n = next(self._seq)
        self.closed = False


class FakeAdapter(TransportAdapter):
    """In-memory transport; records every connect and disconnect."""

    def __init__(
        self,
        kind: TransportKind,
        router: Optional[FakeRouter] = None,
        fail: Optional[str] = None,
        available: bool = True,
        fail_operations: bool = False,
    ):
        self.kind = kind
        self.library = f"fake-{kind.value}"
        self.available = available
        self.router = router or FakeRouter()
        self.fail = fail
        self.fail_operations = fail_operations
        self.connect_calls: List[str] = []
        self.disconnected: List[FakeHandle] = []

    async def connect(self, host, username, password):
        self.connect_calls.append(host)
        if self.fail:
            raise ConnectError(self.fail, self.kind.value)
        return FakeHandle(host)

    async def fetch_identity(self, handle):
        return RouterIdentity(version=self.router.version, identity=self.router.identity, uptime="1d2h")

    def _check(self, handle):
        if handle.closed:
            raise OperationError("handle closed")
        if self.fail_operations:
            raise OperationError(f"{self.kind.value} operation failed")

    async def list_address_entries(self, handle):
        self._check(handle)
        return group_entries(
            [
                AddressListEntry(r["list"], r["address"], r["comment"], NativeId(self.kind, r[".id"]))
                for r in self.router.rows
            ]
        )

    async def add_address_entry(self, handle, list_name, address, comment=""):
        self._check(handle)
        self.router.add(list_name, address, comment)

    async def remove_address_entry(self, handle, list_name, address):
        self._check(handle)
        for row in self.router.rows:
            if row["list"] == list_name and row["address"] == address:
                self._check_native_id(NativeId(self.kind, row[".id"]))
                self.router.rows.remove(row)
                return

    async def create_backup(self, handle, name):
        self._check(handle)
        return BackupResult(success=True, filename=f"{name}.backup", size="1024")

    async def run_command(self, handle, command):
        self._check(handle)
        if self.kind == TransportKind.REST:
            return CommandResult(success=False, output="not supported over REST")
        return CommandResult(success=True, output=f"ran {command}")

    async def disconnect(self, handle):
        handle.closed = True
        self.disconnected.append(handle)


@pytest.fixture
def router():
    return FakeRouter(identity="RB-Main", version="7.12")


@pytest.fixture
def adapters(router):
    return [
        FakeAdapter(TransportKind.REST, router, fail="authentication rejected (HTTP 401)"),
        FakeAdapter(TransportKind.API, router),
        FakeAdapter(TransportKind.SSH, router),
    ]


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def app(adapters):
    return create_app(settings=AppSettings(backup_settle_seconds=0), adapters=adapters)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def fake_adapter():
    """Factory for FakeAdapter, for tests that build their own transport matrix."""
    return FakeAdapter
