import json
import socket

import pytest
from librouteros.exceptions import LibRouterosError

from mikromanager.errors import ConnectError, OperationError
from mikromanager.models import NativeId, TransportKind
from mikromanager.routeros.api_client import RouterOSApiAdapter, parse_command


class FakePath:
    def __init__(self, api, parts):
        self.api = api
        self.parts = parts

    def __iter__(self):
        return iter(list(self.api.tables.get(self.parts, [])))

    def add(self, **kwargs):
        rows = self.api.tables.setdefault(self.parts, [])
        row_id = f"*{len(rows) + 10:X}"
        rows.append({".id": row_id, **kwargs})
        return row_id

    def remove(self, *ids):
        self.api.removed.extend(ids)
        self.api.tables[self.parts] = [r for r in self.api.tables[self.parts] if r[".id"] not in ids]


class FakeApi:
    """Stands in for librouteros.api.Api."""

    def __init__(self):
        self.tables = {
            ("system", "resource"): [{"version": "6.49.10 (long-term)", "uptime": "5w2d"}],
            ("system", "identity"): [{"name": "RB-Edge"}],
            ("ip", "firewall", "address-list"): [
                {".id": "*1", "list": "Blocked_IPs", "address": "10.0.0.1", "comment": "scanner"},
                {".id": "*2", "list": "Allowed", "address": "172.16.0.1"},
            ],
            ("file",): [{".id": "*F", "name": "nightly.backup", "size": 40960}],
        }
        self.calls = []
        self.removed = []
        self.closed = False
        self.fail_calls = False

    def path(self, *parts):
        return FakePath(self, parts)

    def __call__(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs))
        if self.fail_calls:
            raise LibRouterosError("no such command prefix")
        if cmd == "/ip/address/print":
            return iter([{".id": "*1", "address": "192.168.88.1/24", "interface": "bridge", "disabled": False}])
        return iter([])

    def rawCmd(self, cmd, *words):
        self.calls.append((cmd, words))
        if self.fail_calls:
            raise LibRouterosError("no such command prefix")
        if cmd == "/ip/firewall/address-list/print":
            rows = self.tables[("ip", "firewall", "address-list")]
            wanted = [w[len("?list="):] for w in words if w.startswith("?list=")]
            return iter([r for r in rows if r["list"] in wanted])
        return iter([])

    def close(self):
        self.closed = True


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def adapter(monkeypatch, api):
    seen = {}

    def fake_connect(**kwargs):
        seen.update(kwargs)
        return api

    monkeypatch.setattr("mikromanager.routeros.api_client.connect", fake_connect)
    a = RouterOSApiAdapter(port=8728, timeout=10, backup_settle_seconds=0)
    a.seen = seen
    return a


def test_parse_command_forms():
    assert parse_command("/system/resource/print") == ("/system/resource/print", {}, [])
    assert parse_command("/ip address print") == ("/ip/address/print", {}, [])
    assert parse_command("/ip/address/add address=10.0.0.1/24 interface=ether1") == (
        "/ip/address/add",
        {"address": "10.0.0.1/24", "interface": "ether1"},
        [],
    )
    assert parse_command('/ip/firewall/address-list/set =.id=*1 comment="two words"') == (
        "/ip/firewall/address-list/set",
        {".id": "*1", "comment": "two words"},
        [],
    )


def test_parse_command_keeps_query_words():
    assert parse_command("/ip/firewall/address-list/print ?list=Blocked_IPs ?disabled=false ?#&") == (
        "/ip/firewall/address-list/print",
        {},
        ["?list=Blocked_IPs", "?disabled=false", "?#&"],
    )
    assert parse_command("/ip/address/print =.proplist=address ?interface=bridge") == (
        "/ip/address/print",
        {".proplist": "address"},
        ["?interface=bridge"],
    )


@pytest.mark.parametrize(
    "bad",
    [
        "",
        "   ",
        "/ip/address/add address=1.1.1.1 print",
        "/ip/address/print ?interface=bridge detail",
        "/ip/address/print ?interface=bridge =.proplist=address",
    ],
)
def test_parse_command_rejects(bad):
    with pytest.raises(ValueError):
        parse_command(bad)


@pytest.mark.asyncio
async def test_connect_passes_credentials_and_port(adapter, api):
    handle = await adapter.connect("10.1.1.1", "admin", "x")

    assert handle is api
    assert adapter.seen == {"host": "10.1.1.1", "username": "admin", "password": "x", "port": 8728, "timeout": 10}


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [socket.timeout("timed out"), ConnectionRefusedError(111, "refused"), LibRouterosError("invalid user name or password")])
async def test_connect_failures_become_connect_error(monkeypatch, error):
    def fail(**kwargs):
        raise error

    monkeypatch.setattr("mikromanager.routeros.api_client.connect", fail)

    with pytest.raises(ConnectError) as exc_info:
        await RouterOSApiAdapter().connect("10.1.1.1", "admin", "x")
    assert exc_info.value.kind == "api"


@pytest.mark.asyncio
async def test_fetch_identity(adapter, api):
    identity = await adapter.fetch_identity(api)

    assert identity.version == "6.49.10 (long-term)"
    assert identity.identity == "RB-Edge"
    assert identity.uptime == "5w2d"


@pytest.mark.asyncio
async def test_list_groups_entries(adapter, api):
    lists = await adapter.list_address_entries(api)

    assert list(lists) == ["Blocked_IPs", "Allowed"]
    entry = lists["Blocked_IPs"][0]
    assert entry.comment == "scanner"
    assert entry.native_id == NativeId(TransportKind.API, "*1")
    assert lists["Allowed"][0].comment == ""


@pytest.mark.asyncio
async def test_round_trip(adapter, api):
    await adapter.add_address_entry(api, "Blocked_IPs", "10.0.0.5", "test")
    lists = await adapter.list_address_entries(api)
    assert [(e.address, e.comment) for e in lists["Blocked_IPs"]][-1] == ("10.0.0.5", "test")

    await adapter.remove_address_entry(api, "Blocked_IPs", "10.0.0.5")
    lists = await adapter.list_address_entries(api)
    assert "10.0.0.5" not in [e.address for e in lists["Blocked_IPs"]]


@pytest.mark.asyncio
async def test_remove_deletes_by_native_id(adapter, api):
    await adapter.remove_address_entry(api, "Blocked_IPs", "10.0.0.1")

    assert api.removed == ["*1"]


@pytest.mark.asyncio
async def test_remove_missing_is_noop(adapter, api):
    await adapter.remove_address_entry(api, "Blocked_IPs", "172.16.0.1")

    assert api.removed == []


@pytest.mark.asyncio
async def test_backup(adapter, api):
    result = await adapter.create_backup(api, "nightly")

    assert ("/system/backup/save", {"name": "nightly"}) in api.calls
    assert result.to_dict() == {"success": True, "filename": "nightly.backup", "size": "40960"}


@pytest.mark.asyncio
async def test_backup_size_unknown_when_file_missing(adapter, api):
    result = await adapter.create_backup(api, "other")

    assert result.size == "Unknown"


@pytest.mark.asyncio
async def test_run_command_returns_formatted_reply(adapter, api):
    result = await adapter.run_command(api, "/ip address print")

    assert result.success is True
    assert json.loads(result.output)[0]["interface"] == "bridge"
    assert api.calls[-1] == ("/ip/address/print", {})


@pytest.mark.asyncio
async def test_run_command_with_query_words(adapter, api):
    result = await adapter.run_command(api, "/ip/firewall/address-list/print ?list=Allowed")

    assert result.success is True
    assert [r["address"] for r in json.loads(result.output)] == ["172.16.0.1"]
    assert api.calls[-1] == ("/ip/firewall/address-list/print", ("?list=Allowed",))


@pytest.mark.asyncio
async def test_run_command_failure_is_reported_not_raised(adapter, api):
    api.fail_calls = True

    result = await adapter.run_command(api, "/bogus/print")

    assert result.success is False
    assert "no such command prefix" in result.output


@pytest.mark.asyncio
async def test_operation_failure_raises_operation_error(adapter, api):
    api.fail_calls = True

    with pytest.raises(OperationError):
        await adapter.create_backup(api, "nightly")


@pytest.mark.asyncio
async def test_disconnect_closes_and_swallows(adapter, api):
    await adapter.disconnect(api)
    assert api.closed

    class Broken:
        def close(self):
            raise OSError("already closed")

    await adapter.disconnect(Broken())
