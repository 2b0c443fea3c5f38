"""Operations on routers with an established session.

Each service looks up the router's session and dispatches through the
session's own adapter, so an operation always uses the transport the
session was established on.
"""

import logging
from typing import Any, Dict, List

from .errors import RouterNotConnected
from .registry import SessionRegistry
from .models import Session


logger = logging.getLogger(__name__)


class RouterService:
    def __init__(self, registry: SessionRegistry):
        self.registry = registry

    def session(self, router_id: int) -> Session:
        session = self.registry.get(router_id)
        if session is None:
            raise RouterNotConnected(router_id)
        return session


class AddressListService(RouterService):
    async def list(self, router_id: int) -> Dict[str, List[Dict[str, str]]]:
        async with self.registry.lock(router_id):
            s = self.session(router_id)
            collection = await s.adapter.list_address_entries(s.handle)
        return {name: [e.to_dict() for e in entries] for name, entries in collection.items()}

    async def add(self, router_id: int, list_name: str, address: str, comment: str = "") -> Dict[str, Any]:
        async with self.registry.lock(router_id):
            s = self.session(router_id)
            await s.adapter.add_address_entry(s.handle, list_name, address, comment or "")
        logger.info("Router %s: added %s to %s", router_id, address, list_name)
        return {"success": True}

    async def remove(self, router_id: int, list_name: str, address: str) -> Dict[str, Any]:
        async with self.registry.lock(router_id):
            s = self.session(router_id)
            await s.adapter.remove_address_entry(s.handle, list_name, address)
        logger.info("Router %s: removed %s from %s", router_id, address, list_name)
        return {"success": True}


class BackupService(RouterService):
    async def create(self, router_id: int, name: str) -> Dict[str, Any]:
        async with self.registry.lock(router_id):
            s = self.session(router_id)
            result = await s.adapter.create_backup(s.handle, name)
        logger.info("Router %s: backup %s created (size %s)", router_id, result.filename, result.size)
        return result.to_dict()


class CommandService(RouterService):
    async def run(self, router_id: int, command: str) -> Dict[str, Any]:
        async with self.registry.lock(router_id):
            s = self.session(router_id)
            result = await s.adapter.run_command(s.handle, command)
        if not result.success:
            logger.info("Router %s: command %r failed over %s", router_id, command, s.kind.value)
        return result.to_dict()


async def disconnect_router(registry: SessionRegistry, router_id: int) -> Dict[str, Any]:
    """Drop the router's session. Unknown router ids are not an error."""
    async with registry.lock(router_id):
        await registry.remove(router_id)
    return {"success": True}
