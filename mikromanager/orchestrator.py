import logging
from typing import Any, Dict, List, Sequence

from .errors import AllTransportsFailed, ConnectError, TransportUnavailable
from .models import RouterCredential, Session
from .registry import SessionRegistry
from .routeros.client_base import TransportAdapter


logger = logging.getLogger(__name__)


class ConnectionOrchestrator:
    """Establishes a router session over the first transport that works.

    Transports are tried once each, in the order given (REST, binary API,
    SSH). The first one that connects and answers the identity query is
    installed in the registry; if none does, AllTransportsFailed carries
    every attempt's error.
    """

    def __init__(self, registry: SessionRegistry, adapters: Sequence[TransportAdapter]):
        self.registry = registry
        self.adapters = list(adapters)

    async def connect(self, credential: RouterCredential) -> Dict[str, Any]:
        async with self.registry.lock(credential.id):
            return await self._connect(credential)

    async def _connect(self, credential: RouterCredential) -> Dict[str, Any]:
        failures: List[ConnectError] = []

        for adapter in self.adapters:
            kind = adapter.kind.value
            if not adapter.available:
                failure = TransportUnavailable(kind, adapter.library)
                logger.warning("Router %s: skipping %s, %s", credential.id, kind, failure.reason)
                failures.append(failure)
                continue

            try:
                handle = await adapter.connect(credential.host, credential.username, credential.password)
            except ConnectError as e:
                failures.append(e)
                logger.warning("Router %s: %s connection to %s failed: %s", credential.id, kind, credential.host, e.reason)
                continue
            except Exception as e:
                # Unexpected adapter errors count as a failed transport
                failures.append(ConnectError(f"{type(e).__name__}: {e}", kind))
                logger.warning("Router %s: %s connection to %s failed: %s", credential.id, kind, credential.host, e)
                continue

            try:
                identity = await adapter.fetch_identity(handle)
            except Exception as e:
                # A transport that connects but cannot answer is a failed transport
                await adapter.disconnect(handle)
                failures.append(ConnectError(f"identity query failed: {e}", kind))
                logger.warning("Router %s: %s identity query failed: %s", credential.id, kind, e)
                continue

            session = Session(
                router_id=credential.id,
                kind=adapter.kind,
                adapter=adapter,
                handle=handle,
                host=credential.host,
                auth_token=adapter.auth_token(handle),
            )
            await self.registry.put(credential.id, session)
            logger.info(
                "Router %s connected to %s via %s (%s, RouterOS %s)",
                credential.id, credential.host, kind, identity.identity, identity.version,
            )
            result = {
                "connected": True,
                "version": identity.version,
                "identity": identity.identity,
                "method": kind,
            }
            if identity.uptime is not None:
                result["uptime"] = identity.uptime
            return result

        error = AllTransportsFailed(failures)
        logger.error("Router %s: %s", credential.id, error)
        raise error
