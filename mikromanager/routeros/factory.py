from typing import Dict, List

from .client_base import TransportAdapter
from .rest_client import RouterOSRestAdapter
from .api_client import RouterOSApiAdapter
from .ssh_client import RouterOSSSHAdapter
from ..settings import AppSettings, settings as default_settings


def make_adapters(settings: AppSettings = default_settings) -> List[TransportAdapter]:
    """Adapters in connection priority order: REST, binary API, SSH.

    REST is tried first (stateless, only RouterOS 7.1+), SSH last (slowest,
    works on every RouterOS version).
    """
    return [
        RouterOSRestAdapter(
            https=settings.rest_https,
            tls_verify=settings.rest_tls_verify,
            timeout=settings.rest_timeout_seconds,
            backup_settle_seconds=settings.backup_settle_seconds,
        ),
        RouterOSApiAdapter(
            port=settings.api_port,
            timeout=settings.api_timeout_seconds,
            backup_settle_seconds=settings.backup_settle_seconds,
        ),
        RouterOSSSHAdapter(
            port=settings.ssh_port,
            connect_timeout=settings.ssh_connect_timeout_seconds,
            command_timeout=settings.ssh_command_timeout_seconds,
            backup_settle_seconds=settings.backup_settle_seconds,
        ),
    ]


def dependency_status(adapters: List[TransportAdapter]) -> Dict[str, str]:
    """Client library availability per transport, as reported on GET /."""
    return {a.library: "available" if a.available else "missing" for a in adapters}
