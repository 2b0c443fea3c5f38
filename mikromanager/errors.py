"""Gateway exceptions.

Hierarchy:
- GatewayError (base)
  - ConnectError (one transport failed to establish a session)
    - TransportUnavailable (client library missing)
    - AllTransportsFailed (every transport failed)
  - RouterNotConnected (no session for the router id)
  - OperationError (an operation failed on an established session)
  - DisconnectError (closing a handle failed; always swallowed)
"""

from typing import List, Optional


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    pass


class ConnectError(GatewayError):
    """Raised when a single transport cannot establish a session.

    Attributes:
        kind: transport wire name ("rest", "api", "ssh") or None
        reason: human readable failure reason
    """

    def __init__(self, reason: str, kind: Optional[str] = None):
        super().__init__(f"{kind}: {reason}" if kind else reason)
        self.kind = kind
        self.reason = reason


class TransportUnavailable(ConnectError):
    """Raised when a transport's client library could not be loaded."""

    def __init__(self, kind: str, library: str):
        super().__init__(f"{library} not available", kind)
        self.library = library


class AllTransportsFailed(ConnectError):
    """Raised when every transport failed; keeps each attempt's error."""

    def __init__(self, failures: List[ConnectError]):
        last = failures[-1] if failures else None
        reason = f"All connection methods failed, last error: {last}" if last else "No transports configured"
        super().__init__(reason)
        self.failures = list(failures)


class RouterNotConnected(GatewayError):
    def __init__(self, router_id: int):
        super().__init__("Router not connected")
        self.router_id = router_id


class OperationError(GatewayError):
    """Raised when an operation against an established session fails."""

    pass


class DisconnectError(GatewayError):
    pass
