from __future__ import annotations

from .coordinator import RefreshCoordinator, RefreshState
from .envelope import RequestEnvelope, targets_endpoint
from .intercept import InterceptingTransport
from .raw import RawTransport

__all__ = [
    "InterceptingTransport",
    "RawTransport",
    "RefreshCoordinator",
    "RefreshState",
    "RequestEnvelope",
    "targets_endpoint",
]
