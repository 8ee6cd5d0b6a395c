"""
Dashgate - Client Package

Session-side counterpart of the auth service:
- AuthAPIClient: typed calls to /api/auth/*
- CSRFTokenManager: cookie-to-header token mirroring
- SecureStorage: AES-GCM encrypted persistence
- AuthStateMachine / ProtectedRouteGate: login flow and view gating
"""

from dashgate.client.api import AuthAPIClient
from dashgate.client.csrf import CSRFTokenManager
from dashgate.client.gate import GateOutcome, GateView, ProtectedRouteGate
from dashgate.client.state import AuthFailure, AuthStateMachine, AuthStep, ModalStep
from dashgate.client.storage import (
    FileStorage,
    MemoryStorage,
    PlainStorage,
    SecureStorage,
    open_storage,
)

__all__ = [
    "AuthAPIClient",
    "CSRFTokenManager",
    "GateOutcome",
    "GateView",
    "ProtectedRouteGate",
    "AuthFailure",
    "AuthStateMachine",
    "AuthStep",
    "ModalStep",
    "FileStorage",
    "MemoryStorage",
    "PlainStorage",
    "SecureStorage",
    "open_storage",
]
