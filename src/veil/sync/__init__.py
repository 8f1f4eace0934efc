"""
Multi-device sync: remote backends, token resolution and the merge engine.
"""

from .backends import GistBackend, LocalBackend, RemoteBackend, create_backend
from .engine import SyncEngine
from .models import AdoptionDecision, RemoteContainer, RemoteFile, SyncReport
from .tokens import DeviceFlow, TokenResolver, store_token

__all__ = [
    "AdoptionDecision",
    "DeviceFlow",
    "GistBackend",
    "LocalBackend",
    "RemoteBackend",
    "RemoteContainer",
    "RemoteFile",
    "SyncEngine",
    "SyncReport",
    "TokenResolver",
    "create_backend",
    "store_token",
]
