"""Domain services: circulation, catalog administration, side effects and auth."""

from .auth import (
    AuthenticationError,
    AuthResult,
    AuthServiceError,
    AuthUser,
    AuthVerifier,
    HttpAuthVerifier,
    PermissionDeniedError,
)
from .catalog import CatalogService
from .circulation import CirculationService
from .dispatcher import BackgroundDispatcher, NullDispatcher, OutboundTask, SideEffectDispatcher
from .email import EmailDeliveryError, EmailSender, OverdueNotice, ResendEmailSender
from .overdue_sweep import OverdueSweep, SweepReport
from .realtime_sync import RealtimeSyncClient, SyncError

__all__ = [
    "AuthResult",
    "AuthServiceError",
    "AuthUser",
    "AuthVerifier",
    "AuthenticationError",
    "BackgroundDispatcher",
    "CatalogService",
    "CirculationService",
    "EmailDeliveryError",
    "EmailSender",
    "HttpAuthVerifier",
    "NullDispatcher",
    "OutboundTask",
    "OverdueNotice",
    "OverdueSweep",
    "PermissionDeniedError",
    "RealtimeSyncClient",
    "ResendEmailSender",
    "SideEffectDispatcher",
    "SweepReport",
    "SyncError",
]
