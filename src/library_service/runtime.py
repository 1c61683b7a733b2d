"""
Wiring for the Library Service entry points.

``ServiceContainer`` builds every component from one ``ServiceConfig``. The
HTTP app, the MCP server and the CLI all start from a container; tests build
one with fakes in place of the external collaborators.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from .config import ServiceConfig, get_config
from .database.session import DatabaseManager
from .models.checkout import utc_now
from .services.auth import AuthVerifier, HttpAuthVerifier
from .services.catalog import CatalogService
from .services.circulation import CirculationService
from .services.dispatcher import BackgroundDispatcher, NullDispatcher, SideEffectDispatcher
from .services.email import EmailSender, ResendEmailSender
from .services.overdue_sweep import OverdueSweep
from .services.realtime_sync import CHANNEL as SYNC_CHANNEL
from .services.realtime_sync import RealtimeSyncClient

logger = logging.getLogger(__name__)


def build_dispatcher(config: ServiceConfig) -> SideEffectDispatcher:
    """Background dispatcher when realtime sync is configured, otherwise a no-op."""
    if not config.sync_enabled:
        logger.warning("Realtime sync not configured; state changes will not be mirrored")
        return NullDispatcher()

    client = RealtimeSyncClient.from_config(config)
    return BackgroundDispatcher(
        {SYNC_CHANNEL: client.handle}, max_workers=config.dispatcher_workers
    )


@dataclass
class ServiceContainer:
    config: ServiceConfig
    db: DatabaseManager
    dispatcher: SideEffectDispatcher
    verifier: AuthVerifier
    email_sender: EmailSender | None = None
    clock: Callable[[], datetime] = utc_now
    circulation: CirculationService = field(init=False)
    catalog: CatalogService = field(init=False)
    _sweep: OverdueSweep | None = field(default=None, init=False, repr=False)

    def __post_init__(self):
        self.circulation = CirculationService(
            self.db, self.config, dispatcher=self.dispatcher, clock=self.clock
        )
        self.catalog = CatalogService(self.db, self.config, dispatcher=self.dispatcher)

    @classmethod
    def from_config(cls, config: ServiceConfig) -> "ServiceContainer":
        email_sender = ResendEmailSender.from_config(config) if config.email_api_key else None
        return cls(
            config=config,
            db=DatabaseManager(config.database_url),
            dispatcher=build_dispatcher(config),
            verifier=HttpAuthVerifier.from_config(config),
            email_sender=email_sender,
        )

    @property
    def overdue_sweep(self) -> OverdueSweep:
        """The process-wide sweep; one instance so its run lock is shared."""
        if self.email_sender is None:
            raise RuntimeError("Overdue sweep needs an e-mail sender; set LIBRARY_EMAIL_API_KEY")
        if self._sweep is None:
            self._sweep = OverdueSweep(self.db, self.email_sender, clock=self.clock)
        return self._sweep

    def close(self) -> None:
        """Drain pending side effects and release connections."""
        self.dispatcher.shutdown(wait=True)
        self.db.close()


class _ContainerStore:
    """Internal storage for the container used by the MCP tool handlers."""

    _instance: ServiceContainer | None = None


def set_container(container: ServiceContainer) -> None:
    _ContainerStore._instance = container  # type: ignore[reportPrivateUsage]


def get_container() -> ServiceContainer:
    """Get the installed container, building one from the environment if needed."""
    if _ContainerStore._instance is None:  # type: ignore[reportPrivateUsage]
        container = ServiceContainer.from_config(get_config())
        _ContainerStore._instance = container  # type: ignore[reportPrivateUsage]
    return _ContainerStore._instance  # type: ignore[reportPrivateUsage]


def reset_container() -> None:
    """Forget the installed container (useful for testing)."""
    _ContainerStore._instance = None  # type: ignore[reportPrivateUsage]
