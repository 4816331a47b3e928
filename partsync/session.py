# partsync/session.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from remote.sheets import RemoteStoreClient

from .config import SyncConfig, TenantConfig
from .logger import get_logger

logger = get_logger(__name__)


class SessionEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"


@dataclass
class Session:
    user_id: str
    tenant_id: str


Listener = Callable[[SessionEvent, Optional[Session]], None]


class SessionContext:
    """
    Holds the signed-in session for one app instance and notifies
    subscribers when it changes.
    """

    def __init__(self):
        self._session: Optional[Session] = None
        self._listeners: List[Listener] = []

    @property
    def current(self) -> Optional[Session]:
        return self._session

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def _emit(self, event: SessionEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, self._session)
            except Exception as e:
                logger.exception("Session listener failed on %s: %s", event.value, e)

    def sign_in(self, user_id: str, tenant_id: str) -> Session:
        self._session = Session(user_id=user_id, tenant_id=tenant_id)
        logger.info("Signed in %s for tenant %s.", user_id, tenant_id)
        self._emit(SessionEvent.SIGNED_IN)
        return self._session

    def sign_out(self) -> None:
        if self._session is None:
            return
        logger.info("Signed out %s.", self._session.user_id)
        self._session = None
        self._emit(SessionEvent.SIGNED_OUT)


@dataclass
class AppContext:
    """Everything the engine needs, built once at startup."""
    tenant: TenantConfig
    config: SyncConfig
    store: object
    session: SessionContext = field(default_factory=SessionContext)
    content_assist: Optional[object] = None
    db_path: Optional[str] = None


def build_context(
    tenant: TenantConfig,
    config: Optional[SyncConfig] = None,
    content_assist=None,
    db_path: Optional[str] = None,
) -> AppContext:
    config = config or SyncConfig.from_env()
    store = RemoteStoreClient(
        tenant.script_url,
        timeout=config.read_timeout,
        read_attempts=config.read_attempts,
    )
    return AppContext(
        tenant=tenant,
        config=config,
        store=store,
        content_assist=content_assist,
        db_path=db_path,
    )
