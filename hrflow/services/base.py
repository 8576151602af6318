import functools
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from hrflow.core.exceptions import AppException, ConflictError, PersistenceError
from hrflow.core.logging import operation_context
from hrflow.core.schemas import ServiceResult
from hrflow.database import SessionLocal, execute_transaction, read_session
from hrflow.services.authorization import Action, AuthorizationDecision, CallerIdentity, EntityRefs, authorize
from hrflow.services.notification import NotificationKind, Notifier, NullNotifier, dispatch_after_commit


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class BaseService:
    """
    Shared wiring for the orchestrators: where sessions come from, who gets
    notified, what time it is, and how new child ids are minted.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = new_id,
    ):
        self.session_factory = session_factory
        self.notifier = notifier or NullNotifier()
        self.clock = clock
        self.id_factory = id_factory
        self._logger = logging.getLogger(self.__class__.__module__)

    def transaction(self, callback: Callable[[Session], Any]) -> Any:
        return execute_transaction(callback, self.session_factory)

    def reading(self):
        return read_session(self.session_factory)

    def authorize(self, caller: CallerIdentity, refs: EntityRefs, action: Action) -> AuthorizationDecision:
        decision = authorize(caller, refs, action)
        decision.raise_if_denied()
        return decision

    def notify(self, kind: NotificationKind, recipient_user_id: Optional[int], payload: Dict[str, Any]):
        return dispatch_after_commit(self.notifier, kind, recipient_user_id, payload)


def service_operation(name: str):
    """
    Turns a service method into a public operation returning ``ServiceResult``.

    Expected failures (``AppException``) become failed results. A lost
    optimistic-lock race becomes CONCURRENT_MODIFICATION, and any other
    database error a PERSISTENCE_ERROR; both are rolled back by the
    transaction boundary before they get here. Anything else is a bug and
    propagates.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            started = time.perf_counter()

            def timing(extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
                meta = dict(extra or {})
                meta["operation"] = name
                meta["execution_time_ms"] = round((time.perf_counter() - started) * 1000, 2)
                return meta

            try:
                with operation_context(name):
                    result = func(self, *args, **kwargs)
            except AppException as exc:
                self._logger.warning(
                    f"{name} rejected: {exc.error_code}",
                    extra={"error_code": exc.error_code, "error_kind": exc.kind.value},
                )
                return ServiceResult.fail(exc, metadata=timing())
            except StaleDataError:
                self._logger.warning(f"{name} lost a concurrent update race", exc_info=True)
                exc = ConflictError(
                    "The record was modified by another request; reload and retry",
                    error_code="CONCURRENT_MODIFICATION",
                )
                return ServiceResult.fail(exc, metadata=timing())
            except SQLAlchemyError:
                self._logger.error(f"{name} failed at the persistence layer", exc_info=True)
                return ServiceResult.fail(PersistenceError(), metadata=timing())

            result.metadata = timing(result.metadata)
            return result
        return wrapper
    return decorator
