# backend/dateplanner/services/base.py
"""
Base Service Pattern for the scheduling core.

Provides common functionality for all service classes including:
- Transaction management (re-entrant unit of work)
- Logging
- Error handling
- Performance monitoring
- Injected settings and clock
"""

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from functools import wraps
import logging
import time
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.exceptions import ServiceException
from ..core.timezone_utils import Clock, ensure_utc, utc_now

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# Session.info keys: open service transaction depth, callbacks awaiting commit
_TX_DEPTH_KEY = "dateplanner_tx_depth"
_AFTER_COMMIT_KEY = "dateplanner_after_commit"


@dataclass
class OperationStats:
    """Running timings for one measured operation."""

    count: int = 0
    failures: int = 0
    total_time: float = 0.0
    min_time: float = float("inf")
    max_time: float = 0.0

    def record(self, elapsed: float, success: bool) -> None:
        self.count += 1
        self.total_time += elapsed
        self.min_time = min(self.min_time, elapsed)
        self.max_time = max(self.max_time, elapsed)
        if not success:
            self.failures += 1

    def summary(self) -> Dict[str, Any]:
        successes = self.count - self.failures
        return {
            "count": self.count,
            "avg_time": self.total_time / self.count,
            "min_time": self.min_time,
            "max_time": self.max_time,
            "total_time": self.total_time,
            "success_rate": successes / self.count,
            "success_count": successes,
            "failure_count": self.failures,
        }


class BaseService:
    """
    Base class for all service layer components.

    Services share one Session per request. transaction() may nest: the
    outermost block commits or rolls back, inner blocks only track depth,
    so a service method can call another service's method and both writes
    land atomically.
    """

    # Service class name -> operation name -> stats
    _class_metrics: Dict[str, Dict[str, OperationStats]] = {}

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize base service.

        Args:
            db: Database session
            settings: Runtime configuration; defaults are used when omitted
            clock: Callable returning the current aware UTC datetime
            logger: Logger override, mostly for tests
        """
        self.db = db
        self.settings = settings or Settings()
        self.clock: Clock = clock or utc_now
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    def now(self) -> datetime:
        return ensure_utc(self.clock())

    @property
    def in_transaction(self) -> bool:
        return cast(int, self.db.info.get(_TX_DEPTH_KEY, 0)) > 0

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Context manager for database transactions.

        Usage:
            with self.transaction():
                # Do multiple operations
                self.repository.create(...)
                # Note: commit is handled automatically

        Domain exceptions roll back and propagate unchanged. Raw database
        errors roll back and surface as ServiceException.
        """
        depth = cast(int, self.db.info.get(_TX_DEPTH_KEY, 0))
        self.db.info[_TX_DEPTH_KEY] = depth + 1
        outermost = depth == 0
        try:
            yield self.db
            if outermost:
                self.db.commit()
                self.logger.debug("Transaction committed successfully")
        except SQLAlchemyError as e:
            self.logger.error(f"Transaction failed: {str(e)}")
            if outermost:
                self.db.rollback()
                self.db.info.pop(_AFTER_COMMIT_KEY, None)
            raise ServiceException(f"Database operation failed: {str(e)}") from e
        except Exception:
            if outermost:
                self.db.rollback()
                self.db.info.pop(_AFTER_COMMIT_KEY, None)
            raise
        finally:
            self.db.info[_TX_DEPTH_KEY] = depth

        if outermost:
            self._run_after_commit()

    def after_commit(self, callback: Callable[[], None]) -> None:
        """
        Run callback once the outermost transaction commits.

        Outside a transaction the callback runs immediately. Callbacks are
        dropped on rollback, and a failing callback is logged, never raised.
        """
        if not self.in_transaction:
            self._invoke_callback(callback)
            return
        self.db.info.setdefault(_AFTER_COMMIT_KEY, []).append(callback)

    def _run_after_commit(self) -> None:
        for callback in self.db.info.pop(_AFTER_COMMIT_KEY, []):
            self._invoke_callback(callback)

    def _invoke_callback(self, callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception as e:
            self.logger.error(f"After-commit callback failed: {str(e)}", exc_info=True)

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Decorator timing a service method and recording it under operation_name.

        Calls slower than settings.slow_operation_threshold_seconds log a
        warning.

        Usage:
            @BaseService.measure_operation("bulk_create_slots")
            def bulk_create(self, owner_user_id, request):
                ...
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self: "BaseService", *args: Any, **kwargs: Any) -> Any:
                started = time.perf_counter()
                success = False
                try:
                    result = func(self, *args, **kwargs)
                    success = True
                    return result
                finally:
                    elapsed = time.perf_counter() - started
                    self._record_metric(operation_name, elapsed, success)
                    if elapsed > self.settings.slow_operation_threshold_seconds:
                        self.logger.warning(
                            f"Slow operation detected: {operation_name} took {elapsed:.2f}s"
                        )

            return cast(F, wrapper)

        return decorator

    def log_operation(self, operation: str, **context: Any) -> None:
        self.logger.info(f"Operation: {operation}", extra={"operation": operation, **context})

    def _record_metric(self, operation: str, elapsed: float, success: bool) -> None:
        per_class = BaseService._class_metrics.setdefault(self.__class__.__name__, {})
        per_class.setdefault(operation, OperationStats()).record(elapsed, success)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Timing summary per measured operation of this service class."""
        per_class = BaseService._class_metrics.get(self.__class__.__name__, {})
        return {name: stats.summary() for name, stats in per_class.items() if stats.count}

    def reset_metrics(self) -> None:
        BaseService._class_metrics.pop(self.__class__.__name__, None)
        self.logger.info(f"Metrics reset for {self.__class__.__name__}")
