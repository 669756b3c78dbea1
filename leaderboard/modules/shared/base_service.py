"""
Base class for domain services.

Services own business rules and raise domain exceptions; sessions and
transactions stay inside the stores they call.

Usage
-----
    class RankingService(BaseService):
        def __init__(self, store, rank_index, config=Config):
            super().__init__(config, logger)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from logging import Logger


class BaseService:
    """
    Args:
        config: Object exposing configuration as attributes (normally ``Config``)
        logger: Module logger of the concrete service
    """

    def __init__(self, config: Any, logger: Logger) -> None:
        self._config = config
        self.log = logger

    def get_config(self, key: str, default: Optional[Any] = None, required: bool = False) -> Any:
        """
        Raises:
            KeyError: ``required`` and the value is missing or None
        """
        value = getattr(self._config, key, default)
        if value is None and required:
            raise KeyError(f"Required configuration key '{key}' is missing")
        return value

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"{type(self).__name__}.{operation} completed",
            extra={"operation_name": operation, **context},
        )

    def log_error(self, operation: str, error: Exception, **context: Any) -> None:
        """Log a failed operation; domain errors carry their ``error_code``."""
        fields = {
            "operation_name": operation,
            "error_type": type(error).__name__,
            "error_message": str(error),
            **context,
        }
        error_code = getattr(error, "error_code", None)
        if error_code:
            fields["error_code"] = error_code

        self.log.error(f"{type(self).__name__}.{operation} failed: {error}", extra=fields)
