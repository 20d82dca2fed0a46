"""
Utility decorators for engine operations.
"""

import functools
import time
import uuid
from collections.abc import Callable
from typing import Any, TypeVar

from loguru import logger

_CONTEXT_ATTRIBUTES = ("name", "symbol", "window_number")

F = TypeVar("F", bound=Callable[..., Any])


def _serialize_parameter_value(value: Any) -> Any:
    """Serialize parameter value for logging."""
    if hasattr(value, "value") and hasattr(value, "name"):
        return str(value.value)  # Handle enum values
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def _extract_operation_context(func: Callable[..., Any], args: tuple[Any, ...]) -> dict[str, Any]:
    """Build logging context from the bound instance, if any."""
    context: dict[str, Any] = {
        "correlation_id": str(uuid.uuid4())[:8],
        "operation": func.__qualname__,
    }
    if args:
        owner = args[0]
        strategy = getattr(owner, "strategy", None)
        if strategy is not None and hasattr(strategy, "name"):
            context["strategy"] = strategy.name
        for attribute in _CONTEXT_ATTRIBUTES:
            value = getattr(owner, attribute, None)
            if isinstance(value, str | int | float) or hasattr(value, "isoformat"):
                context[attribute] = _serialize_parameter_value(value)
    return context


def _create_success_context(
    base_context: dict[str, Any], execution_time_ms: float, result: Any
) -> dict[str, Any]:
    """Create success logging context."""
    success_context = {
        **base_context,
        "success": True,
        "execution_time_ms": round(execution_time_ms, 2),
        "result_type": type(result).__name__,
    }

    trades = getattr(result, "trades", None)
    if isinstance(trades, list):
        success_context["trades"] = len(trades)

    return success_context


def _create_error_context(
    base_context: dict[str, Any], execution_time_ms: float, error: Exception
) -> dict[str, Any]:
    """Create error logging context."""
    return {
        **base_context,
        "success": False,
        "execution_time_ms": round(execution_time_ms, 2),
        "error_type": type(error).__name__,
        "error_message": str(error),
    }


def log_operation(func: F) -> F:
    """Decorator to log engine operations with correlation IDs and timings.

    Logs at debug level: a walk-forward search runs the simulator once per
    parameter candidate per window.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        context = _extract_operation_context(func, args)
        logger.debug(f"Operation started: {context['operation']}", extra=context)
        start_time = time.perf_counter()

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            execution_time_ms = (time.perf_counter() - start_time) * 1000
            error_context = _create_error_context(context, execution_time_ms, e)
            logger.debug(f"Operation failed: {context['operation']}", extra=error_context)
            raise

        execution_time_ms = (time.perf_counter() - start_time) * 1000
        success_context = _create_success_context(context, execution_time_ms, result)
        logger.debug(f"Operation completed: {context['operation']}", extra=success_context)
        return result

    return wrapper  # type: ignore
