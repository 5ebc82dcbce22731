"""
Graceful failure utilities.

Non-critical work in the engine (answer saves, clock listeners, telemetry)
must never stop the main flow. This module centralizes the pattern of:
1. Attempting an operation
2. Logging any exception with context
3. Continuing execution without raising

Usage:
    from attempt_engine.graceful_failure import graceful_failure

    with graceful_failure("notify tick listener", logger):
        listener(remaining)

    with graceful_failure(
        "save answer",
        logger,
        log_level=logging.ERROR,
        context={"question_id": "q1"},
    ):
        await client.save_answer(test_id, record)
"""

import logging
from contextlib import contextmanager
from typing import Any, Generator, Optional


@contextmanager
def graceful_failure(
    operation_name: str,
    logger: logging.Logger,
    *,
    log_level: int = logging.WARNING,
    exc_info: bool = False,
    context: Optional[dict[str, Any]] = None,
) -> Generator[None, None, None]:
    """Context manager for non-critical operations that should not block execution.

    Cancellation (asyncio.CancelledError) is a BaseException and passes through.

    Args:
        operation_name: Human-readable name of the operation for logging
            (e.g., "save answer", "notify tick listener").
        logger: The logger instance to use for logging errors.
        log_level: Logging level for error messages. Defaults to WARNING.
        exc_info: Whether to include exception traceback in log. Defaults to False.
        context: Optional dictionary of additional context to include in log message
            (e.g., {"section_id": "s1", "question_id": "q1"}).

    Yields:
        None - the context manager is used for its side effects only.
    """
    try:
        yield
    except Exception as e:
        if context:
            context_str = ", ".join(f"{k}={v}" for k, v in context.items())
            message = f"Failed to {operation_name} ({context_str}): {e}"
        else:
            message = f"Failed to {operation_name}: {e}"

        logger.log(log_level, message, exc_info=exc_info)
