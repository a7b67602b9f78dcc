"""Retrying of single requests in case of connection errors."""

from __future__ import annotations

from typing import TYPE_CHECKING

import tenacity

from . import common
from .log import logger

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable


def _make_log_before_function(s: str) -> Callable[[tenacity.RetryCallState], None]:
    """Create a function used to log before a retry attempt."""

    def log(retry_state: tenacity.RetryCallState) -> None:
        if retry_state.attempt_number > 1:
            logger.info(
                f"Trying {s} again, attempt number {retry_state.attempt_number}..."
            )

    return log


def _make_log_before_sleep_function(
    s: str,
) -> Callable[[tenacity.RetryCallState], None]:
    """Create a function used when a call made through tenacity fails."""

    def log(retry_state: tenacity.RetryCallState) -> None:
        if (retry_state.next_action is not None) and (retry_state.outcome is not None):
            duration = retry_state.next_action.sleep
            if retry_state.outcome.failed:
                value = retry_state.outcome.exception()
            else:
                value = retry_state.outcome.result()
            logger.warning(
                f"{s.capitalize()} failed, "
                f"retrying in {duration:.0f} second(s): {value}"
            )

    return log


def make_retrying(
    s: str, attempts: int, max_retry_period_seconds: float
) -> tenacity.AsyncRetrying:
    """Create a tenacity retry object.

    Only connection failures are retried, a request that got any response
    from the server is not repeated.

    :param s: Description of the operation, used in log messages.
    :param attempts: Maximum number of attempts.
    :param max_retry_period_seconds: Upper bound of the time between attempts.
    :return: The retry object. It raises 'tenacity.RetryError' when all
        attempts failed.
    """
    return tenacity.AsyncRetrying(
        retry=tenacity.retry_if_exception_type(common.TransportFailure),
        stop=tenacity.stop_after_attempt(attempts),
        wait=tenacity.wait_exponential(max=max_retry_period_seconds),
        before=_make_log_before_function(s),
        before_sleep=_make_log_before_sleep_function(s),
    )
