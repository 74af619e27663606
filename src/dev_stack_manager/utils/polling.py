"""Readiness polling built on tenacity.

``poll_until`` turns a "wait at most N seconds, checking every M seconds"
loop into a bounded retry: the predicate is called at most
``ceil(timeout / interval) + 1`` times, so the total sleep before giving
up is never shorter than ``timeout``.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from typing import Any

import httpx
import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

logger = structlog.get_logger()

SleepFn = Callable[[float], None]


def attempt_budget(timeout: float, interval: float) -> int:
    """Number of predicate calls needed to cover ``timeout``."""
    if interval <= 0:
        raise ValueError("interval must be positive")
    if timeout < 0:
        raise ValueError("timeout must be non-negative")
    return math.ceil(timeout / interval) + 1


def poll_until(
    predicate: Callable[[], Any],
    timeout: float,
    interval: float,
    *,
    sleep: SleepFn = time.sleep,
    ignore: tuple[type[BaseException], ...] = (),
    description: str | None = None,
) -> bool:
    """Call ``predicate`` until it returns a truthy value or time runs out.

    Args:
        predicate: Zero-argument readiness check.
        timeout: Maximum seconds to wait.
        interval: Seconds between checks.
        sleep: Sleep function, injectable for tests.
        ignore: Exception types raised by the predicate that count as
            "not ready yet" instead of propagating.
        description: Name used in debug logs.

    Returns:
        True once the predicate succeeds, False when the budget is spent.
    """
    attempts = attempt_budget(timeout, interval)
    log = logger.bind(check=description or getattr(predicate, "__name__", "predicate"))

    def _before_sleep(state: RetryCallState) -> None:
        log.debug("Not ready, retrying", attempt=state.attempt_number, of=attempts)

    def _give_up(state: RetryCallState) -> bool:
        log.debug("Gave up waiting", attempts=state.attempt_number, timeout=timeout)
        return False

    condition = retry_if_result(lambda value: not value)
    if ignore:
        condition = condition | retry_if_exception_type(ignore)

    retrying = Retrying(
        retry=condition,
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(interval),
        sleep=sleep,
        before_sleep=_before_sleep,
        retry_error_callback=_give_up,
    )
    return bool(retrying(predicate))


def wait_for_http(
    url: str,
    timeout: float,
    interval: float,
    *,
    expect_status: int | None = None,
    params: dict[str, str] | None = None,
    verify: bool = True,
    sleep: SleepFn = time.sleep,
) -> bool:
    """Poll an HTTP endpoint until it answers.

    Any status below 400 counts as ready unless ``expect_status`` pins an
    exact code. Transport errors count as not ready.

    Returns:
        True once the endpoint answered, False after ``timeout`` seconds.
    """
    with httpx.Client(timeout=httpx.Timeout(min(interval * 2, 10.0)), verify=verify) as client:

        def _ready() -> bool:
            response = client.get(url, params=params)
            if expect_status is not None:
                return response.status_code == expect_status
            return response.status_code < 400

        ready = poll_until(
            _ready,
            timeout,
            interval,
            sleep=sleep,
            ignore=(httpx.TransportError,),
            description=url,
        )

    if ready:
        logger.debug("Endpoint ready", url=url)
    return ready
