# /*
# Copyright 2026 The Mesh Acceptance Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Polling of eventually consistent cluster state.

A check is a callable taking an ``R``. It records failures on the ``R`` (or
raises one of the transient lookup errors); an attempt with no failures ends
the polling. When attempts run out the last attempt's failures are raised as a
``ConvergenceError``::

    def registered(r: R) -> None:
        if len(client.catalog_service("static-client")) != 1:
            r.errorf("expected 1 instance of %s", "static-client")

    retry.run(registered, RetryTimer(attempts=30, interval=1))
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx
import sh
from kubernetes.client.exceptions import ApiException
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, stop_when_event_set, wait_fixed

from mesh_acceptance import logger
from mesh_acceptance.config import RetryConfig
from mesh_acceptance.constants import DEFAULT_RETRY_ATTEMPTS, DEFAULT_RETRY_INTERVAL_SECONDS
from mesh_acceptance.errors import ConvergenceError

# Raised by lookups that may succeed on the next attempt.
RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    httpx.HTTPError,
    ApiException,
    OSError,
    sh.ErrorReturnCode,
)


@dataclass(frozen=True)
class RetryTimer:
    """Attempt budget for one polling loop.

    Attributes:
        attempts: Maximum number of times the check runs.
        interval: Seconds to sleep between attempts.
    """

    attempts: int = DEFAULT_RETRY_ATTEMPTS
    interval: float = DEFAULT_RETRY_INTERVAL_SECONDS

    @classmethod
    def from_config(cls, retry_cfg: RetryConfig) -> RetryTimer:
        return cls(attempts=retry_cfg.attempts, interval=retry_cfg.interval)

    @classmethod
    def connectivity(cls, retry_cfg: RetryConfig) -> RetryTimer:
        return cls(attempts=retry_cfg.connectivity_attempts, interval=retry_cfg.connectivity_interval)

    @classmethod
    def pod_ready(cls, retry_cfg: RetryConfig) -> RetryTimer:
        return cls(attempts=retry_cfg.pod_ready_attempts, interval=retry_cfg.pod_ready_interval)


class R:
    """Failures recorded during a single attempt."""

    def __init__(self, attempt: int) -> None:
        self.attempt = attempt
        self._failures: list[str] = []

    def errorf(self, fmt: str, *args: Any) -> None:
        self._failures.append(fmt % args if args else fmt)

    def check(self, err: BaseException | None) -> None:
        """Record *err* as a failure if it is not None."""
        if err is not None:
            self._failures.append(f"{type(err).__name__}: {err}")

    @property
    def failed(self) -> bool:
        return bool(self._failures)

    @property
    def failures(self) -> list[str]:
        return list(self._failures)


class _AttemptFailed(Exception):
    def __init__(self, failures: list[str]) -> None:
        super().__init__("; ".join(failures))
        self.failures = failures


def run(
    check: Callable[[R], None],
    timer: RetryTimer | None = None,
    cancel: threading.Event | None = None,
    description: str = "condition",
) -> None:
    """Run *check* until an attempt records no failures.

    Errors in ``RETRYABLE_ERRORS`` raised by the check count as a failed attempt.
    Anything else (assertion rewrites, pytest timeouts, KeyboardInterrupt)
    propagates immediately. Setting *cancel* stops the loop before the next
    attempt and wakes it from its sleep.

    Args:
        check: Callable recording failures on the ``R`` it receives.
        timer: Attempt budget, or None for the defaults.
        cancel: Event that aborts the polling when set.
        description: What is being waited for, used in the error message.

    Raises:
        ConvergenceError: If attempts run out or the loop is cancelled.
    """
    timer = timer or RetryTimer()
    attempt_no = 0

    def _attempt() -> None:
        nonlocal attempt_no
        attempt_no += 1
        if cancel is not None and cancel.is_set():
            raise ConvergenceError(f"cancelled while waiting for {description}")
        r = R(attempt_no)
        try:
            check(r)
        except RETRYABLE_ERRORS as e:
            r.check(e)
        if r.failed:
            logger.debug("%s: attempt %d/%d failed: %s", description, attempt_no, timer.attempts, r.failures)
            raise _AttemptFailed(r.failures)

    stop = stop_after_attempt(timer.attempts)
    kwargs: dict[str, Any] = {}
    if cancel is not None:
        stop = stop | stop_when_event_set(cancel)
        kwargs["sleep"] = cancel.wait

    retrying = Retrying(
        stop=stop,
        wait=wait_fixed(timer.interval),
        retry=retry_if_exception_type(_AttemptFailed),
        reraise=True,
        **kwargs,
    )
    try:
        retrying(_attempt)
    except _AttemptFailed as e:
        if cancel is not None and cancel.is_set():
            raise ConvergenceError(f"cancelled while waiting for {description}", e.failures) from None
        raise ConvergenceError(
            f"{description} not reached after {attempt_no} attempts", e.failures,
        ) from None
