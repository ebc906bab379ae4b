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

"""Per-test-case handle: identity, failure state, and deferred cleanup."""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed

from mesh_acceptance import console, logger
from mesh_acceptance.errors import AcceptanceError, OperationError


class TestHandle:
    """Identity and cleanup stack for one test case or sub-case.

    Cleanups run last-in first-out when the case finishes. A cleanup registered
    with ``skip_on_failure=True`` is left undone if the case failed, so the
    resources stay around for inspection.

    ``cancel`` is handed to every poll the case runs; setting it stops them
    before their next attempt.
    """

    __test__ = False

    def __init__(self, name: str, cancel: threading.Event | None = None) -> None:
        self.name = name
        self.failed = False
        self.cancel = cancel if cancel is not None else threading.Event()
        self._cleanups: list[tuple[Callable[[], None], bool]] = []
        self._lock = threading.Lock()

    def add_cleanup(self, fn: Callable[[], None], skip_on_failure: bool = False) -> None:
        """Register *fn* to run when the test case finishes."""
        with self._lock:
            self._cleanups.append((fn, skip_on_failure))

    def mark_failed(self) -> None:
        self.failed = True

    def run_cleanups(self) -> None:
        """Run registered cleanups in reverse order.

        Every cleanup runs even if an earlier one raised.

        Raises:
            OperationError: If one or more cleanups raised.
        """
        with self._lock:
            cleanups = list(reversed(self._cleanups))
            self._cleanups.clear()

        errors: list[str] = []
        for fn, skip_on_failure in cleanups:
            if skip_on_failure and self.failed:
                console.print(f"[yellow]⚠️  {self.name}: skipping cleanup because the test failed[/yellow]")
                continue
            try:
                fn()
            except Exception as e:
                logger.exception("cleanup for %s failed", self.name)
                errors.append(f"{getattr(fn, '__name__', repr(fn))}: {e}")
        if errors:
            raise OperationError(f"cleanup for {self.name} failed: " + "; ".join(errors))

    def subtest(self, name: str, cancel: threading.Event | None = None) -> TestHandle:
        return TestHandle(f"{self.name}/{name}", cancel=cancel if cancel is not None else self.cancel)


def run_subcases(
    t: TestHandle,
    cases: dict[str, Callable[[TestHandle], None]],
    parallel: bool = True,
) -> None:
    """Run named sub-cases, each with its own handle, and report all failures.

    Sub-cases run in threads when *parallel* is set; each one's console output is
    buffered and printed as a single block once it finishes. The sub-cases share
    one cancel event: the first failure sets it, so siblings stop polling instead
    of waiting out their attempts. It is also set if the parent is already
    cancelled or the run is interrupted.

    Args:
        t: Parent test handle.
        cases: Mapping of sub-case name to callable taking the sub-case handle.
        parallel: Whether to run sub-cases concurrently.

    Raises:
        AcceptanceError: Naming every sub-case that failed.
    """
    if not cases:
        return

    outputs: dict[str, str] = {}
    failures: dict[str, BaseException] = {}
    lock = threading.Lock()
    group_cancel = threading.Event()
    if t.cancel.is_set():
        group_cancel.set()

    def _run_case(name: str, fn: Callable[[TestHandle], None]) -> None:
        sub = t.subtest(name, cancel=group_cancel)
        error: BaseException | None = None
        with console.buffered() as buf:
            try:
                fn(sub)
            except Exception as e:
                sub.mark_failed()
                group_cancel.set()
                error = e
            try:
                sub.run_cleanups()
            except OperationError as e:
                error = error or e
        with lock:
            outputs[name] = buf.getvalue()
            if error is not None:
                failures[name] = error

    try:
        if parallel:
            with ThreadPoolExecutor(max_workers=len(cases)) as executor:
                futures = {executor.submit(_run_case, name, fn): name for name, fn in cases.items()}
                for future in as_completed(futures):
                    future.result()
        else:
            for name, fn in cases.items():
                _run_case(name, fn)
    except BaseException:
        group_cancel.set()
        raise

    for name in cases:
        if outputs.get(name):
            console.print(outputs[name], end="", markup=False, highlight=False)

    if failures:
        t.mark_failed()
        detail = "\n".join(f"  {name}: {err}" for name, err in failures.items())
        raise AcceptanceError(f"{len(failures)} of {len(cases)} sub-cases of {t.name} failed:\n{detail}")
