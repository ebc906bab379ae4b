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

"""Tests for test handles and sub-case execution."""

from __future__ import annotations

import threading
import time

import pytest

from mesh_acceptance import console, retry
from mesh_acceptance.errors import AcceptanceError, OperationError
from mesh_acceptance.handle import TestHandle, run_subcases
from mesh_acceptance.retry import R, RetryTimer


class TestCleanups:
    def test_run_last_in_first_out(self) -> None:
        t = TestHandle("case")
        order: list[str] = []
        t.add_cleanup(lambda: order.append("release"))
        t.add_cleanup(lambda: order.append("workload"))

        t.run_cleanups()

        assert order == ["workload", "release"]

    def test_skip_on_failure_keeps_resources(self) -> None:
        t = TestHandle("case")
        order: list[str] = []
        t.add_cleanup(lambda: order.append("always"))
        t.add_cleanup(lambda: order.append("kept"), skip_on_failure=True)
        t.mark_failed()

        t.run_cleanups()

        assert order == ["always"]

    def test_skip_on_failure_runs_when_passed(self) -> None:
        t = TestHandle("case")
        order: list[str] = []
        t.add_cleanup(lambda: order.append("kept"), skip_on_failure=True)

        t.run_cleanups()

        assert order == ["kept"]

    def test_failing_cleanup_does_not_stop_the_rest(self) -> None:
        t = TestHandle("case")
        order: list[str] = []

        def _broken() -> None:
            raise RuntimeError("uninstall failed")

        t.add_cleanup(lambda: order.append("first"))
        t.add_cleanup(_broken)

        with pytest.raises(OperationError, match="uninstall failed"):
            t.run_cleanups()
        assert order == ["first"]

    def test_cleanups_run_once(self) -> None:
        t = TestHandle("case")
        order: list[str] = []
        t.add_cleanup(lambda: order.append("x"))

        t.run_cleanups()
        t.run_cleanups()

        assert order == ["x"]

    def test_subtest_name(self) -> None:
        assert TestHandle("parent").subtest("child").name == "parent/child"


class TestRunSubcases:
    @pytest.mark.parametrize("parallel", [True, False])
    def test_all_pass(self, parallel: bool) -> None:
        seen: list[str] = []

        run_subcases(
            TestHandle("parent"),
            {"a": lambda t: seen.append(t.name), "b": lambda t: seen.append(t.name)},
            parallel=parallel,
        )

        assert sorted(seen) == ["parent/a", "parent/b"]

    @pytest.mark.parametrize("parallel", [True, False])
    def test_failure_does_not_stop_siblings(self, parallel: bool) -> None:
        parent = TestHandle("parent")
        cleaned: list[str] = []
        seen: list[str] = []

        def _fails(t: TestHandle) -> None:
            t.add_cleanup(lambda: cleaned.append(t.name))
            raise OperationError("install failed")

        def _passes(t: TestHandle) -> None:
            seen.append(t.name)

        with pytest.raises(AcceptanceError, match="1 of 2 sub-cases") as exc:
            run_subcases(parent, {"fails": _fails, "passes": _passes}, parallel=parallel)

        assert "fails: install failed" in str(exc.value)
        assert seen == ["parent/passes"]
        assert cleaned == ["parent/fails"]
        assert parent.failed

    def test_failed_subcase_keeps_skip_on_failure_resources(self) -> None:
        cleaned: list[str] = []

        def _fails(t: TestHandle) -> None:
            t.add_cleanup(lambda: cleaned.append("release"), skip_on_failure=True)
            raise OperationError("verification failed")

        with pytest.raises(AcceptanceError):
            run_subcases(TestHandle("parent"), {"fails": _fails})
        assert cleaned == []

    def test_no_cases(self) -> None:
        run_subcases(TestHandle("parent"), {})

    def test_failure_cancels_sibling_polls(self) -> None:
        polling = threading.Event()
        attempts: list[int] = []

        def _polls(t: TestHandle) -> None:
            def _never_ready(r: R) -> None:
                attempts.append(r.attempt)
                polling.set()
                r.errorf("not ready")

            retry.run(_never_ready, RetryTimer(attempts=100, interval=30), cancel=t.cancel, description="rollout")

        def _fails(t: TestHandle) -> None:
            assert polling.wait(5)
            raise OperationError("install failed")

        started = time.monotonic()
        with pytest.raises(AcceptanceError, match="2 of 2 sub-cases") as exc:
            run_subcases(TestHandle("parent"), {"polls": _polls, "fails": _fails})

        assert time.monotonic() - started < 10
        assert "polls: cancelled while waiting for rollout" in str(exc.value)
        assert len(attempts) == 1

    def test_cancelled_parent_cancels_subcases(self) -> None:
        parent = TestHandle("parent")
        parent.cancel.set()
        seen: list[bool] = []

        run_subcases(parent, {"a": lambda t: seen.append(t.cancel.is_set())})

        assert seen == [True]

    def test_subtest_shares_parent_cancel(self) -> None:
        parent = TestHandle("parent")
        child = parent.subtest("child")
        assert not child.cancel.is_set()
        parent.cancel.set()
        assert child.cancel.is_set()


class TestConsoleCapture:
    def test_nested_captures(self) -> None:
        with console.buffered() as outer:
            console.print("outer")
            with console.buffered() as inner:
                console.print("inner")
            console.print("outer again")

        assert inner.getvalue() == "inner\n"
        assert outer.getvalue() == "outer\nouter again\n"

    def test_subcase_output_is_captured_per_case(self) -> None:
        def _case(t: TestHandle) -> None:
            console.print(f"hello from {t.name}")

        with console.buffered() as parent:
            run_subcases(TestHandle("parent"), {"a": _case, "b": _case})

        output = parent.getvalue()
        assert output.index("hello from parent/a") < output.index("hello from parent/b")
