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

"""Exception hierarchy shared by the framework."""

from __future__ import annotations


class AcceptanceError(Exception):
    """Base class for every failure raised by the framework."""


class SetupError(AcceptanceError):
    """Malformed configuration or an unreachable cluster. Never retried."""


class ContextNotFoundError(SetupError, LookupError):
    """A test asked the environment for a context that was never registered."""


class OperationError(AcceptanceError):
    """An install, upgrade, deploy or kubectl call failed outright."""


class LifecycleError(OperationError):
    """A ConnectHelper phase was called out of order."""


class ConvergenceError(AcceptanceError):
    """Cluster state did not reach the expected condition before retries ran out.

    Attributes:
        failures: Failure messages recorded by the last attempt.
    """

    def __init__(self, message: str, failures: list[str] | None = None) -> None:
        self.failures = list(failures or [])
        if self.failures:
            message = message + ":\n  " + "\n  ".join(self.failures)
        super().__init__(message)
