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

"""Test-scoped log lines."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from rich.markup import escape

from mesh_acceptance import console, logger
from mesh_acceptance.handle import TestHandle


def log(t: TestHandle, message: str) -> None:
    """Print a timestamped line tagged with the test name."""
    ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    console.print(f"[dim]{ts}[/dim] [cyan]{escape(t.name)}[/cyan] {escape(message)}")
    logger.debug("%s: %s", t.name, message)


def logf(t: TestHandle, fmt: str, *args: Any) -> None:
    log(t, fmt % args if args else fmt)
