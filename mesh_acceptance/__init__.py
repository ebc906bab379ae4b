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

"""mesh_acceptance - acceptance test framework for mesh sidecar injection."""

from __future__ import annotations

import io
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from rich.console import Console

__version__ = "0.1.0"

CAPTURE_WIDTH = 160


class ThreadAwareConsole:
    """Console proxy that writes to the current thread's capture buffer, if any.

    Sub-cases run in worker threads and capture their output so the parent can
    print each one as a single block once it finishes.
    """

    def __init__(self, real_console: Console) -> None:
        object.__setattr__(self, "_real", real_console)
        object.__setattr__(self, "_local", threading.local())

    def _target(self) -> Console:
        captures = getattr(self._local, "captures", None)
        return captures[-1] if captures else self._real

    def __getattr__(self, name: str):
        return getattr(self._target(), name)

    @contextmanager
    def buffered(self, width: int = CAPTURE_WIDTH) -> Iterator[io.StringIO]:
        """Capture this thread's console output until the block exits.

        Captures nest; output inside an inner block goes only to the inner buffer.
        """
        buf = io.StringIO()
        captures = self._local.__dict__.setdefault("captures", [])
        captures.append(Console(file=buf, width=width))
        try:
            yield buf
        finally:
            captures.pop()


console = ThreadAwareConsole(Console(stderr=True))
logger = logging.getLogger("mesh_acceptance")
