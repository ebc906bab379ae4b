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

"""Fixtures for acceptance tests: suite configuration, contexts and test handles."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

import pytest

from mesh_acceptance.config import TestConfig, display_config, resolve_config
from mesh_acceptance.environment import KubernetesContext, TestEnvironment
from mesh_acceptance.handle import TestHandle
from mesh_acceptance.helpers import require_command


@dataclass(frozen=True)
class Suite:
    """Configuration and environment shared by every acceptance test in a run."""

    config: TestConfig
    environment: TestEnvironment


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo) -> Iterator[None]:
    outcome = yield
    rep = outcome.get_result()
    setattr(item, f"rep_{rep.when}", rep)


@pytest.fixture(scope="session")
def suite(pytestconfig: pytest.Config) -> Suite:
    overrides = {name: pytestconfig.getoption(name, default=None) for name in TestConfig.model_fields}
    cfg = resolve_config(**overrides)
    for cmd in ("kubectl", "helm"):
        require_command(cmd)
    display_config(cfg)
    return Suite(config=cfg, environment=TestEnvironment.from_config(cfg))


@pytest.fixture
def cfg(suite: Suite) -> TestConfig:
    return suite.config


@pytest.fixture
def env(suite: Suite) -> TestEnvironment:
    return suite.environment


@pytest.fixture
def ctx(env: TestEnvironment) -> KubernetesContext:
    return env.default_context()


@pytest.fixture
def t(request: pytest.FixtureRequest) -> Iterator[TestHandle]:
    """Handle whose cleanups run after the test, skipping kept resources if it failed."""
    handle = TestHandle(request.node.name)
    yield handle
    handle.cancel.set()
    rep = getattr(request.node, "rep_call", None)
    if rep is None or rep.failed:
        handle.mark_failed()
    handle.run_cleanups()
