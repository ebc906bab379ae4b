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

"""Shared fixtures for unit tests. Nothing here talks to a cluster."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import yaml

from mesh_acceptance.config import RetryConfig, TestConfig
from mesh_acceptance.environment import KubectlOptions
from mesh_acceptance.handle import TestHandle


def _kubeconfig(current: str = "ctx-a") -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Config",
        "current-context": current,
        "clusters": [
            {"name": "cluster-a", "cluster": {"server": "https://127.0.0.1:6443"}},
            {"name": "cluster-b", "cluster": {"server": "https://127.0.0.1:7443"}},
        ],
        "users": [
            {"name": "user-a", "user": {"token": "token-a"}},
            {"name": "user-b", "user": {"token": "token-b"}},
        ],
        "contexts": [
            {"name": "ctx-a", "context": {"cluster": "cluster-a", "user": "user-a", "namespace": "teamA"}},
            {"name": "ctx-b", "context": {"cluster": "cluster-b", "user": "user-b"}},
        ],
    }


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's ACCEPTANCE_* and KUBECONFIG settings out of unit tests."""
    for key in list(os.environ):
        if key.startswith("ACCEPTANCE_") or key == "KUBECONFIG":
            monkeypatch.delenv(key)


@pytest.fixture
def kubeconfig_file(tmp_path: Path) -> Path:
    """A kubeconfig whose current context ``ctx-a`` records namespace ``teamA``."""
    path = tmp_path / "kubeconfig"
    path.write_text(yaml.safe_dump(_kubeconfig()))
    return path


@pytest.fixture
def fast_cfg() -> TestConfig:
    """Test config whose polling loops give up quickly and never sleep."""
    return TestConfig(
        retry=RetryConfig(
            attempts=3,
            interval=0,
            connectivity_attempts=3,
            connectivity_interval=0,
            pod_ready_attempts=3,
            pod_ready_interval=0,
        ),
    )


@pytest.fixture
def t() -> TestHandle:
    return TestHandle("TestUnit")


@pytest.fixture
def core_v1() -> MagicMock:
    return MagicMock()


@pytest.fixture
def ctx(core_v1: MagicMock) -> MagicMock:
    """Stand-in for a KubernetesContext resolved to namespace ``ns``."""
    mock_ctx = MagicMock()
    mock_ctx.kubectl_options.return_value = KubectlOptions(context_name="ctx-a", namespace="ns")
    mock_ctx.core_v1.return_value = core_v1
    return mock_ctx
