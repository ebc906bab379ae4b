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

"""Command-line options shared by every test directory."""

from __future__ import annotations

import pytest


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("acceptance", "mesh acceptance tests")
    group.addoption("--acceptance", action="store_true", default=False,
                    help="Run acceptance tests against live clusters")

    for flag in ("kubeconfig", "kube-context", "kube-namespace",
                 "secondary-kubeconfig", "secondary-kube-context", "secondary-kube-namespace",
                 "consul-image", "consul-k8s-image", "helm-chart-version", "debug-directory"):
        group.addoption(f"--{flag}", default=None, help=f"Overrides ACCEPTANCE_{flag.upper().replace('-', '_')}")

    # None means "not given" so the environment variable still applies.
    for flag in ("enable-multi-cluster", "enable-enterprise", "enable-openshift",
                 "enable-pod-security-policies", "enable-transparent-proxy", "no-cleanup-on-failure"):
        group.addoption(f"--{flag}", action="store_const", const=True, default=None,
                        help=f"Overrides ACCEPTANCE_{flag.upper().replace('-', '_')}")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("--acceptance"):
        return
    skip = pytest.mark.skip(reason="needs --acceptance and a live cluster")
    for item in items:
        if "acceptance" in item.keywords:
            item.add_marker(skip)
