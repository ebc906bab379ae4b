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

"""Tests for the test environment and context resolution."""

from __future__ import annotations

import threading
from pathlib import Path
from unittest.mock import patch

import pytest
from kubernetes import client as k8s_client

from mesh_acceptance.config import TestConfig
from mesh_acceptance.environment import (
    KubectlOptions,
    KubernetesContext,
    TestEnvironment,
    kube_context_from_options,
    resolve_namespace,
)
from mesh_acceptance.errors import ContextNotFoundError, SetupError


class TestKubectlOptions:
    def test_kubectl_args_with_explicit_path(self, tmp_path: Path) -> None:
        options = KubectlOptions(context_name="ctx-a", config_path=str(tmp_path / "kc"), namespace="ns")
        assert options.kubectl_args() == [
            "--kubeconfig", str(tmp_path / "kc"), "--context", "ctx-a", "--namespace", "ns",
        ]

    def test_helm_args_spell_kube_context(self) -> None:
        options = KubectlOptions(context_name="ctx-a", namespace="ns")
        assert options.helm_args() == ["--kube-context", "ctx-a", "--namespace", "ns"]

    def test_empty_fields_are_omitted(self) -> None:
        assert KubectlOptions().kubectl_args() == []

    def test_config_file_falls_back_to_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBECONFIG", "/tmp/other-kubeconfig")
        assert KubectlOptions().config_file() == "/tmp/other-kubeconfig"

    def test_config_file_prefers_explicit_path(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBECONFIG", "/tmp/other-kubeconfig")
        assert KubectlOptions(config_path="/tmp/mine").config_file() == "/tmp/mine"


class TestNamespaceResolution:
    def test_namespace_from_current_context(self, kubeconfig_file: Path) -> None:
        ctx = KubernetesContext(kubeconfig=str(kubeconfig_file))
        assert ctx.kubectl_options().namespace == "teamA"

    def test_context_without_namespace_uses_default(self, kubeconfig_file: Path) -> None:
        ctx = KubernetesContext(kubeconfig=str(kubeconfig_file), kube_context="ctx-b")
        assert ctx.kubectl_options().namespace == "default"

    def test_explicit_namespace_skips_kubeconfig(self, tmp_path: Path) -> None:
        ctx = KubernetesContext(namespace="explicit", kubeconfig=str(tmp_path / "missing"))
        options = ctx.kubectl_options()
        assert options.namespace == "explicit"
        assert options.config_path == str(tmp_path / "missing")

    def test_missing_kubeconfig_is_a_setup_error(self, tmp_path: Path) -> None:
        ctx = KubernetesContext(kubeconfig=str(tmp_path / "missing"))
        with pytest.raises(SetupError, match="failed to load kubeconfig"):
            ctx.kubectl_options()

    def test_resolve_namespace_for_named_context(self, kubeconfig_file: Path) -> None:
        options = KubectlOptions(context_name="ctx-a", config_path=str(kubeconfig_file))
        assert resolve_namespace(options) == "teamA"


class TestKubeContextFromOptions:
    def test_explicit_context_wins(self, tmp_path: Path) -> None:
        options = KubectlOptions(context_name="ctx-b", config_path=str(tmp_path / "missing"))
        assert kube_context_from_options(options) == "ctx-b"

    def test_current_context(self, kubeconfig_file: Path) -> None:
        assert kube_context_from_options(KubectlOptions(config_path=str(kubeconfig_file))) == "ctx-a"


class TestMemoization:
    def test_kubectl_options_is_resolved_once(self, kubeconfig_file: Path) -> None:
        ctx = KubernetesContext(kubeconfig=str(kubeconfig_file))
        first = ctx.kubectl_options()
        kubeconfig_file.unlink()
        assert ctx.kubectl_options() is first

    def test_kubernetes_client_is_built_once(self, kubeconfig_file: Path) -> None:
        ctx = KubernetesContext(kubeconfig=str(kubeconfig_file), kube_context="ctx-b")
        sentinel = object()
        with patch("mesh_acceptance.environment.new_client_from_config", return_value=sentinel) as build:
            assert ctx.kubernetes_client() is sentinel
            assert ctx.kubernetes_client() is sentinel
        build.assert_called_once_with(config_file=str(kubeconfig_file), context="ctx-b")

    def test_concurrent_first_calls_share_one_object(self, kubeconfig_file: Path) -> None:
        ctx = KubernetesContext(kubeconfig=str(kubeconfig_file))
        barrier = threading.Barrier(8)
        results: list[KubectlOptions] = []
        lock = threading.Lock()

        def _resolve() -> None:
            barrier.wait()
            options = ctx.kubectl_options()
            with lock:
                results.append(options)

        threads = [threading.Thread(target=_resolve) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 8
        assert all(options is results[0] for options in results)

    def test_real_client_targets_the_selected_context(self, kubeconfig_file: Path) -> None:
        ctx = KubernetesContext(kubeconfig=str(kubeconfig_file), kube_context="ctx-b")
        api_client = ctx.kubernetes_client()
        assert isinstance(api_client, k8s_client.ApiClient)
        assert api_client.configuration.host == "https://127.0.0.1:7443"

    def test_construction_fields_are_read_only(self) -> None:
        ctx = KubernetesContext(namespace="ns")
        with pytest.raises(AttributeError):
            ctx.namespace = "other"  # type: ignore[misc]


class TestTestEnvironment:
    def test_single_cluster_has_only_default(self) -> None:
        env = TestEnvironment.from_config(TestConfig(kube_namespace="ns"))
        assert env.names() == ["default"]
        assert env.default_context().namespace == "ns"

    def test_multi_cluster_adds_secondary(self) -> None:
        cfg = TestConfig(enable_multi_cluster=True, secondary_kube_context="other", secondary_kube_namespace="ns2")
        env = TestEnvironment.from_config(cfg)
        assert sorted(env.names()) == ["default", "secondary"]
        assert env.context("secondary").kube_context == "other"

    def test_unknown_context_raises_lookup_error(self) -> None:
        env = TestEnvironment.from_config(TestConfig())
        with pytest.raises(ContextNotFoundError, match="requested context secondary not found") as exc:
            env.context("secondary")
        assert isinstance(exc.value, LookupError)

    def test_from_context(self) -> None:
        ctx = KubernetesContext(namespace="ns")
        assert TestEnvironment.from_context(ctx).default_context() is ctx

    def test_default_context_is_required(self) -> None:
        with pytest.raises(SetupError):
            TestEnvironment({"secondary": KubernetesContext()})

    def test_registry_is_immutable_after_construction(self) -> None:
        contexts = {"default": KubernetesContext()}
        env = TestEnvironment(contexts)
        contexts["secondary"] = KubernetesContext()
        assert env.names() == ["default"]
