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

"""Contexts subcommand."""

from __future__ import annotations

import typer
from kubernetes.client.exceptions import ApiException
from rich.panel import Panel

from mesh_acceptance import console
from mesh_acceptance.config import resolve_config
from mesh_acceptance.environment import KubernetesContext, TestEnvironment, kube_context_from_options
from mesh_acceptance.errors import SetupError
from mesh_acceptance.handle import TestHandle, run_subcases


def _describe(ctx: KubernetesContext, check: bool):
    def _run(t: TestHandle) -> None:
        options = ctx.kubectl_options()
        console.print(f"[yellow]{t.name}:[/yellow]")
        console.print(f"  kubeconfig : {options.config_file()}")
        console.print(f"  context    : {kube_context_from_options(options)}")
        console.print(f"  namespace  : {options.namespace}")
        if check:
            try:
                ctx.core_v1().read_namespace(options.namespace)
            except ApiException as e:
                raise SetupError(f"namespace {options.namespace} is not reachable: {e.reason}") from e
            console.print("[green]  ✅ reachable[/green]")

    return _run


def contexts(
    kubeconfig: str | None = typer.Option(None, "--kubeconfig", help="Path to the primary kubeconfig"),
    kube_context: str | None = typer.Option(None, "--kube-context", help="Context within the primary kubeconfig"),
    namespace: str | None = typer.Option(None, "--namespace", help="Namespace on the primary cluster"),
    multi_cluster: bool | None = typer.Option(None, "--multi-cluster/--single-cluster", help="Secondary cluster"),
    check: bool = typer.Option(False, "--check", help="Also read the namespace through the API"),
) -> None:
    """Resolve and print every context tests can address."""
    cfg = resolve_config(
        kubeconfig=kubeconfig,
        kube_context=kube_context,
        kube_namespace=namespace,
        enable_multi_cluster=multi_cluster,
    )
    env = TestEnvironment.from_config(cfg)

    console.print(Panel.fit("Test contexts", style="bold blue"))
    cases = {name: _describe(env.context(name), check) for name in env.names()}
    run_subcases(TestHandle("contexts"), cases)
