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

"""Cleanup subcommand."""

from __future__ import annotations

import typer
from rich.panel import Panel

from mesh_acceptance import console
from mesh_acceptance.cluster import new_cli_cluster, new_helm_cluster
from mesh_acceptance.config import resolve_config
from mesh_acceptance.environment import TestEnvironment
from mesh_acceptance.handle import TestHandle
from mesh_acceptance.helpers import require_command


def cleanup(
    release: str = typer.Argument(..., help="Release left behind by a failed test"),
    installer_cli: bool = typer.Option(False, "--cli", help="Release was installed with the installer CLI"),
    kubeconfig: str | None = typer.Option(None, "--kubeconfig", help="Path to the kubeconfig"),
    kube_context: str | None = typer.Option(None, "--kube-context", help="Context within the kubeconfig"),
    namespace: str | None = typer.Option(None, "--namespace", help="Namespace the release lives in"),
) -> None:
    """Uninstall a release and delete the PVCs, secrets and service accounts it left behind."""
    cfg = resolve_config(kubeconfig=kubeconfig, kube_context=kube_context, kube_namespace=namespace)
    ctx = TestEnvironment.from_config(cfg).default_context()
    t = TestHandle(f"cleanup/{release}")

    require_command(cfg.installer_cli if installer_cli else "helm")
    generator = new_cli_cluster if installer_cli else new_helm_cluster
    console.print(Panel.fit(f"Cleaning up {release} in {ctx.kubectl_options().namespace}", style="bold blue"))
    generator(t, {}, ctx, cfg, release).destroy()
    console.print(f"[green]✅ {release} cleaned up[/green]")
