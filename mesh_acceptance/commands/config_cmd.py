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

"""Config subcommand."""

from __future__ import annotations

import typer

from mesh_acceptance.config import display_config, resolve_config


def config(
    kubeconfig: str | None = typer.Option(None, "--kubeconfig", help="Path to the primary kubeconfig"),
    kube_context: str | None = typer.Option(None, "--kube-context", help="Context within the primary kubeconfig"),
    namespace: str | None = typer.Option(None, "--namespace", help="Namespace on the primary cluster"),
    multi_cluster: bool | None = typer.Option(None, "--multi-cluster/--single-cluster", help="Secondary cluster"),
) -> None:
    """Print the configuration tests would run with."""
    cfg = resolve_config(
        kubeconfig=kubeconfig,
        kube_context=kube_context,
        kube_namespace=namespace,
        enable_multi_cluster=multi_cluster,
    )
    display_config(cfg)
