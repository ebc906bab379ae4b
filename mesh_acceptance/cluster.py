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

"""Mesh releases: install, upgrade, and uninstall via helm or the installer CLI."""

from __future__ import annotations

import base64
import json
from collections.abc import Callable
from typing import Protocol

import sh
from kubernetes.client.exceptions import ApiException
from rich.panel import Panel

from mesh_acceptance import console
from mesh_acceptance.catalog import CatalogClient, PortForward
from mesh_acceptance.config import TestConfig, helm_values_from_config
from mesh_acceptance.constants import (
    CLI_RELEASE_NAME,
    CONSUL_BOOTSTRAP_TOKEN_SUFFIX,
    CONSUL_CA_CERT_SUFFIX,
    CONSUL_HTTP_PORT,
    CONSUL_HTTPS_PORT,
    CONSUL_SERVER_POD_SUFFIX,
    DEFAULT_HELM_REPO,
    DEFAULT_HELM_REPO_URL,
    DEFAULT_RELEASE_HELM_VALUES,
    LABEL_RELEASE,
    MESH_CHART_NAME,
)
from mesh_acceptance.environment import KubernetesContext
from mesh_acceptance.errors import OperationError
from mesh_acceptance.handle import TestHandle
from mesh_acceptance.helpers import helm_set_args, merge_helm_values
from mesh_acceptance.k8s import wait_for_all_pods_to_be_ready
from mesh_acceptance.log import log, logf
from mesh_acceptance.retry import RetryTimer


class Cluster(Protocol):
    """An installed (or about to be installed) mesh release."""

    release_name: str

    def create(self) -> None: ...

    def upgrade(self, helm_values: dict[str, str]) -> None: ...

    def catalog_client(self, secure: bool) -> CatalogClient: ...

    def destroy(self) -> None: ...


ClusterGenerator = Callable[[TestHandle, dict[str, str], KubernetesContext, TestConfig, str], Cluster]


def resource_prefix(release_name: str) -> str:
    """Prefix the chart puts on resource names for *release_name*.

    The chart drops its own name from the prefix when the release name already contains it.
    """
    if MESH_CHART_NAME in release_name:
        return release_name
    return f"{release_name}-{MESH_CHART_NAME}"


def _run(cmd: sh.Command, phase: str, *args: str, merge_stderr: bool = True) -> str:
    """Run *cmd* and return its output, raising ``OperationError`` naming *phase* on failure.

    Commands whose stdout is parsed pass ``merge_stderr=False`` so warnings stay out of it.
    """
    try:
        if merge_stderr:
            return str(cmd(*args, _err_to_out=True))
        return str(cmd(*args))
    except sh.ErrorReturnCode as e:
        output = (e.stdout if merge_stderr else e.stderr).decode(errors="replace").strip()
        raise OperationError(f"{phase} failed: {output}") from e


class _MeshCluster:
    """Behaviour shared by both ways of provisioning a release."""

    def __init__(
        self,
        t: TestHandle,
        helm_values: dict[str, str],
        ctx: KubernetesContext,
        cfg: TestConfig,
        release_name: str,
    ) -> None:
        self.t = t
        self.ctx = ctx
        self.cfg = cfg
        self.release_name = release_name
        self.helm_values = merge_helm_values(DEFAULT_RELEASE_HELM_VALUES, helm_values_from_config(cfg), helm_values)

    @property
    def namespace(self) -> str:
        return self.ctx.kubectl_options().namespace

    def _wait_for_pods(self) -> None:
        wait_for_all_pods_to_be_ready(
            self.t,
            self.ctx.core_v1(),
            self.namespace,
            f"{LABEL_RELEASE}={self.release_name}",
            RetryTimer.pod_ready(self.cfg.retry),
        )

    def _read_secret(self, name: str, key: str) -> str:
        try:
            secret = self.ctx.core_v1().read_namespaced_secret(name, self.namespace)
        except ApiException as e:
            raise OperationError(f"reading secret {name} failed: {e.reason}") from e
        data = secret.data or {}
        if key not in data:
            raise OperationError(f"secret {name} has no key {key}")
        return base64.b64decode(data[key]).decode()

    def catalog_client(self, secure: bool) -> CatalogClient:
        """Port-forward to the first server and return a client for its HTTP API.

        With *secure* the client talks TLS, trusting the release CA, and sends the
        bootstrap ACL token. The port-forward is closed when the test finishes.
        """
        prefix = resource_prefix(self.release_name)
        remote_port = CONSUL_HTTPS_PORT if secure else CONSUL_HTTP_PORT
        forward = PortForward(self.ctx.kubectl_options(), f"{prefix}-{CONSUL_SERVER_POD_SUFFIX}", remote_port)
        local_port = forward.start()
        self.t.add_cleanup(forward.close)

        if not secure:
            client = CatalogClient(f"http://127.0.0.1:{local_port}")
        else:
            client = CatalogClient(
                f"https://127.0.0.1:{local_port}",
                token=self._read_secret(f"{prefix}-{CONSUL_BOOTSTRAP_TOKEN_SUFFIX}", "token"),
                ca_pem=self._read_secret(f"{prefix}-{CONSUL_CA_CERT_SUFFIX}", "tls.crt"),
            )
        self.t.add_cleanup(client.close)
        return client

    def _delete_leftovers(self) -> None:
        """Delete PVCs, secrets and service accounts the release leaves behind."""
        core_v1 = self.ctx.core_v1()
        selector = f"{LABEL_RELEASE}={self.release_name}"
        core_v1.delete_collection_namespaced_persistent_volume_claim(self.namespace, label_selector=selector)
        core_v1.delete_collection_namespaced_secret(self.namespace, label_selector=selector)
        core_v1.delete_collection_namespaced_service_account(self.namespace, label_selector=selector)


class HelmCluster(_MeshCluster):
    """Release installed straight from the helm chart."""

    def _helm(self, phase: str, *args: str, merge_stderr: bool = True) -> str:
        return _run(sh.helm, phase, *args, *self.ctx.kubectl_options().helm_args(), merge_stderr=merge_stderr)

    def _ensure_helm_repo(self) -> None:
        if self.cfg.helm_chart.startswith(f"{DEFAULT_HELM_REPO}/"):
            _run(sh.helm, "helm repo add", "repo", "add", DEFAULT_HELM_REPO, DEFAULT_HELM_REPO_URL, "--force-update")
            _run(sh.helm, "helm repo update", "repo", "update", DEFAULT_HELM_REPO)

    def _check_for_prior_installations(self) -> None:
        """Refuse to install on top of another mesh release in the cluster."""
        output = self._helm("helm list", "list", "--all-namespaces", "-o", "json", merge_stderr=False)
        try:
            releases = json.loads(output or "[]")
        except json.JSONDecodeError as e:
            raise OperationError(f"helm list returned invalid JSON: {e}") from e
        existing = [r["name"] for r in releases if str(r.get("chart", "")).startswith(f"{MESH_CHART_NAME}-")]
        if existing:
            raise OperationError(f"cluster already has mesh releases installed: {', '.join(existing)}")

    def _chart_args(self) -> list[str]:
        args = [self.cfg.helm_chart, "--timeout", self.cfg.helm_timeout]
        if self.cfg.helm_chart_version:
            args += ["--version", self.cfg.helm_chart_version]
        return args

    def create(self) -> None:
        """Install the release and wait for its pods.

        Uninstalling is registered on the test handle before installing so a
        half-finished install is still cleaned up.

        Raises:
            OperationError: If helm fails or another release is already installed.
        """
        console.print(Panel.fit(f"Installing {self.release_name} with helm", style="bold blue"))
        self._check_for_prior_installations()
        self._ensure_helm_repo()

        self.t.add_cleanup(self.destroy, skip_on_failure=self.cfg.no_cleanup_on_failure)
        self._helm(
            f"helm install {self.release_name}",
            "install", self.release_name, *self._chart_args(), *helm_set_args(self.helm_values),
        )
        self._wait_for_pods()
        console.print(f"[green]✅ {self.release_name} installed[/green]")

    def upgrade(self, helm_values: dict[str, str]) -> None:
        """Upgrade the release in place with *helm_values* layered over the install values.

        Raises:
            OperationError: If helm fails.
        """
        console.print(Panel.fit(f"Upgrading {self.release_name} with helm", style="bold blue"))
        self.helm_values = merge_helm_values(self.helm_values, helm_values)
        self._helm(
            f"helm upgrade {self.release_name}",
            "upgrade", self.release_name, *self._chart_args(), *helm_set_args(self.helm_values),
        )
        self._wait_for_pods()
        console.print(f"[green]✅ {self.release_name} upgraded[/green]")

    def destroy(self) -> None:
        logf(self.t, "uninstalling release %s", self.release_name)
        try:
            sh.helm("uninstall", self.release_name, "--wait", *self.ctx.kubectl_options().helm_args())
        except sh.ErrorReturnCode_1:
            console.print(f"[yellow]   Release {self.release_name} not found or already uninstalled[/yellow]")
        except sh.ErrorReturnCode as e:
            raise OperationError(f"helm uninstall {self.release_name} failed: {e.stderr.decode(errors='replace')}") from e
        self._delete_leftovers()


class CLICluster(_MeshCluster):
    """Release installed through the mesh installer CLI. Its release name is fixed."""

    def _cli(self, phase: str, *args: str) -> str:
        options = self.ctx.kubectl_options()
        flags = ["-namespace", options.namespace]
        if options.config_path:
            flags += ["-kubeconfig", options.config_file()]
        if options.context_name:
            flags += ["-context", options.context_name]
        return _run(sh.Command(self.cfg.installer_cli), phase, *args, *flags)

    def _set_args(self) -> list[str]:
        return [item for key in sorted(self.helm_values) for item in ("-set", f"{key}={self.helm_values[key]}")]

    def create(self) -> None:
        """Install the release with the installer CLI and wait for its pods.

        Raises:
            OperationError: If the CLI fails.
        """
        console.print(Panel.fit(f"Installing {self.release_name} with {self.cfg.installer_cli}", style="bold blue"))
        self.t.add_cleanup(self.destroy, skip_on_failure=self.cfg.no_cleanup_on_failure)
        self._cli(
            f"{self.cfg.installer_cli} install",
            "install", "-auto-approve", "-timeout", self.cfg.helm_timeout, *self._set_args(),
        )
        self._wait_for_pods()
        console.print(f"[green]✅ {self.release_name} installed[/green]")

    def upgrade(self, helm_values: dict[str, str]) -> None:
        """Upgrade the release in place through the installer CLI.

        Raises:
            OperationError: If the CLI fails.
        """
        console.print(Panel.fit(f"Upgrading {self.release_name} with {self.cfg.installer_cli}", style="bold blue"))
        self.helm_values = merge_helm_values(self.helm_values, helm_values)
        self._cli(
            f"{self.cfg.installer_cli} upgrade",
            "upgrade", "-auto-approve", "-timeout", self.cfg.helm_timeout, *self._set_args(),
        )
        self._wait_for_pods()
        console.print(f"[green]✅ {self.release_name} upgraded[/green]")

    def destroy(self) -> None:
        log(self.t, f"uninstalling release {self.release_name} with {self.cfg.installer_cli}")
        self._cli(f"{self.cfg.installer_cli} uninstall", "uninstall", "-auto-approve", "-wipe-data")
        self._delete_leftovers()


def new_helm_cluster(
    t: TestHandle, helm_values: dict[str, str], ctx: KubernetesContext, cfg: TestConfig, release_name: str,
) -> HelmCluster:
    return HelmCluster(t, helm_values, ctx, cfg, release_name)


def new_cli_cluster(
    t: TestHandle, helm_values: dict[str, str], ctx: KubernetesContext, cfg: TestConfig, release_name: str,
) -> CLICluster:
    """Installer-CLI release. *release_name* must be the CLI's fixed name."""
    if release_name != CLI_RELEASE_NAME:
        raise OperationError(f"installer CLI always installs release {CLI_RELEASE_NAME!r}, got {release_name!r}")
    return CLICluster(t, helm_values, ctx, cfg, release_name)
