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

"""Configuration classes, helm values derived from config, and display."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.panel import Panel

from mesh_acceptance import console
from mesh_acceptance.constants import (
    DEFAULT_CONNECTIVITY_ATTEMPTS,
    DEFAULT_CONNECTIVITY_INTERVAL_SECONDS,
    DEFAULT_HELM_CHART,
    DEFAULT_HELM_TIMEOUT,
    DEFAULT_INSTALLER_CLI,
    DEFAULT_POD_READY_ATTEMPTS,
    DEFAULT_POD_READY_INTERVAL_SECONDS,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_INTERVAL_SECONDS,
    HELM_KEY_IMAGE,
    HELM_KEY_IMAGE_K8S,
    HELM_KEY_LICENSE_SECRET_KEY,
    HELM_KEY_LICENSE_SECRET_NAME,
    HELM_KEY_OPENSHIFT,
    HELM_KEY_PSP,
    HELM_KEY_TPROXY,
)


# ============================================================================
# Configuration classes
# ============================================================================

class RetryConfig(BaseSettings):
    """Polling budgets, auto-loaded from ACCEPTANCE_RETRY_* env vars.

    Attributes:
        attempts: Attempts for registration and deregistration checks.
        interval: Seconds between those attempts.
        connectivity_attempts: Attempts for a static-server connectivity check.
        connectivity_interval: Seconds between connectivity attempts.
        pod_ready_attempts: Attempts while waiting for release pods to be ready.
        pod_ready_interval: Seconds between pod readiness attempts.
    """

    model_config = SettingsConfigDict(env_prefix="ACCEPTANCE_RETRY_", extra="ignore")

    attempts: int = Field(default=DEFAULT_RETRY_ATTEMPTS, ge=1)
    interval: float = Field(default=DEFAULT_RETRY_INTERVAL_SECONDS, ge=0)
    connectivity_attempts: int = Field(default=DEFAULT_CONNECTIVITY_ATTEMPTS, ge=1)
    connectivity_interval: float = Field(default=DEFAULT_CONNECTIVITY_INTERVAL_SECONDS, ge=0)
    pod_ready_attempts: int = Field(default=DEFAULT_POD_READY_ATTEMPTS, ge=1)
    pod_ready_interval: float = Field(default=DEFAULT_POD_READY_INTERVAL_SECONDS, ge=0)


class TestConfig(BaseSettings):
    """Global acceptance test configuration, auto-loaded from ACCEPTANCE_* env vars.

    Empty strings for kubeconfig, context and namespace mean "resolve from the
    kubeconfig file" rather than "use the empty value".

    Attributes:
        kubeconfig: Path to the primary kubeconfig, or empty for the default.
        kube_context: Context name within the primary kubeconfig.
        kube_namespace: Namespace to run tests in on the primary cluster.
        enable_multi_cluster: Whether a secondary cluster is available.
        secondary_kubeconfig: Path to the secondary kubeconfig.
        secondary_kube_context: Context name within the secondary kubeconfig.
        secondary_kube_namespace: Namespace on the secondary cluster.
        enable_enterprise: Whether to install the enterprise image.
        enterprise_license_secret_name: Secret holding the enterprise license.
        enterprise_license_secret_key: Key of the license within that secret.
        enable_openshift: Whether the cluster is OpenShift.
        enable_pod_security_policies: Whether PSPs are enforced in the cluster.
        enable_transparent_proxy: Whether workloads use transparent proxying.
        consul_image: Override for the mesh server/client image.
        consul_k8s_image: Override for the mesh control-plane image.
        helm_chart: Chart reference or local path to install.
        helm_chart_version: Chart version, or empty for the latest.
        helm_timeout: Timeout passed to helm install/upgrade.
        installer_cli: Name of the mesh installer CLI binary.
        no_cleanup_on_failure: Keep resources around when a test fails.
        debug_directory: Where to write pod logs and events on failure.
        retry: Polling budgets.
    """

    __test__ = False

    model_config = SettingsConfigDict(env_prefix="ACCEPTANCE_", extra="ignore")

    kubeconfig: str = ""
    kube_context: str = ""
    kube_namespace: str = ""

    enable_multi_cluster: bool = False
    secondary_kubeconfig: str = ""
    secondary_kube_context: str = ""
    secondary_kube_namespace: str = ""

    enable_enterprise: bool = False
    enterprise_license_secret_name: str = ""
    enterprise_license_secret_key: str = ""
    enable_openshift: bool = False
    enable_pod_security_policies: bool = False
    enable_transparent_proxy: bool = False

    consul_image: str = ""
    consul_k8s_image: str = ""
    helm_chart: str = DEFAULT_HELM_CHART
    helm_chart_version: str = ""
    helm_timeout: str = Field(default=DEFAULT_HELM_TIMEOUT, pattern=r"^\d+[smh]$")
    installer_cli: str = DEFAULT_INSTALLER_CLI

    no_cleanup_on_failure: bool = False
    debug_directory: Path | None = None

    retry: RetryConfig = Field(default_factory=RetryConfig)


# ============================================================================
# Helm values
# ============================================================================

def helm_values_from_config(cfg: TestConfig) -> dict[str, str]:
    """Build the helm values every install carries regardless of test case.

    Args:
        cfg: Global test configuration.

    Returns:
        Mapping of helm value keys to string values.
    """
    overrides: list[tuple[bool, str, str]] = [
        (bool(cfg.consul_image), HELM_KEY_IMAGE, cfg.consul_image),
        (bool(cfg.consul_k8s_image), HELM_KEY_IMAGE_K8S, cfg.consul_k8s_image),
        (cfg.enable_enterprise and bool(cfg.enterprise_license_secret_name),
         HELM_KEY_LICENSE_SECRET_NAME, cfg.enterprise_license_secret_name),
        (cfg.enable_enterprise and bool(cfg.enterprise_license_secret_key),
         HELM_KEY_LICENSE_SECRET_KEY, cfg.enterprise_license_secret_key),
        (cfg.enable_openshift, HELM_KEY_OPENSHIFT, "true"),
        (cfg.enable_pod_security_policies, HELM_KEY_PSP, "true"),
        (cfg.enable_transparent_proxy, HELM_KEY_TPROXY, "true"),
    ]
    return {key: value for enabled, key, value in overrides if enabled}


# ============================================================================
# Config resolution
# ============================================================================

def resolve_config(**overrides: Any) -> TestConfig:
    """Merge explicit overrides, environment variables, and defaults.

    Resolution priority: explicit overrides > ACCEPTANCE_* environment variables > defaults.
    Overrides whose value is None are ignored so callers can pass unset options through.

    Args:
        **overrides: TestConfig field names mapped to override values.

    Returns:
        The resolved configuration.
    """
    update = {key: value for key, value in overrides.items() if value is not None}
    # Init kwargs outrank env sources in pydantic-settings and are validated the same way.
    return TestConfig(**update)


# ============================================================================
# Display
# ============================================================================

def display_config(cfg: TestConfig) -> None:
    """Print the resolved configuration.

    Args:
        cfg: Global test configuration.
    """
    console.print(Panel.fit("Configuration", style="bold blue"))

    console.print("[yellow]Primary cluster:[/yellow]")
    console.print(f"  kubeconfig      : {cfg.kubeconfig or '(default)'}")
    console.print(f"  context         : {cfg.kube_context or '(current-context)'}")
    console.print(f"  namespace       : {cfg.kube_namespace or '(from context)'}")

    if cfg.enable_multi_cluster:
        console.print("[yellow]Secondary cluster:[/yellow]")
        console.print(f"  kubeconfig      : {cfg.secondary_kubeconfig or '(default)'}")
        console.print(f"  context         : {cfg.secondary_kube_context or '(current-context)'}")
        console.print(f"  namespace       : {cfg.secondary_kube_namespace or '(from context)'}")

    console.print("[yellow]Installation:[/yellow]")
    console.print(f"  helm_chart      : {cfg.helm_chart}")
    console.print(f"  chart_version   : {cfg.helm_chart_version or '(latest)'}")
    console.print(f"  installer_cli   : {cfg.installer_cli}")
    console.print(f"  tproxy          : {cfg.enable_transparent_proxy}")
    for key, value in helm_values_from_config(cfg).items():
        console.print(f"  {key} = {value}")

    console.print("[yellow]Retries:[/yellow]")
    console.print(f"  convergence     : {cfg.retry.attempts} x {cfg.retry.interval}s")
    console.print(f"  connectivity    : {cfg.retry.connectivity_attempts} x {cfg.retry.connectivity_interval}s")
    console.print(f"  pod readiness   : {cfg.retry.pod_ready_attempts} x {cfg.retry.pod_ready_interval}s")
