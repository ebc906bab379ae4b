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

"""kubectl passthrough, kustomize deploys, connectivity checks and pod readiness."""

from __future__ import annotations

import re
from pathlib import Path

import sh
import yaml
from kubernetes import client as k8s_client

from mesh_acceptance import console
from mesh_acceptance.constants import (
    CURL_FAILURE_MESSAGES,
    KUBECTL_TIMEOUT_SECONDS,
    ROLLOUT_TIMEOUT,
    STATIC_CLIENT_DEPLOYMENT,
    STATIC_CLIENT_NAME,
)
from mesh_acceptance.environment import KubectlOptions
from mesh_acceptance.errors import OperationError
from mesh_acceptance.handle import TestHandle
from mesh_acceptance.log import logf
from mesh_acceptance.retry import R, RetryTimer, run

STATIC_SERVER_RESPONSE = "hello world"


# ============================================================================
# kubectl
# ============================================================================

def run_kubectl_e(options: KubectlOptions, *args: str, timeout: int = KUBECTL_TIMEOUT_SECONDS) -> tuple[bool, str]:
    """Run kubectl against *options* and return (success, combined output).

    Args:
        options: Connection options for the target cluster.
        *args: kubectl arguments (e.g. ``"get", "pods"``).
        timeout: Maximum seconds to wait for the command to complete.

    Returns:
        Tuple of (success, stdout and stderr combined).
    """
    try:
        result = sh.kubectl(*options.kubectl_args(), *args, _err_to_out=True, _timeout=timeout)
        return True, str(result)
    except sh.ErrorReturnCode as e:
        return False, e.stdout.decode(errors="replace")
    except sh.TimeoutException:
        return False, f"kubectl {' '.join(args)} timed out after {timeout}s"


def run_kubectl_and_get_output(t: TestHandle, options: KubectlOptions, *args: str) -> str:
    """Run kubectl and return its output.

    Raises:
        OperationError: If kubectl exits non-zero or times out.
    """
    logf(t, "Running command kubectl %s", " ".join(args))
    ok, output = run_kubectl_e(options, *args)
    if not ok:
        raise OperationError(f"kubectl {' '.join(args)} failed: {output.strip()}")
    return output


def run_kubectl(t: TestHandle, options: KubectlOptions, *args: str) -> None:
    run_kubectl_and_get_output(t, options, *args)


# ============================================================================
# Manifests
# ============================================================================

def _deployment_names(rendered: str) -> list[str]:
    return [
        doc["metadata"]["name"]
        for doc in yaml.safe_load_all(rendered)
        if isinstance(doc, dict) and doc.get("kind") == "Deployment"
    ]


def deploy_kustomize(
    t: TestHandle,
    options: KubectlOptions,
    no_cleanup_on_failure: bool,
    debug_directory: Path | None,
    kustomize_dir: str | Path,
) -> None:
    """Apply a kustomization and wait for its deployments to roll out.

    Deletion of the applied resources is registered on *t*; it is skipped when
    the test failed and *no_cleanup_on_failure* is set. Pod logs and events are
    written to *debug_directory* first if the test failed.

    Args:
        t: Test handle owning the cleanup.
        options: Connection options for the target cluster.
        no_cleanup_on_failure: Leave resources behind when the test failed.
        debug_directory: Where to write debug output on failure, or None.
        kustomize_dir: Directory containing a kustomization.yaml.

    Raises:
        OperationError: If applying or rolling out fails.
    """
    kustomize_dir = str(kustomize_dir)
    run_kubectl(t, options, "apply", "-k", kustomize_dir)

    t.add_cleanup(
        lambda: run_kubectl(t, options, "delete", "-k", kustomize_dir, "--ignore-not-found"),
        skip_on_failure=no_cleanup_on_failure,
    )

    deployments = _deployment_names(run_kubectl_and_get_output(t, options, "kustomize", kustomize_dir))
    for name in deployments:
        t.add_cleanup(lambda name=name: write_pods_debug_info_if_failed(t, options, debug_directory, f"app={name}"))

    for name in deployments:
        run_kubectl(t, options, "rollout", "status", f"deploy/{name}", f"--timeout={ROLLOUT_TIMEOUT}")


def write_pods_debug_info_if_failed(
    t: TestHandle,
    options: KubectlOptions,
    debug_directory: Path | None,
    label_selector: str,
) -> None:
    """Write pod manifests, logs and namespace events if *t* failed.

    Best effort: a kubectl failure here is reported and the rest is still written.
    """
    if not t.failed or debug_directory is None:
        return

    safe_test_name = re.sub(r"[^A-Za-z0-9_.-]+", "_", t.name)
    out_dir = Path(debug_directory) / safe_test_name / (options.context_name or "default")
    out_dir.mkdir(parents=True, exist_ok=True)
    console.print(f"[yellow]ℹ️  Writing debug info for {label_selector} to {out_dir}[/yellow]")

    captures: dict[str, tuple[str, ...]] = {
        f"pods-{label_selector.replace('=', '-')}.yaml": ("get", "pods", "-l", label_selector, "-o", "yaml"),
        "events.txt": ("get", "events", "--sort-by=.lastTimestamp"),
    }
    ok, names = run_kubectl_e(options, "get", "pods", "-l", label_selector,
                              "-o", "jsonpath={.items[*].metadata.name}")
    if ok:
        for pod in names.split():
            captures[f"{pod}.log"] = ("logs", pod, "--all-containers", "--prefix")

    for filename, args in captures.items():
        ok, output = run_kubectl_e(options, *args)
        if not ok:
            console.print(f"[yellow]⚠️  kubectl {' '.join(args)} failed: {output.strip()}[/yellow]")
        (out_dir / filename).write_text(output)


# ============================================================================
# Connectivity
# ============================================================================

def check_static_server_connection(
    t: TestHandle,
    options: KubectlOptions,
    expect_success: bool,
    failure_messages: tuple[str, ...],
    url: str,
    timer: RetryTimer | None = None,
) -> None:
    """Curl *url* from the static-client pod until the result matches expectations.

    When *expect_success* is False the call must fail with output containing
    one of *failure_messages*.

    Raises:
        ConvergenceError: If the expected outcome is not observed in time.
    """
    curl = ("exec", STATIC_CLIENT_DEPLOYMENT, "-c", STATIC_CLIENT_NAME, "--", "curl", "-vvvsSf", url)
    expectation = "succeed" if expect_success else "fail"
    logf(t, "checking that connection to %s from %s should %s", url, STATIC_CLIENT_NAME, expectation)

    def _check(r: R) -> None:
        ok, output = run_kubectl_e(options, *curl)
        if expect_success:
            if not ok:
                r.errorf("curl %s failed: %s", url, output.strip()[-500:])
            elif STATIC_SERVER_RESPONSE not in output:
                r.errorf("curl %s succeeded but response did not contain %r", url, STATIC_SERVER_RESPONSE)
        else:
            if ok:
                r.errorf("curl %s succeeded but was expected to fail", url)
            elif not any(msg in output for msg in failure_messages):
                r.errorf("curl %s failed with unexpected output: %s", url, output.strip()[-500:])

    run(_check, timer, cancel=t.cancel, description=f"connection to {url} should {expectation}")


def check_static_server_connection_successful(
    t: TestHandle, options: KubectlOptions, url: str, timer: RetryTimer | None = None,
) -> None:
    check_static_server_connection(t, options, True, (), url, timer)


def check_static_server_connection_failing(
    t: TestHandle, options: KubectlOptions, url: str, timer: RetryTimer | None = None,
) -> None:
    check_static_server_connection(t, options, False, CURL_FAILURE_MESSAGES, url, timer)


# ============================================================================
# Pods
# ============================================================================

def _pod_ready(pod: k8s_client.V1Pod) -> bool:
    status = pod.status
    if status is None:
        return False
    if status.phase == "Succeeded":
        return True
    return any(c.type == "Ready" and c.status == "True" for c in (status.conditions or []))


def wait_for_all_pods_to_be_ready(
    t: TestHandle,
    core_v1: k8s_client.CoreV1Api,
    namespace: str,
    label_selector: str,
    timer: RetryTimer | None = None,
) -> None:
    """Poll until at least one pod matches *label_selector* and all of them are ready.

    Completed job pods count as ready.

    Raises:
        ConvergenceError: If the pods are not ready in time.
    """
    logf(t, "waiting for pods with label %s to be ready", label_selector)

    def _check(r: R) -> None:
        pods = core_v1.list_namespaced_pod(namespace, label_selector=label_selector).items
        if not pods:
            r.errorf("no pods with label %s in namespace %s", label_selector, namespace)
            return
        for pod in pods:
            if not _pod_ready(pod):
                r.errorf("pod %s is not ready", pod.metadata.name)

    run(_check, timer, cancel=t.cancel, description=f"pods with label {label_selector} to be ready")


def pod_names(core_v1: k8s_client.CoreV1Api, namespace: str, label_selector: str) -> list[str]:
    pods = core_v1.list_namespaced_pod(namespace, label_selector=label_selector).items
    return [pod.metadata.name for pod in pods]


def force_delete_pod(t: TestHandle, core_v1: k8s_client.CoreV1Api, namespace: str, name: str) -> None:
    """Delete a pod with a zero grace period, as if its node died."""
    logf(t, "force killing pod %s", name)
    core_v1.delete_namespaced_pod(name, namespace, grace_period_seconds=0)


def restart_rollout(t: TestHandle, options: KubectlOptions, resource: str) -> None:
    """Trigger a rolling restart of *resource* (e.g. ``ds/foo``) and block until it completes."""
    run_kubectl(t, options, "rollout", "restart", resource)
    run_kubectl(t, options, "rollout", "status", resource, f"--timeout={ROLLOUT_TIMEOUT}")
