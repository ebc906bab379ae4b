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

"""Test environment: the cluster contexts a test can address.

A ``TestEnvironment`` maps logical names ("default", "secondary") to
``KubernetesContext`` objects. A context knows where its kubeconfig lives and
which context/namespace inside it to use, and turns that into kubectl options
and an API client on first use.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Protocol

from kubernetes import client as k8s_client
from kubernetes.config import ConfigException, list_kube_config_contexts, new_client_from_config

from mesh_acceptance import logger
from mesh_acceptance.config import TestConfig
from mesh_acceptance.constants import (
    DEFAULT_CONTEXT_NAME,
    DEFAULT_KUBECONFIG,
    NS_DEFAULT,
    SECONDARY_CONTEXT_NAME,
)
from mesh_acceptance.errors import ContextNotFoundError, SetupError


@dataclass(frozen=True)
class KubectlOptions:
    """Connection parameters for kubectl and helm.

    Attributes:
        context_name: Context within the kubeconfig, or empty for current-context.
        config_path: Path to the kubeconfig, or empty for the default location.
        namespace: Namespace commands run against.
    """

    context_name: str = ""
    config_path: str = ""
    namespace: str = ""

    def config_file(self) -> str:
        """Resolve the kubeconfig path: explicit, then $KUBECONFIG, then ~/.kube/config."""
        if self.config_path:
            return str(Path(self.config_path).expanduser())
        return os.environ.get("KUBECONFIG") or str(DEFAULT_KUBECONFIG)

    def kubectl_args(self) -> list[str]:
        """Render the options as kubectl global flags."""
        return self._args("--context")

    def helm_args(self) -> list[str]:
        """Render the options as helm global flags (helm spells it --kube-context)."""
        return self._args("--kube-context")

    def _args(self, context_flag: str) -> list[str]:
        # Without an explicit path the tools read $KUBECONFIG themselves, which may be a list.
        args = ["--kubeconfig", self.config_file()] if self.config_path else []
        if self.context_name:
            args += [context_flag, self.context_name]
        if self.namespace:
            args += ["--namespace", self.namespace]
        return args


class TestContext(Protocol):
    """A specific cluster a test addresses."""

    __test__ = False

    def kubectl_options(self) -> KubectlOptions: ...

    def kubernetes_client(self) -> k8s_client.ApiClient: ...


def _load_contexts(config_file: str) -> tuple[list[dict], dict | None]:
    try:
        return list_kube_config_contexts(config_file=config_file)
    except (ConfigException, OSError) as e:
        raise SetupError(f"failed to load kubeconfig {config_file}: {e}") from e


def kube_context_from_options(options: KubectlOptions) -> str:
    """Return the context *options* point at.

    If the context is set explicitly in options, that name is returned.
    Otherwise the current-context of the kubeconfig is returned.

    Raises:
        SetupError: If the kubeconfig cannot be loaded or has no current-context.
    """
    if options.context_name:
        return options.context_name

    _, active = _load_contexts(options.config_file())
    if not active or not active.get("name"):
        raise SetupError(f"kubeconfig {options.config_file()} has no current-context")
    return active["name"]


def resolve_namespace(options: KubectlOptions) -> str:
    """Namespace recorded for the active context, or ``default`` if it has none.

    Raises:
        SetupError: If the kubeconfig cannot be loaded.
    """
    contexts, _ = _load_contexts(options.config_file())
    context_name = kube_context_from_options(options)
    for entry in contexts:
        if entry.get("name") == context_name:
            namespace = (entry.get("context") or {}).get("namespace")
            if namespace:
                return namespace
            break
    return NS_DEFAULT


def kubernetes_client_from_options(options: KubectlOptions) -> k8s_client.ApiClient:
    """Build an isolated API client for the context in *options*.

    Uses new_client_from_config so loading one context never touches the global
    client configuration another context relies on.

    Raises:
        SetupError: If the kubeconfig cannot be loaded or the client cannot be built.
    """
    config_file = options.config_file()
    try:
        return new_client_from_config(config_file=config_file, context=options.context_name or None)
    except (ConfigException, OSError, ValueError) as e:
        raise SetupError(
            f"failed to build kubernetes client from {config_file} "
            f"(context {options.context_name or 'current-context'}): {e}"
        ) from e


class KubernetesContext:
    """One addressable cluster.

    ``kubectl_options()`` and ``kubernetes_client()`` resolve on first call and
    return the same object afterwards; changes to the kubeconfig file after that
    are not picked up. The construction fields are read-only.
    """

    def __init__(self, namespace: str = "", kubeconfig: str = "", kube_context: str = "") -> None:
        self._namespace = namespace
        self._kubeconfig = kubeconfig
        self._kube_context = kube_context

        self._lock = threading.Lock()
        self._options: KubectlOptions | None = None
        self._client: k8s_client.ApiClient | None = None

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def kubeconfig(self) -> str:
        return self._kubeconfig

    @property
    def kube_context(self) -> str:
        return self._kube_context

    def kubectl_options(self) -> KubectlOptions:
        """Connection options, with the namespace resolved if it was left empty."""
        if self._options is not None:
            return self._options
        with self._lock:
            if self._options is None:
                self._options = self._resolve_options()
            return self._options

    def _resolve_options(self) -> KubectlOptions:
        options = KubectlOptions(
            context_name=self._kube_context,
            config_path=self._kubeconfig,
            namespace=self._namespace,
        )
        if not options.namespace:
            namespace = resolve_namespace(options)
            logger.debug("resolved namespace %s for context %s", namespace, self._kube_context or "(current)")
            options = KubectlOptions(
                context_name=options.context_name,
                config_path=options.config_path,
                namespace=namespace,
            )
        return options

    def kubernetes_client(self) -> k8s_client.ApiClient:
        """API client bound to this context's kubeconfig and context name."""
        if self._client is not None:
            return self._client
        options = self.kubectl_options()
        with self._lock:
            if self._client is None:
                self._client = kubernetes_client_from_options(options)
            return self._client

    def core_v1(self) -> k8s_client.CoreV1Api:
        return k8s_client.CoreV1Api(self.kubernetes_client())

    def apps_v1(self) -> k8s_client.AppsV1Api:
        return k8s_client.AppsV1Api(self.kubernetes_client())

    def __repr__(self) -> str:
        return (
            f"KubernetesContext(namespace={self._namespace!r}, kubeconfig={self._kubeconfig!r}, "
            f"kube_context={self._kube_context!r})"
        )


class TestEnvironment:
    """Registry of the contexts available to a test run. Immutable once built."""

    __test__ = False

    def __init__(self, contexts: Mapping[str, KubernetesContext]) -> None:
        if DEFAULT_CONTEXT_NAME not in contexts:
            raise SetupError("test environment must define a default context")
        self._contexts = MappingProxyType(dict(contexts))

    @classmethod
    def from_config(cls, cfg: TestConfig) -> TestEnvironment:
        """Build the default context, plus the secondary one if multi-cluster is enabled."""
        contexts = {
            DEFAULT_CONTEXT_NAME: KubernetesContext(cfg.kube_namespace, cfg.kubeconfig, cfg.kube_context),
        }
        if cfg.enable_multi_cluster:
            contexts[SECONDARY_CONTEXT_NAME] = KubernetesContext(
                cfg.secondary_kube_namespace, cfg.secondary_kubeconfig, cfg.secondary_kube_context,
            )
        return cls(contexts)

    @classmethod
    def from_context(cls, context: KubernetesContext) -> TestEnvironment:
        return cls({DEFAULT_CONTEXT_NAME: context})

    def names(self) -> list[str]:
        return list(self._contexts)

    def context(self, name: str) -> KubernetesContext:
        """Return the context registered under *name*.

        Raises:
            ContextNotFoundError: If no such context is registered.
        """
        try:
            return self._contexts[name]
        except KeyError:
            raise ContextNotFoundError(f"requested context {name} not found") from None

    def default_context(self) -> KubernetesContext:
        """Return the default context.

        Raises:
            ContextNotFoundError: If the default context is missing.
        """
        try:
            return self._contexts[DEFAULT_CONTEXT_NAME]
        except KeyError:
            raise ContextNotFoundError("default context not found") from None
