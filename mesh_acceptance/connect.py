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

"""Install, upgrade and verify a mesh release with sidecar injection enabled."""

from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx

from mesh_acceptance.catalog import intention_allow
from mesh_acceptance.cluster import Cluster, ClusterGenerator
from mesh_acceptance.config import TestConfig
from mesh_acceptance.constants import (
    FIXTURE_STATIC_CLIENT_INJECT,
    FIXTURE_STATIC_CLIENT_TPROXY,
    FIXTURE_STATIC_SERVER_INJECT,
    FIXTURES_DIR,
    HELM_KEY_AUTO_ENCRYPT,
    HELM_KEY_CONNECT_INJECT,
    HELM_KEY_MANAGE_ACLS,
    HELM_KEY_TLS,
    STATIC_CLIENT_NAME,
    STATIC_SERVER_LOCAL_URL,
    STATIC_SERVER_NAME,
    STATIC_SERVER_TPROXY_URL,
)
from mesh_acceptance.environment import KubernetesContext
from mesh_acceptance.errors import AcceptanceError, ConvergenceError, LifecycleError, OperationError
from mesh_acceptance.handle import TestHandle
from mesh_acceptance.helpers import format_bool, merge_helm_values
from mesh_acceptance.k8s import (
    check_static_server_connection_failing,
    check_static_server_connection_successful,
    deploy_kustomize,
)
from mesh_acceptance.log import log
from mesh_acceptance.retry import RetryTimer


class ConnectState(enum.Enum):
    UNINSTALLED = "uninstalled"
    INSTALLED = "installed"
    UPGRADED = "upgraded"
    VERIFIED = "verified"


@dataclass
class ConnectHelper:
    """One release under test and the flags it is installed with.

    ``secure``, ``auto_encrypt`` and ``additional_helm_values`` may be changed
    between ``install()`` and ``upgrade()``; the upgrade applies whatever they
    hold at that point. ``install()`` may only be called once.
    """

    cluster_generator: ClusterGenerator
    release_name: str
    t: TestHandle
    ctx: KubernetesContext
    cfg: TestConfig
    secure: bool = False
    auto_encrypt: bool = False
    additional_helm_values: dict[str, str] = field(default_factory=dict)

    _state: ConnectState = field(default=ConnectState.UNINSTALLED, init=False, repr=False)
    _cluster: Cluster | None = field(default=None, init=False, repr=False)
    _intention_created: bool = field(default=False, init=False, repr=False)

    @property
    def state(self) -> ConnectState:
        return self._state

    @property
    def cluster(self) -> Cluster | None:
        return self._cluster

    @property
    def variant(self) -> str:
        return f"secure={format_bool(self.secure)}, auto_encrypt={format_bool(self.auto_encrypt)}"

    def helm_values(self) -> dict[str, str]:
        """Helm overrides for the current flags, with the additional values on top."""
        flags = {
            HELM_KEY_CONNECT_INJECT: "true",
            HELM_KEY_TLS: format_bool(self.secure),
            HELM_KEY_AUTO_ENCRYPT: format_bool(self.auto_encrypt),
            HELM_KEY_MANAGE_ACLS: format_bool(self.secure),
        }
        return merge_helm_values(flags, self.additional_helm_values)

    def _phase(self, phase: str, fn: Callable[[], None]) -> None:
        try:
            fn()
        except OperationError as e:
            raise OperationError(f"{phase} of {self.release_name} ({self.variant}) failed: {e}") from e
        except ConvergenceError as e:
            wrapped = ConvergenceError(f"{phase} of {self.release_name} ({self.variant}): {e}")
            wrapped.failures = e.failures
            raise wrapped from e

    def install(self) -> None:
        """Provision the release through the cluster generator.

        Raises:
            LifecycleError: If the release was already installed by this helper.
            OperationError: If provisioning fails.
            ConvergenceError: If the release pods never become ready.
        """
        if self._state is not ConnectState.UNINSTALLED:
            raise LifecycleError(
                f"install of {self.release_name} called in state {self._state.value}; install only runs once"
            )
        log(self.t, f"installing {self.release_name} ({self.variant})")

        def _create() -> None:
            self._cluster = self.cluster_generator(self.t, self.helm_values(), self.ctx, self.cfg, self.release_name)
            self._cluster.create()

        self._phase("install", _create)
        self._state = ConnectState.INSTALLED

    def upgrade(self) -> None:
        """Re-apply the release in place with the helm values of the current flags.

        Raises:
            LifecycleError: If the release has not been installed.
            OperationError: If the upgrade fails.
            ConvergenceError: If the release pods never become ready.
        """
        if self._cluster is None or self._state is ConnectState.UNINSTALLED:
            raise LifecycleError(f"upgrade of {self.release_name} called before install")
        log(self.t, f"upgrading {self.release_name} ({self.variant})")
        cluster = self._cluster
        self._phase("upgrade", lambda: cluster.upgrade(self.helm_values()))
        self._state = ConnectState.UPGRADED

    def test_installation(self) -> None:
        """Deploy the static server and client and check they can talk through the mesh.

        With ``secure`` set the connection must first be refused, and is only
        allowed once an intention between the two services exists.

        Raises:
            LifecycleError: If the release has not been installed.
            OperationError: If deploying the workloads fails.
            ConvergenceError: If a connectivity check never passes.
        """
        if self._cluster is None or self._state is ConnectState.UNINSTALLED:
            raise LifecycleError(f"test_installation of {self.release_name} called before install")
        self._phase("verification", self._verify)
        self._state = ConnectState.VERIFIED

    def _verify(self) -> None:
        options = self.ctx.kubectl_options()
        tproxy = self.cfg.enable_transparent_proxy
        client_fixture = FIXTURE_STATIC_CLIENT_TPROXY if tproxy else FIXTURE_STATIC_CLIENT_INJECT
        url = STATIC_SERVER_TPROXY_URL if tproxy else STATIC_SERVER_LOCAL_URL
        timer = RetryTimer.connectivity(self.cfg.retry)

        log(self.t, "creating static-server and static-client deployments")
        for fixture in (FIXTURE_STATIC_SERVER_INJECT, client_fixture):
            deploy_kustomize(
                self.t, options, self.cfg.no_cleanup_on_failure, self.cfg.debug_directory, FIXTURES_DIR / fixture,
            )

        if self.secure and not self._intention_created:
            log(self.t, "checking that the connection is not successful because there's no intention")
            check_static_server_connection_failing(self.t, options, url, timer)
            self._create_intention()

        log(self.t, "checking that connection is successful")
        check_static_server_connection_successful(self.t, options, url, timer)

    def _create_intention(self) -> None:
        if self._cluster is None:
            raise AcceptanceError(f"no cluster for {self.release_name}")
        client = self._cluster.catalog_client(True)
        log(self.t, f"creating intention allowing {STATIC_CLIENT_NAME} to reach {STATIC_SERVER_NAME}")
        try:
            client.set_config_entry(intention_allow(STATIC_CLIENT_NAME, STATIC_SERVER_NAME))
        except httpx.HTTPError as e:
            raise OperationError(f"creating intention failed: {e}") from e
        self._intention_created = True
