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

"""Service registry access: HTTP catalog client, port-forwarding, and catalog checks."""

from __future__ import annotations

import socket
import ssl
from collections.abc import Callable, Iterable
from typing import Any

import httpx
import sh
from tenacity import RetryError, retry, stop_after_attempt, wait_fixed

from mesh_acceptance import logger
from mesh_acceptance.constants import PORT_FORWARD_READY_MAX_RETRIES, PORT_FORWARD_READY_POLL_INTERVAL_SECONDS
from mesh_acceptance.environment import KubectlOptions
from mesh_acceptance.errors import OperationError
from mesh_acceptance.retry import R

CATALOG_TIMEOUT_SECONDS = 10.0


class CatalogClient:
    """Minimal client for the service registry HTTP API."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        ca_pem: str = "",
        http: httpx.Client | None = None,
    ) -> None:
        if http is None:
            headers = {"X-Consul-Token": token} if token else {}
            verify: Any = ssl.create_default_context(cadata=ca_pem) if ca_pem else True
            http = httpx.Client(base_url=base_url, headers=headers, verify=verify, timeout=CATALOG_TIMEOUT_SECONDS)
        self._http = http

    def catalog_service(self, name: str) -> list[dict[str, Any]]:
        """Return the registered instances of service *name*.

        Raises:
            httpx.HTTPError: If the request fails or returns an error status.
        """
        resp = self._http.get(f"/v1/catalog/service/{name}")
        resp.raise_for_status()
        return resp.json() or []

    def set_config_entry(self, entry: dict[str, Any]) -> None:
        resp = self._http.put("/v1/config", json=entry)
        resp.raise_for_status()

    def delete_config_entry(self, kind: str, name: str) -> None:
        resp = self._http.delete(f"/v1/config/{kind}/{name}")
        resp.raise_for_status()

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> CatalogClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def intention_allow(source: str, destination: str) -> dict[str, Any]:
    """Config entry allowing *source* to reach *destination*."""
    return {
        "Kind": "service-intentions",
        "Name": destination,
        "Sources": [{"Name": source, "Action": "allow"}],
    }


# ============================================================================
# Port forwarding
# ============================================================================

def _free_local_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@retry(
    stop=stop_after_attempt(PORT_FORWARD_READY_MAX_RETRIES),
    wait=wait_fixed(PORT_FORWARD_READY_POLL_INTERVAL_SECONDS),
    reraise=True,
)
def _wait_port_open(port: int) -> None:
    """Connect to the forwarded port until kubectl starts listening.

    Raises:
        OSError: If the port is not accepting connections.
    """
    with socket.create_connection(("127.0.0.1", port), timeout=1):
        pass


class PortForward:
    """A background ``kubectl port-forward`` to one pod port."""

    def __init__(self, options: KubectlOptions, pod: str, remote_port: int) -> None:
        self.options = options
        self.pod = pod
        self.remote_port = remote_port
        self.local_port = 0
        self._process: Any = None

    def start(self) -> int:
        """Start forwarding and return the local port once it accepts connections.

        Raises:
            OperationError: If the forward does not come up.
        """
        self.local_port = _free_local_port()
        self._process = sh.kubectl(
            *self.options.kubectl_args(),
            "port-forward", f"pod/{self.pod}", f"{self.local_port}:{self.remote_port}",
            _bg=True, _bg_exc=False,
        )
        try:
            _wait_port_open(self.local_port)
        except (OSError, RetryError) as err:
            self.close()
            raise OperationError(f"port-forward to {self.pod}:{self.remote_port} never became ready") from err
        logger.debug("forwarding 127.0.0.1:%d to %s:%d", self.local_port, self.pod, self.remote_port)
        return self.local_port

    def close(self) -> None:
        if self._process is None:
            return
        try:
            self._process.terminate()
        except ProcessLookupError:
            pass
        self._process = None


# ============================================================================
# Catalog checks
# ============================================================================

def expect_instances(client: CatalogClient, names: Iterable[str], count: int) -> Callable[[R], None]:
    """Check that every service in *names* has exactly *count* registered instances."""
    names = tuple(names)

    def _check(r: R) -> None:
        for name in names:
            instances = client.catalog_service(name)
            if len(instances) != count:
                r.errorf("expected %d instance of %s, found %d", count, name, len(instances))

    return _check


def expect_deregistered(client: CatalogClient, names: Iterable[str], pod_name: str) -> Callable[[R], None]:
    """Check that no instance of the services in *names* carries *pod_name* in its ID."""
    names = tuple(names)

    def _check(r: R) -> None:
        for name in names:
            for instance in client.catalog_service(name):
                service_id = instance.get("ServiceID", "")
                if pod_name in service_id:
                    r.errorf("%s is still registered", service_id)

    return _check
