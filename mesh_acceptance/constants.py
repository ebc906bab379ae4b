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

"""Constants for context names, helm keys, fixtures and retry defaults."""

from __future__ import annotations

from pathlib import Path

# -- Resolved paths --
PACKAGE_DIR = Path(__file__).resolve().parent
PROJECT_DIR = PACKAGE_DIR.parent
FIXTURES_DIR = PROJECT_DIR / "tests" / "acceptance" / "fixtures"

# -- Environment contexts --
DEFAULT_CONTEXT_NAME = "default"
SECONDARY_CONTEXT_NAME = "secondary"
NS_DEFAULT = "default"
DEFAULT_KUBECONFIG = Path.home() / ".kube" / "config"

# -- Releases --
CLI_RELEASE_NAME = "consul"
DEFAULT_HELM_CHART = "hashicorp/consul"
DEFAULT_HELM_REPO = "hashicorp"
DEFAULT_HELM_REPO_URL = "https://helm.releases.hashicorp.com"
DEFAULT_INSTALLER_CLI = "consul-k8s"
DEFAULT_HELM_TIMEOUT = "15m"
RANDOM_NAME_PREFIX = "test"
RANDOM_NAME_LENGTH = 8

# -- Labels --
LABEL_RELEASE = "release"
LABEL_APP_STATIC_CLIENT = "app=static-client"

# -- Helm override keys --
HELM_KEY_CONNECT_INJECT = "connectInject.enabled"
HELM_KEY_TLS = "global.tls.enabled"
HELM_KEY_AUTO_ENCRYPT = "global.tls.enableAutoEncrypt"
HELM_KEY_MANAGE_ACLS = "global.acls.manageSystemACLs"
HELM_KEY_IMAGE = "global.image"
HELM_KEY_IMAGE_K8S = "global.imageK8S"
HELM_KEY_LICENSE_SECRET_NAME = "server.enterpriseLicense.secretName"
HELM_KEY_LICENSE_SECRET_KEY = "server.enterpriseLicense.secretKey"
HELM_KEY_OPENSHIFT = "global.openshift.enabled"
HELM_KEY_PSP = "global.enablePodSecurityPolicies"
HELM_KEY_TPROXY = "connectInject.transparentProxy.defaultEnabled"

# Single-server installs with debug logging; test clusters are small and short-lived.
DEFAULT_RELEASE_HELM_VALUES = {
    "server.replicas": "1",
    "server.bootstrapExpect": "1",
    "connectInject.logLevel": "debug",
    "connectInject.envoyExtraArgs": "--log-level debug",
    "controller.logLevel": "debug",
}
MESH_CHART_NAME = "consul"

# -- Workload fixtures --
FIXTURE_STATIC_SERVER_INJECT = "cases/static-server-inject"
FIXTURE_STATIC_CLIENT_INJECT = "cases/static-client-inject"
FIXTURE_STATIC_CLIENT_TPROXY = "cases/static-client-tproxy"
STATIC_CLIENT_SERVICES = ("static-client", "static-client-sidecar-proxy")
STATIC_CLIENT_DEPLOYMENT = "deploy/static-client"
STATIC_SERVER_NAME = "static-server"
STATIC_CLIENT_NAME = "static-client"
STATIC_SERVER_LOCAL_URL = "http://localhost:1234"
STATIC_SERVER_TPROXY_URL = "http://static-server"

# -- Service registry --
CONSUL_HTTP_PORT = 8500
CONSUL_HTTPS_PORT = 8501
CONSUL_BOOTSTRAP_TOKEN_SUFFIX = "bootstrap-acl-token"
CONSUL_CA_CERT_SUFFIX = "ca-cert"
CONSUL_SERVER_POD_SUFFIX = "server-0"
CONSUL_CLIENT_DAEMONSET_SUFFIX = "client"
PORT_FORWARD_READY_MAX_RETRIES = 30
PORT_FORWARD_READY_POLL_INTERVAL_SECONDS = 1

# -- Retry defaults --
DEFAULT_RETRY_ATTEMPTS = 60
DEFAULT_RETRY_INTERVAL_SECONDS = 2.0
DEFAULT_CONNECTIVITY_ATTEMPTS = 30
DEFAULT_CONNECTIVITY_INTERVAL_SECONDS = 1.0
DEFAULT_POD_READY_ATTEMPTS = 60
DEFAULT_POD_READY_INTERVAL_SECONDS = 5.0

# -- kubectl --
KUBECTL_TIMEOUT_SECONDS = 300
ROLLOUT_TIMEOUT = "5m"
CURL_FAILURE_MESSAGES = (
    "curl: (52) Empty reply from server",
    "curl: (7) Failed to connect",
    "curl: (56) Recv failure",
)
