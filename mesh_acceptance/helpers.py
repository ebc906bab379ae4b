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

"""Utility functions for release names, helm overrides, and command checks."""

from __future__ import annotations

import secrets
import string

import sh

from mesh_acceptance.constants import RANDOM_NAME_LENGTH, RANDOM_NAME_PREFIX

_NAME_ALPHABET = string.ascii_lowercase + string.digits


def random_name() -> str:
    """Generate a release name that is a valid DNS label.

    Returns:
        A name such as ``test-k3j9x0ab``.
    """
    suffix = "".join(secrets.choice(_NAME_ALPHABET) for _ in range(RANDOM_NAME_LENGTH))
    return f"{RANDOM_NAME_PREFIX}-{suffix}"


def format_bool(value: bool) -> str:
    """Render a bool the way helm expects it in ``--set``."""
    return "true" if value else "false"


def merge_helm_values(*layers: dict[str, str] | None) -> dict[str, str]:
    """Merge helm value mappings; later layers win on key conflicts.

    Args:
        *layers: Mappings of helm keys to values, or None to skip.

    Returns:
        A new merged mapping.
    """
    merged: dict[str, str] = {}
    for layer in layers:
        if layer:
            merged.update(layer)
    return merged


def helm_set_args(values: dict[str, str]) -> list[str]:
    """Build ``--set key=value`` arguments from a helm values mapping.

    Keys are sorted so the rendered command line is stable between runs.

    Args:
        values: Mapping of helm keys to values.

    Returns:
        Flat list like ``["--set", "a=1", "--set", "b=2"]``.
    """
    return [item for key in sorted(values) for item in ("--set", f"{key}={values[key]}")]


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        RuntimeError: If the command is not found.
    """
    try:
        sh.which(cmd)
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Required command '{cmd}' not found. Please install it first.") from err
