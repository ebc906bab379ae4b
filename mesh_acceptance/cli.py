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

"""
cli.py - CLI for the mesh acceptance test framework.

Subcommands:
    contexts   Resolve and print every test context (kubeconfig, context, namespace)
    config     Print the resolved test configuration
    cleanup    Uninstall a release left behind by a failed test

Examples:
    # Show the contexts a multi-cluster run would use
    mesh-acceptance contexts --multi-cluster --check

    # Remove a release kept by ACCEPTANCE_NO_CLEANUP_ON_FAILURE=true
    mesh-acceptance cleanup test-k3j9x0ab

For detailed usage information, run: mesh-acceptance --help
"""

from __future__ import annotations

import logging
import sys

import typer

from mesh_acceptance import console
from mesh_acceptance.commands import cleanup_cmd, config_cmd, contexts_cmd

app = typer.Typer(
    help="Acceptance test tooling for mesh sidecar injection.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.command("contexts")(contexts_cmd.contexts)
app.command("config")(config_cmd.config)
app.command("cleanup")(cleanup_cmd.cleanup)


def main() -> None:
    try:
        app()
    except Exception as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
