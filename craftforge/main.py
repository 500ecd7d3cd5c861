#!/usr/bin/env python3
"""
Stack Synthesis Entry Point

Responsibility:
- Build the default Minecraft server stack
- Register the remote state workspace
- Write Terraform JSON to cdktf.out for `terraform plan/apply`

This is the entry point for the system. It takes no flags.
"""

import logging
import sys

from craftforge.builder import build_stack
from craftforge.config import StackConfig
from craftforge.exceptions import CraftForgeError
from craftforge.models import RemoteBackend
from craftforge.synth import DEFAULT_OUTDIR, synth_stack

STACK_NAME = "minecraft-cdktf"

DEFAULT_CONFIG = StackConfig(
    namespace="minecraft-cdktf",
    environment="sandbox",
    region="ap-southeast-1"
)

REMOTE_BACKEND = RemoteBackend(
    hostname="app.terraform.io",
    organization="joerx",
    workspace="minecraft-cdktf"
)


def print_header():
    """Print welcome header."""
    print()
    print("=" * 80)
    print("MINECRAFT SERVER STACK SYNTHESIS")
    print("=" * 80)
    print()
    print(f"  Stack:       {STACK_NAME}")
    print(f"  Namespace:   {DEFAULT_CONFIG.namespace}")
    print(f"  Environment: {DEFAULT_CONFIG.environment}")
    print(f"  Region:      {DEFAULT_CONFIG.region}")
    print(f"  Version:     {DEFAULT_CONFIG.software_version}")
    print(f"  State:       {REMOTE_BACKEND.hostname}/{REMOTE_BACKEND.organization}/{REMOTE_BACKEND.workspace}")
    print("=" * 80)
    print()


def main():
    """
    Synthesize the default stack.

    Flow:
    1. Compose the declaration graph
    2. Attach the remote backend
    3. Validate and write cdk.tf.json
    """
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    print_header()

    try:
        graph = build_stack(DEFAULT_CONFIG, STACK_NAME)
        graph.use_remote_backend(REMOTE_BACKEND)
        stack_file = synth_stack(graph, DEFAULT_OUTDIR)
    except CraftForgeError as e:
        print(f"Error synthesizing stack: {e}", file=sys.stderr)
        sys.exit(1)

    print()
    print("✓ SYNTHESIS COMPLETE!")
    print(f"  {len(graph.declarations)} declarations, {len(graph.outputs)} outputs")
    print(f"  Written to {stack_file}")
    print()
    print(f"Run `terraform -chdir={stack_file.parent} init && terraform -chdir={stack_file.parent} apply`")
    print("=" * 80)


if __name__ == "__main__":
    main()
