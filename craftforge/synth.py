"""
Synthesis Module

Responsibility:
- Deterministically render a composed graph as Terraform JSON (cdk.tf.json)
- Render a readable YAML preview of the same graph
- Preserve deferred expressions exactly (never resolve them)
- Write the stack's output directory (Terraform JSON plus YAML preview)

This is PURE rendering logic apart from synth_stack(), which writes files.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict

import yaml

from craftforge.contracts import get_resource_contract
from craftforge.exceptions import GraphError
from craftforge.expressions import references, to_token
from craftforge.models import DeclarationGraph
from craftforge.validator import validate_graph

logger = logging.getLogger(__name__)

DEFAULT_OUTDIR = "cdktf.out"
STACK_FILENAME = "cdk.tf.json"
PREVIEW_FILENAME = "preview.yaml"
SENSITIVE_PLACEHOLDER = "(sensitive value)"


def to_terraform_json(graph: DeclarationGraph) -> Dict[str, Any]:
    """
    Render a graph into a Terraform JSON configuration document.

    Args:
        graph: Composed DeclarationGraph

    Returns:
        Dict ready for json.dump()
    """
    providers: Dict[str, list] = {}
    data: Dict[str, dict] = {}
    modules: Dict[str, dict] = {}
    resources: Dict[str, dict] = {}

    for declaration in graph.declarations.values():
        attributes = to_token(declaration.attributes)

        if declaration.kind == "provider":
            providers.setdefault(declaration.type, []).append(attributes)
        elif declaration.kind == "data":
            data.setdefault(declaration.type, {})[declaration.name] = attributes
        elif declaration.kind == "module":
            contract = get_resource_contract(declaration.type)
            modules[declaration.name] = {
                "source": contract["source"],
                "version": contract["version"],
                **attributes
            }
        else:
            resources.setdefault(declaration.type, {})[declaration.name] = attributes

    document = {"terraform": _render_terraform_block(graph)}

    for section, content in (
        ("provider", providers),
        ("data", data),
        ("module", modules),
        ("resource", resources),
        ("output", _render_outputs(graph)),
    ):
        if content:
            document[section] = content

    return document


def _render_terraform_block(graph: DeclarationGraph) -> dict:
    """Render required_providers and the state backend."""
    required_providers = {}
    for declaration in graph.declarations.values():
        if declaration.kind != "provider":
            continue
        contract = get_resource_contract(declaration.type)
        required_providers[declaration.type] = {
            "source": contract["source"],
            "version": contract["version"]
        }

    block = {"required_providers": required_providers}

    if graph.backend:
        block["backend"] = {
            "remote": {
                "hostname": graph.backend.hostname,
                "organization": graph.backend.organization,
                "workspaces": {"name": graph.backend.workspace}
            }
        }

    return block


def _render_outputs(graph: DeclarationGraph) -> dict:
    outputs = {}

    for name, output in graph.outputs.items():
        rendered = {"value": to_token(output.value)}
        if output.description:
            rendered["description"] = output.description
        if output.sensitive:
            rendered["sensitive"] = True
        outputs[name] = rendered

    return outputs


def render_yaml(graph: DeclarationGraph) -> str:
    """
    Render a readable preview of the graph.

    Sensitive output values are masked.
    """
    preview = {
        "stack": {
            "name": graph.stack_name,
            "declarations": [_render_declaration(d) for d in graph.declarations.values()],
            "outputs": [
                {
                    "name": output.name,
                    "value": SENSITIVE_PLACEHOLDER if output.sensitive else to_token(output.value),
                    "sensitive": output.sensitive
                }
                for output in graph.outputs.values()
            ]
        }
    }

    if graph.backend:
        preview["stack"]["backend"] = {
            "hostname": graph.backend.hostname,
            "organization": graph.backend.organization,
            "workspace": graph.backend.workspace
        }

    return yaml.dump(preview, sort_keys=False, default_flow_style=False, allow_unicode=True)


def _render_declaration(declaration) -> dict:
    rendered = {
        "name": declaration.name,
        "kind": declaration.kind,
        "address": declaration.address,
    }

    # Dependencies in first-reference order
    depends_on = list(dict.fromkeys(ref.declaration for ref in references(declaration.attributes)))
    if depends_on:
        rendered["depends_on"] = depends_on

    if declaration.attributes:
        rendered["attributes"] = to_token(declaration.attributes)

    return rendered


def synth_stack(graph: DeclarationGraph, outdir=DEFAULT_OUTDIR) -> Path:
    """
    Validate a graph and write it to <outdir>/stacks/<stack>/cdk.tf.json.

    A masked YAML preview is written next to it as preview.yaml.

    Returns:
        Path of the written file

    Raises:
        GraphError: If the graph fails validation
    """
    issues = validate_graph(graph)
    if issues:
        details = "\n".join(f"  - {issue.name} [{issue.path}]: {issue.reason}" for issue in issues)
        raise GraphError(f"Stack '{graph.stack_name}' is invalid:\n{details}")

    stack_dir = Path(outdir) / "stacks" / graph.stack_name
    stack_dir.mkdir(parents=True, exist_ok=True)

    stack_file = stack_dir / STACK_FILENAME
    with open(stack_file, "w") as f:
        json.dump(to_terraform_json(graph), f, indent=2)

    with open(stack_dir / PREVIEW_FILENAME, "w") as f:
        f.write(render_yaml(graph))

    logger.info("Synthesized %s", stack_file)
    return stack_file
