"""
Validation Engine Module

Responsibility:
- Enforce resource contracts on every declaration in a graph
- Check required values, provider availability and the common tag set
- Check that every reference points to an earlier declaration and a readable attribute
- Return a list of GraphIssue objects for any validation failures

This is PURE deterministic validation logic. It never resolves deferred values.
"""

from typing import List

from craftforge.contracts import COMMON_TAG_KEYS, get_resource_contract
from craftforge.expressions import references
from craftforge.models import DeclarationGraph, GraphIssue


def validate_graph(graph: DeclarationGraph) -> List[GraphIssue]:
    """
    Validate the entire graph against resource contracts.

    Returns a list of GraphIssue objects; an empty list means the graph is valid.
    """
    issues = []
    order = {name: position for position, name in enumerate(graph.declarations)}

    for name, declaration in graph.declarations.items():
        contract = get_resource_contract(declaration.type)
        if not contract:
            issues.append(GraphIssue(
                name=name,
                path="type",
                reason=f"Unknown declaration type: {declaration.type}"
            ))
            continue

        # Step 1: Contract Validation
        issues.extend(_validate_contract(name, declaration, contract))

        # Step 2: Provider Validation
        issues.extend(_validate_provider(name, contract, graph))

        # Step 3: Reference Validation
        issues.extend(_validate_references(
            name, declaration.attributes, graph, order, limit=order[name]
        ))

        # Step 4: Tag Validation
        if contract["taggable"]:
            issues.extend(_validate_tags(name, declaration))

    for output_name, output in graph.outputs.items():
        issues.extend(_validate_references(
            f"output.{output_name}", output.value, graph, order, limit=len(order)
        ))

    return issues


def _validate_contract(name: str, declaration, contract: dict) -> List[GraphIssue]:
    """Validate kind and required values of a declaration."""
    issues = []

    if declaration.kind != contract["kind"]:
        issues.append(GraphIssue(
            name=name,
            path="kind",
            reason=f"'{declaration.type}' must be declared as {contract['kind']}, not {declaration.kind}"
        ))

    for required_value in contract["required_values"]:
        if declaration.attributes.get(required_value) is None:
            issues.append(GraphIssue(
                name=name,
                path=f"attributes.{required_value}",
                reason=f"Required value '{required_value}' is missing"
            ))

    return issues


def _validate_provider(name: str, contract: dict, graph: DeclarationGraph) -> List[GraphIssue]:
    """Validate that the provider owning a declaration is configured."""
    provider = contract.get("provider")
    if not provider:
        return []

    declared = any(
        d.kind == "provider" and d.type == provider
        for d in graph.declarations.values()
    )
    if declared:
        return []

    return [GraphIssue(
        name=name,
        path="provider",
        reason=f"Provider '{provider}' is not configured"
    )]


def _validate_references(owner: str, value, graph: DeclarationGraph,
                         order: dict, limit: int) -> List[GraphIssue]:
    """Validate references: target declared earlier, attribute readable."""
    issues = []

    for ref in references(value):
        target = graph.declarations.get(ref.declaration)
        if target is None:
            issues.append(GraphIssue(
                name=owner,
                path=ref.render(),
                reason=f"Referenced declaration '{ref.declaration}' does not exist"
            ))
            continue

        if order[ref.declaration] >= limit:
            issues.append(GraphIssue(
                name=owner,
                path=ref.render(),
                reason=f"Referenced declaration '{ref.declaration}' is declared later"
            ))

        if ref.address != target.address:
            issues.append(GraphIssue(
                name=owner,
                path=ref.render(),
                reason=f"Reference address '{ref.address}' does not match '{target.address}'"
            ))

        contract = get_resource_contract(target.type) or {}
        if ref.attribute not in contract.get("attributes", []):
            issues.append(GraphIssue(
                name=owner,
                path=ref.render(),
                reason=f"'{target.type}' has no readable attribute '{ref.attribute}'"
            ))

    return issues


def _validate_tags(name: str, declaration) -> List[GraphIssue]:
    """Validate that a taggable declaration carries the common tag set."""
    tags = declaration.attributes.get("tags")
    if not isinstance(tags, dict):
        return [GraphIssue(
            name=name,
            path="attributes.tags",
            reason="Taggable declaration has no tags"
        )]

    issues = []
    for key in COMMON_TAG_KEYS:
        if not tags.get(key):
            issues.append(GraphIssue(
                name=name,
                path=f"attributes.tags.{key}",
                reason=f"Required tag '{key}' is missing"
            ))

    return issues
