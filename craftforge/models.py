"""
Core Domain Models Module

Responsibility:
- Define the declaration graph handed to Terraform
- Declaration: a single provider, data source, module or resource
- Output: a named value exported from the stack
- RemoteBackend: where Terraform keeps the stack's state
- DeclarationGraph: explicit builder that owns all declarations of one stack

Declarations describe desired resources; nothing here talks to a cloud.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from craftforge.contracts import get_resource_contract
from craftforge.exceptions import GraphError
from craftforge.expressions import Ref, references

logger = logging.getLogger(__name__)


@dataclass
class Declaration:
    """
    Represents a single declaration in the graph.

    kind is one of "provider", "data", "module" or "resource".
    """
    name: str
    kind: str
    type: str

    # Attribute name -> literal or deferred expression
    attributes: dict = field(default_factory=dict)

    @property
    def address(self) -> str:
        """Terraform address used when other declarations reference this one."""
        if self.kind == "provider":
            return self.type
        if self.kind == "data":
            return f"data.{self.type}.{self.name}"
        if self.kind == "module":
            return f"module.{self.name}"
        return f"{self.type}.{self.name}"

    def ref(self, attribute: str) -> Ref:
        """
        Reference one of this declaration's readable attributes.

        Raises:
            GraphError: If the contract does not expose the attribute
        """
        contract = get_resource_contract(self.type) or {}
        if attribute not in contract.get("attributes", []):
            raise GraphError(
                f"'{self.name}' ({self.type}) has no readable attribute '{attribute}'"
            )
        return Ref(declaration=self.name, address=self.address, attribute=attribute)


@dataclass
class Output:
    """Named stack output. Sensitive values are redacted by Terraform."""
    name: str
    value: Any
    sensitive: bool = False
    description: Optional[str] = None


@dataclass(frozen=True)
class RemoteBackend:
    """Remote workspace that stores the stack's apply state."""
    hostname: str
    organization: str
    workspace: str


class DeclarationGraph:
    """
    All declarations and outputs of one stack, in construction order.

    A declaration may only reference declarations that were added before it,
    so the graph is acyclic by construction.
    """

    def __init__(self, stack_name: str):
        self.stack_name = stack_name
        self.declarations: dict[str, Declaration] = {}
        self.outputs: dict[str, Output] = {}
        self.backend: Optional[RemoteBackend] = None

    def __len__(self) -> int:
        return len(self.declarations)

    def __contains__(self, name: str) -> bool:
        return name in self.declarations

    def get(self, name: str) -> Declaration:
        try:
            return self.declarations[name]
        except KeyError:
            raise GraphError(f"No declaration named '{name}'") from None

    def declare(self, kind: str, resource_type: str, name: str, /, **attributes) -> Declaration:
        """
        Add a declaration to the graph.

        Args:
            kind: "provider", "data", "module" or "resource"
            resource_type: Contract type, e.g. "aws_instance"
            name: Logical name, unique within the graph
            **attributes: Literal values or deferred expressions

        Returns:
            The new Declaration

        Raises:
            GraphError: On unknown types, duplicate names or forward references
        """
        contract = get_resource_contract(resource_type)
        if not contract:
            raise GraphError(f"Unknown declaration type: {resource_type}")
        if contract["kind"] != kind:
            raise GraphError(
                f"'{resource_type}' is a {contract['kind']}, not a {kind}"
            )
        if name in self.declarations:
            raise GraphError(f"Duplicate declaration name: {name}")

        self._check_references(name, attributes)

        declaration = Declaration(name=name, kind=kind, type=resource_type, attributes=attributes)
        self.declarations[name] = declaration
        logger.debug("Declared %s", declaration.address)
        return declaration

    def add_output(self, name: str, value: Any, sensitive: bool = False,
                   description: Optional[str] = None) -> Output:
        """Add a named output bound to a literal or deferred value."""
        if name in self.outputs:
            raise GraphError(f"Duplicate output name: {name}")

        self._check_references(f"output.{name}", value)

        output = Output(name=name, value=value, sensitive=sensitive, description=description)
        self.outputs[name] = output
        logger.debug("Declared output %s%s", name, " (sensitive)" if sensitive else "")
        return output

    def use_remote_backend(self, backend: RemoteBackend) -> None:
        """Register the remote workspace that stores this stack's state."""
        self.backend = backend

    def _check_references(self, owner: str, value: Any) -> None:
        for ref in references(value):
            if ref.declaration not in self.declarations:
                raise GraphError(
                    f"'{owner}' references '{ref.declaration}', which is not declared yet"
                )


@dataclass
class GraphIssue:
    """
    Represents a validation failure in a composed graph.

    Returned by the validator; the graph is not synthesized while any exist.
    """
    name: str  # Declaration name, or "output.<name>"
    path: str  # Dot-path like "attributes.tags" or "attributes.vpc_id"
    reason: str  # Human-readable explanation
