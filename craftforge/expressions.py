"""
Deferred Expressions Module

Responsibility:
- Represent values that only Terraform can resolve at apply time
  (attribute references, function calls)
- Render those values as HCL expressions and as "${...}" tokens for Terraform JSON
- Evaluate expression trees locally against supplied attribute values

A value in a declaration is either a plain Python literal (str, int, bool,
list, dict) or an Expression node. Nodes are never evaluated during
composition; evaluate() exists for checks and tests only.
"""

import ipaddress
import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator

from craftforge.exceptions import ExpressionError

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")

# "$${" and "%%{" are the escapes for a literal "${" and "%{"
_TEMPLATE_TOKEN = re.compile(r"\$\$\{|%%\{|([$%])\{([^}]*)\}")
_TEMPLATE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_TEMPLATE_STRING = re.compile(r'"(?:[^"\\]|\\.)*"')
# Root identifiers: not an attribute after ".", not a function name before "("
_TEMPLATE_ROOT = re.compile(r"(?<![\w.])([A-Za-z_][A-Za-z0-9_]*)\b(?!\s*\()")
_TEMPLATE_KEYWORDS = frozenset({"if", "else", "endif", "for", "in", "endfor", "true", "false", "null"})


class Expression:
    """Base class for deferred values."""

    def render(self) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return "${" + self.render() + "}"


@dataclass(frozen=True)
class Ref(Expression):
    """Readable attribute of a previously declared declaration."""
    declaration: str  # logical name of the target declaration
    address: str  # Terraform address, e.g. "data.aws_ami.ami"
    attribute: str

    def render(self) -> str:
        return f"{self.address}.{self.attribute}"


@dataclass(frozen=True)
class Call(Expression):
    """Terraform function call."""
    name: str
    args: tuple = ()

    def render(self) -> str:
        return f"{self.name}({', '.join(render_hcl(arg) for arg in self.args)})"


class Fn:
    """Builders for the Terraform functions used by the stack."""

    @staticmethod
    def min(*values) -> Call:
        return Call("min", tuple(values))

    @staticmethod
    def length(value) -> Call:
        return Call("length", (value,))

    @staticmethod
    def slice(value, start, end) -> Call:
        return Call("slice", (value, start, end))

    @staticmethod
    def cidrsubnet(prefix, newbits, netnum) -> Call:
        return Call("cidrsubnet", (prefix, newbits, netnum))

    @staticmethod
    def element(value, index) -> Call:
        return Call("element", (value, index))

    @staticmethod
    def templatefile(path, variables: dict) -> Call:
        return Call("templatefile", (path, variables))


def references(value: Any) -> Iterator[Ref]:
    """Yield every Ref nested anywhere inside a value."""
    if isinstance(value, Ref):
        yield value
    elif isinstance(value, Call):
        for arg in value.args:
            yield from references(arg)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from references(item)
    elif isinstance(value, dict):
        for item in value.values():
            yield from references(item)


def render_hcl(value: Any) -> str:
    """Render a literal or expression node as an HCL expression."""
    if isinstance(value, Expression):
        return value.render()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if value is None:
        return "null"
    if isinstance(value, str):
        return _escape_template(json.dumps(value))
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(render_hcl(item) for item in value) + "]"
    if isinstance(value, dict):
        items = []
        for key, item in value.items():
            rendered_key = key if _IDENTIFIER.match(key) else json.dumps(key)
            items.append(f"{rendered_key} = {render_hcl(item)}")
        return "{" + ", ".join(items) + "}"

    raise ExpressionError(f"Cannot render value of type {type(value).__name__}")


def to_token(value: Any) -> Any:
    """
    Convert a value into its Terraform JSON form.

    Expression nodes become "${...}" strings; literal strings get their
    "${" sequences escaped so Terraform does not interpolate them.
    """
    if isinstance(value, Expression):
        return str(value)
    if isinstance(value, str):
        return _escape_template(value)
    if isinstance(value, (list, tuple)):
        return [to_token(item) for item in value]
    if isinstance(value, dict):
        return {key: to_token(item) for key, item in value.items()}
    return value


def _escape_template(text: str) -> str:
    return text.replace("${", "$${").replace("%{", "%%{")


# ---------------------------------------------------------------------------
# Local evaluation
# ---------------------------------------------------------------------------

def evaluate(value: Any, resolve: Callable[[Ref], Any]) -> Any:
    """
    Evaluate an expression tree.

    Args:
        value: Literal or expression node
        resolve: Callback returning the value of a Ref

    Returns:
        The fully evaluated Python value

    Raises:
        ExpressionError: On unknown functions or invalid arguments
    """
    if isinstance(value, Ref):
        return resolve(value)
    if isinstance(value, Call):
        function = _FUNCTIONS.get(value.name)
        if function is None:
            raise ExpressionError(f"Unsupported function '{value.name}'")
        args = [evaluate(arg, resolve) for arg in value.args]
        return function(*args)
    if isinstance(value, (list, tuple)):
        return [evaluate(item, resolve) for item in value]
    if isinstance(value, dict):
        return {key: evaluate(item, resolve) for key, item in value.items()}
    return value


def render_template(text: str, variables: dict) -> str:
    """
    Substitute ${name} placeholders the way templatefile() does.

    Only bare variable interpolations are supported locally; function
    calls, attribute access and %{...} directives raise ExpressionError.
    """

    def substitute(match):
        sigil, content = match.group(1), match.group(2)
        if sigil is None:
            return match.group(0)[1:]
        name = content.strip().strip("~").strip()
        if sigil == "%" or not _TEMPLATE_NAME.match(name):
            raise ExpressionError(f"Unsupported template expression '{match.group(0)}'")
        if name not in variables:
            raise ExpressionError(f"Template references undefined variable '{name}'")
        return str(variables[name])

    return _TEMPLATE_TOKEN.sub(substitute, text)


def template_variables(text: str) -> list:
    """
    Names of all variables a template references, sorted.

    Covers interpolations and directives, including variables used inside
    function calls and as the root of attribute access.
    """
    names = set()
    for sigil, content in _TEMPLATE_TOKEN.findall(text):
        if not sigil:
            continue
        code = _TEMPLATE_STRING.sub('""', content)
        names.update(
            name for name in _TEMPLATE_ROOT.findall(code)
            if name not in _TEMPLATE_KEYWORDS
        )
    return sorted(names)


def _min(*values):
    if not values:
        raise ExpressionError("min() needs at least one argument")
    return min(values)


def _length(value):
    return len(value)


def _slice(values, start, end):
    if not 0 <= start <= end <= len(values):
        raise ExpressionError(
            f"slice() bounds [{start}, {end}) are out of range for a list of {len(values)}"
        )
    return list(values[start:end])


def _cidrsubnet(prefix, newbits, netnum):
    try:
        network = ipaddress.ip_network(prefix, strict=False)
    except ValueError as e:
        raise ExpressionError(f"cidrsubnet(): invalid prefix '{prefix}': {e}") from e

    new_prefix = network.prefixlen + newbits
    if new_prefix > network.max_prefixlen:
        raise ExpressionError(
            f"cidrsubnet(): cannot extend /{network.prefixlen} by {newbits} bits"
        )
    if not 0 <= netnum < 2 ** newbits:
        raise ExpressionError(
            f"cidrsubnet(): network number {netnum} does not fit in {newbits} bits"
        )

    block_size = 2 ** (network.max_prefixlen - new_prefix)
    address = network.network_address + netnum * block_size
    return str(ipaddress.ip_network(f"{address}/{new_prefix}"))


def _element(values, index):
    if not values:
        raise ExpressionError("element() cannot index an empty list")
    if index < 0:
        raise ExpressionError(f"element() index {index} must not be negative")
    return values[index % len(values)]


def _templatefile(path, variables):
    try:
        text = Path(path).read_text()
    except OSError as e:
        raise ExpressionError(f"templatefile(): cannot read '{path}': {e}") from e
    return render_template(text, variables)


_FUNCTIONS = {
    "min": _min,
    "length": _length,
    "slice": _slice,
    "cidrsubnet": _cidrsubnet,
    "element": _element,
    "templatefile": _templatefile,
}
