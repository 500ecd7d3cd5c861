"""
Stack Configuration Module

Responsibility:
- Define the configuration record accepted by the stack builder
- Apply defaults and validate names, zone ceiling and CIDR ranges
- Load a configuration record from a YAML file (library API for callers
  composing their own stacks; the entry point uses built-in defaults)

The server version is deliberately not checked here: an unknown version is
reported by the builder when it composes the stack.
"""

import ipaddress
from pathlib import Path
from typing import List

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from craftforge.exceptions import ConfigurationError
from craftforge.resource_db import DEFAULT_SOFTWARE_VERSION, SUBNET_NEWBITS

# Tiers are 10 network numbers apart, so more zones would overlap
MAX_ZONE_CEILING = 10


class StackConfig(BaseModel):
    """Parameters of one Minecraft server stack."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    namespace: str = Field(min_length=1)
    environment: str = Field(min_length=1)
    region: str = Field(min_length=1)
    max_azs: int = Field(default=3, ge=1, le=MAX_ZONE_CEILING, alias="maxAzs")
    vpc_cidr: str = Field(default="10.0.0.0/16", alias="vpcCidr")
    software_version: str = Field(default=DEFAULT_SOFTWARE_VERSION, alias="softwareVersion")
    allow_ingress_from: List[str] = Field(
        default_factory=lambda: ["0.0.0.0/0"],
        alias="allowIngressFrom"
    )

    @field_validator("vpc_cidr")
    @classmethod
    def validate_vpc_cidr(cls, value: str) -> str:
        network = _parse_ipv4_network(value)
        if network.prefixlen + SUBNET_NEWBITS > network.max_prefixlen:
            raise ValueError(
                f"VPC CIDR {value} is too small to carve /{network.prefixlen + SUBNET_NEWBITS} subnets"
            )
        return value

    @field_validator("allow_ingress_from")
    @classmethod
    def validate_ingress(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("At least one ingress CIDR is required")
        for cidr in value:
            _parse_ipv4_network(cidr)
        return value


def _parse_ipv4_network(value: str) -> ipaddress.IPv4Network:
    try:
        network = ipaddress.ip_network(value)
    except ValueError as e:
        raise ValueError(f"Invalid CIDR block '{value}': {e}") from e
    if network.version != 4:
        raise ValueError(f"Only IPv4 CIDR blocks are supported: {value}")
    return network


def load_stack_config(path) -> StackConfig:
    """
    Load a stack configuration from a YAML file.

    Args:
        path: Path to a YAML mapping with the StackConfig fields
            (snake_case or camelCase)

    Returns:
        Validated StackConfig

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Config file does not exist: {config_path}")

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    try:
        return StackConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid stack configuration in {config_path}:\n{e}") from e
