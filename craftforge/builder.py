"""
Stack Builder Module

Responsibility:
- Compose the full Minecraft server stack into a DeclarationGraph
- Wire every declaration to earlier ones through deferred references
- Fail fast on an unknown server version before anything is declared

This is PURE composition logic. Zone counts, subnet ids, the machine image
and the shuffled subnet order are only known to Terraform at apply time and
stay deferred expressions here.
"""

import logging
from typing import Any

from craftforge.config import StackConfig
from craftforge.exceptions import ConfigurationError
from craftforge.expressions import Call, Fn, template_variables
from craftforge.models import DeclarationGraph
from craftforge.resource_db import (
    AMI_FILTERS,
    INSTANCE_TYPE,
    KEY_ALGORITHM,
    KEY_RSA_BITS,
    SERVER_PORT,
    SSH_PORT,
    STARTUP_TEMPLATE_VARIABLE,
    SUBNET_NEWBITS,
    SUBNET_TIER_OFFSETS,
    get_download_url,
    get_startup_template_path,
)

logger = logging.getLogger(__name__)


def build_stack(config: StackConfig, stack_name: str) -> DeclarationGraph:
    """
    Build a new graph holding the complete stack.

    Args:
        config: Stack parameters
        stack_name: Name of the stack, also used in the tag set

    Returns:
        The composed DeclarationGraph

    Raises:
        UnknownVersionError: If config.software_version has no download URL
    """
    graph = DeclarationGraph(stack_name)
    compose_stack(graph, config)
    return graph


def usable_zone_count(zone_names: Any, max_azs: int) -> Call:
    """Number of zones to spread over: min(reported zones, ceiling)."""
    return Fn.min(Fn.length(zone_names), max_azs)


def usable_zones(zone_names: Any, max_azs: int) -> Call:
    """The first usable_zone_count() zone names."""
    return Fn.slice(zone_names, 0, usable_zone_count(zone_names, max_azs))


def subnet_blocks(vpc_cidr: str, max_azs: int) -> dict:
    """
    Pre-compute subnet CIDR blocks for every tier up to the zone ceiling.

    The zone count is unknown until apply, and Terraform cannot size a list
    from an unknown value, so blocks are generated for max_azs zones and
    truncated later with slice().

    Returns:
        Dict of tier name -> list of cidrsubnet() calls, max_azs long
    """
    return {
        tier: [Fn.cidrsubnet(vpc_cidr, SUBNET_NEWBITS, offset + index) for index in range(max_azs)]
        for tier, offset in SUBNET_TIER_OFFSETS.items()
    }


def compose_stack(graph: DeclarationGraph, config: StackConfig) -> DeclarationGraph:
    """
    Declare the stack's providers, network, firewall, key pair, instance and outputs.

    Returns:
        The same graph, for chaining

    Raises:
        UnknownVersionError: If the server version has no download URL
        ConfigurationError: If the startup template is missing or invalid
    """
    # Everything that can fail is resolved before the first declaration
    download_url = get_download_url(config.software_version)
    user_data = _startup_script(download_url)

    logger.info(
        "Composing stack %s (namespace=%s, environment=%s, region=%s, version=%s)",
        graph.stack_name, config.namespace, config.environment,
        config.region, config.software_version
    )

    namespace = config.namespace
    tags = {
        "app:namespace": namespace,
        "app:environment": config.environment,
        "cdktf:stack-name": graph.stack_name
    }

    # Providers
    graph.declare("provider", "aws", "aws", region=config.region)
    graph.declare("provider", "tls", "tls")
    graph.declare("provider", "random", "random")

    # Network
    azs = graph.declare("data", "aws_availability_zones", "azs", state="available")
    zone_names = azs.ref("names")
    num_azs = usable_zone_count(zone_names, config.max_azs)

    blocks = subnet_blocks(config.vpc_cidr, config.max_azs)

    vpc = graph.declare(
        "module", "vpc", "vpc",
        name=f"{namespace}-vpc",
        cidr=config.vpc_cidr,
        private_subnets=Fn.slice(blocks["private"], 0, num_azs),
        database_subnets=Fn.slice(blocks["database"], 0, num_azs),
        public_subnets=Fn.slice(blocks["public"], 0, num_azs),
        enable_nat_gateway=True,
        single_nat_gateway=True,
        azs=usable_zones(zone_names, config.max_azs),
        tags=dict(tags)
    )

    # Firewall
    ingress_from = list(config.allow_ingress_from)
    sg = graph.declare(
        "resource", "aws_security_group", "minecraftSg",
        vpc_id=vpc.ref("vpc_id"),
        tags=dict(tags),
        ingress=[
            _security_rule(ingress_from, "SSH ingress", SSH_PORT, SSH_PORT, "tcp"),
            _security_rule(ingress_from, "Minecraft server ingress", SERVER_PORT, SERVER_PORT, "tcp")
        ],
        egress=[
            _security_rule(["0.0.0.0/0"], "Internet egress", 0, 0, "-1")
        ]
    )

    # Key pair
    tls_keypair = graph.declare(
        "resource", "tls_private_key", "tlsKeyPair",
        algorithm=KEY_ALGORITHM,
        rsa_bits=KEY_RSA_BITS
    )
    ec2_keypair = graph.declare(
        "resource", "aws_key_pair", "keypair",
        tags=dict(tags),
        key_name_prefix=namespace,
        public_key=tls_keypair.ref("public_key_openssh")
    )

    # Machine image
    ami = graph.declare(
        "data", "aws_ami", "ami",
        most_recent=True,
        filter=[{"name": f["name"], "values": list(f["values"])} for f in AMI_FILTERS]
    )

    # Re-shuffled by Terraform whenever the subnet list changes
    subnets = graph.declare(
        "resource", "random_shuffle", "shuffle",
        input=vpc.ref("public_subnets")
    )

    instance = graph.declare(
        "resource", "aws_instance", "minecraftServer",
        ami=ami.ref("id"),
        associate_public_ip_address=True,
        subnet_id=Fn.element(subnets.ref("result"), 0),
        user_data=user_data,
        key_name=ec2_keypair.ref("key_name"),
        instance_type=INSTANCE_TYPE,
        vpc_security_group_ids=[sg.ref("id")],
        tags=dict(tags)
    )

    # Outputs
    graph.add_output("publicIp", instance.ref("public_ip"),
                     description="Public IP address of the server")
    graph.add_output("privateIp", instance.ref("private_ip"),
                     description="Private IP address of the server")
    graph.add_output("instanceId", instance.ref("id"),
                     description="EC2 instance id")
    graph.add_output("privateKey", tls_keypair.ref("private_key_pem"), sensitive=True,
                     description="PEM encoded private key for SSH access")

    logger.info(
        "Composed %d declarations and %d outputs for %s",
        len(graph.declarations), len(graph.outputs), graph.stack_name
    )
    return graph


def _security_rule(cidr_blocks: list, description: str, from_port: int,
                   to_port: int, protocol: str) -> dict:
    """Inline security group rule. Terraform JSON requires every rule field."""
    return {
        "cidr_blocks": list(cidr_blocks),
        "description": description,
        "from_port": from_port,
        "to_port": to_port,
        "protocol": protocol,
        "ipv6_cidr_blocks": [],
        "prefix_list_ids": [],
        "security_groups": [],
        "self": False
    }


def _startup_script(download_url: str) -> Call:
    """
    Build the templatefile() call that renders the instance boot script.

    Raises:
        ConfigurationError: If the template is missing or uses other variables
    """
    template_path = get_startup_template_path()
    try:
        text = template_path.read_text()
    except OSError as e:
        raise ConfigurationError(f"Cannot read startup template {template_path}: {e}") from e

    unexpected = [name for name in template_variables(text) if name != STARTUP_TEMPLATE_VARIABLE]
    if unexpected:
        raise ConfigurationError(
            f"Startup template {template_path} references unsupported variables: {', '.join(unexpected)}"
        )

    return Fn.templatefile(str(template_path), {STARTUP_TEMPLATE_VARIABLE: download_url})
