"""
Resource Contracts Module

Responsibility:
- Define a contract for every declaration type the stack may use
- Specify kind, owning provider, required values, readable attributes and tagging
- These contracts are used by the graph to guard references and by the validator

Contracts define WHAT a declaration must carry and expose, not its values.
"""

# Tag keys every taggable declaration must carry
COMMON_TAG_KEYS = ("app:namespace", "app:environment", "cdktf:stack-name")


# Providers
AWS_PROVIDER_CONTRACT = {
    "type": "aws",
    "kind": "provider",
    "source": "hashicorp/aws",
    "version": "~> 4.38",
    "required_values": ["region"],
    "attributes": [],
    "taggable": False
}

TLS_PROVIDER_CONTRACT = {
    "type": "tls",
    "kind": "provider",
    "source": "hashicorp/tls",
    "version": "~> 4.0",
    "required_values": [],
    "attributes": [],
    "taggable": False
}

RANDOM_PROVIDER_CONTRACT = {
    "type": "random",
    "kind": "provider",
    "source": "hashicorp/random",
    "version": "~> 3.4",
    "required_values": [],
    "attributes": [],
    "taggable": False
}


# Data sources
AVAILABILITY_ZONES_CONTRACT = {
    "type": "aws_availability_zones",
    "kind": "data",
    "provider": "aws",
    "required_values": [],
    "attributes": ["id", "names", "zone_ids"],
    "taggable": False
}

AMI_CONTRACT = {
    "type": "aws_ami",
    "kind": "data",
    "provider": "aws",
    "required_values": ["filter"],
    "attributes": ["id", "arn", "image_id", "name"],
    "taggable": False
}


# Modules
# The registry module is fetched by Terraform; it declares its own providers
VPC_MODULE_CONTRACT = {
    "type": "vpc",
    "kind": "module",
    "provider": "aws",
    "source": "terraform-aws-modules/vpc/aws",
    "version": "3.18.1",
    "required_values": ["name", "cidr", "azs"],
    "attributes": [
        "vpc_id",
        "public_subnets",
        "private_subnets",
        "database_subnets",
        "natgw_ids"
    ],
    "taggable": True
}


# Resources
SECURITY_GROUP_CONTRACT = {
    "type": "aws_security_group",
    "kind": "resource",
    "provider": "aws",
    "required_values": ["vpc_id", "ingress", "egress"],
    "attributes": ["id", "arn", "name"],
    "taggable": True
}

PRIVATE_KEY_CONTRACT = {
    "type": "tls_private_key",
    "kind": "resource",
    "provider": "tls",
    "required_values": ["algorithm"],
    "attributes": ["id", "public_key_openssh", "public_key_pem", "private_key_pem"],
    "taggable": False
}

KEY_PAIR_CONTRACT = {
    "type": "aws_key_pair",
    "kind": "resource",
    "provider": "aws",
    "required_values": ["public_key"],
    "attributes": ["id", "arn", "key_name"],
    "taggable": True
}

SHUFFLE_CONTRACT = {
    "type": "random_shuffle",
    "kind": "resource",
    "provider": "random",
    "required_values": ["input"],
    "attributes": ["id", "result"],
    "taggable": False
}

INSTANCE_CONTRACT = {
    "type": "aws_instance",
    "kind": "resource",
    "provider": "aws",
    "required_values": ["ami", "instance_type", "subnet_id"],
    "attributes": ["id", "arn", "public_ip", "private_ip"],
    "taggable": True
}


# Contract lookup
RESOURCE_CONTRACTS = {
    contract["type"]: contract
    for contract in (
        AWS_PROVIDER_CONTRACT,
        TLS_PROVIDER_CONTRACT,
        RANDOM_PROVIDER_CONTRACT,
        AVAILABILITY_ZONES_CONTRACT,
        AMI_CONTRACT,
        VPC_MODULE_CONTRACT,
        SECURITY_GROUP_CONTRACT,
        PRIVATE_KEY_CONTRACT,
        KEY_PAIR_CONTRACT,
        SHUFFLE_CONTRACT,
        INSTANCE_CONTRACT,
    )
}


def get_resource_contract(resource_type: str):
    """Retrieve a resource contract by declaration type."""
    return RESOURCE_CONTRACTS.get(resource_type)
