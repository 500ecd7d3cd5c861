"""
Resource Database Module

Responsibility:
- Static, immutable lookup tables used during composition
- Server version -> download URL table (fail-fast lookup)
- Machine image filters, instance size and network constants

Extend SOFTWARE_DOWNLOAD_URLS to support another server version.
"""

from importlib import resources
from pathlib import Path
from types import MappingProxyType

from craftforge.exceptions import UnknownVersionError

DEFAULT_SOFTWARE_VERSION = "1.19.2"

# Server jar download URLs by version
SOFTWARE_DOWNLOAD_URLS = MappingProxyType({
    "1.19.2": "https://piston-data.mojang.com/v1/objects/f69c284232d7c7580bd89a5a4931c3581eae1378/server.jar"
})

# Most recent Amazon Linux 2 HVM image
AMI_FILTERS = (
    {"name": "owner-alias", "values": ["amazon"]},
    {"name": "name", "values": ["amzn2-ami-hvm-*-x86_64-ebs"]},
)

INSTANCE_TYPE = "t2.small"

SSH_PORT = 22
SERVER_PORT = 25565

KEY_ALGORITHM = "RSA"
KEY_RSA_BITS = 4096

# Each tier's subnets are /+8 blocks starting at this network number
SUBNET_NEWBITS = 8
SUBNET_TIER_OFFSETS = MappingProxyType({
    "private": 0,
    "database": 10,
    "public": 20
})

STARTUP_TEMPLATE_NAME = "init.sh"
STARTUP_TEMPLATE_VARIABLE = "downloadUrl"


def get_download_url(version: str) -> str:
    """
    Retrieve the server download URL for a version.

    Raises:
        UnknownVersionError: If the version has no entry in the table
    """
    url = SOFTWARE_DOWNLOAD_URLS.get(version)
    if url is None:
        raise UnknownVersionError(version, list(SOFTWARE_DOWNLOAD_URLS))
    return url


def get_startup_template_path() -> Path:
    """Absolute path of the packaged startup script template."""
    return Path(str(resources.files("craftforge") / "templates" / STARTUP_TEMPLATE_NAME))
