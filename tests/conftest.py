import pytest

from craftforge.builder import build_stack
from craftforge.config import StackConfig
from craftforge.exceptions import ExpressionError

AZS_ADDRESS = "data.aws_availability_zones.azs"


@pytest.fixture
def sample_config():
    """Config used throughout the stack tests."""
    return StackConfig(namespace="mc", environment="sandbox", region="ap-southeast-1")


@pytest.fixture
def stack(sample_config):
    """Fully composed stack for the sample config."""
    return build_stack(sample_config, "mc-stack")


def make_resolver(zone_count=3):
    """
    Resolver for evaluate() that knows the availability zone names.

    Any other reference is unknown at composition time and fails the test.
    """
    zones = [f"ap-southeast-1{chr(ord('a') + i)}" for i in range(zone_count)]

    def resolve(ref):
        if ref.address == AZS_ADDRESS and ref.attribute == "names":
            return zones
        raise ExpressionError(f"Unexpected reference {ref.render()}")

    return resolve


@pytest.fixture
def zone_resolver():
    """Factory for resolvers reporting a given number of zones."""
    return make_resolver
