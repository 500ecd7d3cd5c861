"""
Exceptions Module

Responsibility:
- Define the errors raised while composing, validating and synthesizing a stack

Apply-time failures (quotas, permissions, network) belong to Terraform and
never pass through here.
"""


class CraftForgeError(Exception):
    """Base class for all craftforge errors."""
    pass


class ConfigurationError(CraftForgeError):
    """Raised when a required configuration is missing or invalid."""
    pass


class UnknownVersionError(ConfigurationError):
    """Raised when the requested server version has no download URL."""

    def __init__(self, version: str, known_versions: list):
        self.version = version
        self.known_versions = sorted(known_versions)
        super().__init__(
            f"Unknown server version '{version}'. "
            f"Known versions: {', '.join(self.known_versions) or 'none'}"
        )


class GraphError(CraftForgeError):
    """Raised when a declaration would break the graph's structure."""
    pass


class ExpressionError(CraftForgeError):
    """Raised when a deferred expression cannot be evaluated locally."""
    pass
