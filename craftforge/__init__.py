"""
craftforge: declarative Terraform stack for a single Minecraft server on AWS.
"""

__version__ = "0.1.0"
