"""DORA and flow metrics derived from pull request, deployment and workflow activity."""

__version__ = "0.1.0"
