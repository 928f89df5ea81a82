"""MCP Hub: central registry and config projection for MCP client applications."""

__version__ = "0.1.0"

__all__ = ["__version__"]
