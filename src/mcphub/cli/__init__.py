"""Command-line interface for MCP Hub."""
