"""Core business logic: validation, input serialization, statistics, the Lilith client and scans.

This package has no dependency on MCP or any server framework. The FastMCP
server in ``pythia_mcp.server`` is a thin layer over it.
"""
