"""MCP server exposing semantic retrieval and knowledge tools."""

from retrieval_mcp.mcp_server import __version__, run, run_server

__all__ = ["__version__", "run", "run_server"]
