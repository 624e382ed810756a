"""MCP tools for the ai-doc-pal server.

This module defines the tools exposed by the MCP server:
- search_docs: Semantic search through the documentation
- read_file: Read a complete documentation file by path
- list_files: List all indexed documentation files
"""

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from doc_pal.service import DEFAULT_SEARCH_LIMIT, QueryService, ToolResult


def _unwrap(result: ToolResult) -> str:
    """Return the text, or raise so the client receives an error result."""
    if result.is_error:
        raise ToolError(result.text)
    return result.text


def register_tools(mcp: FastMCP, service: QueryService, base_name: str) -> None:
    """Register the documentation tools with the FastMCP server.

    Args:
        mcp: FastMCP server instance
        service: Query service bound to the base
        base_name: Name of the documentation base, used in tool descriptions
    """

    @mcp.tool(
        description=(
            f"Search through {base_name} documentation using semantic similarity. "
            "Returns relevant chunks from markdown files."
        )
    )
    def search_docs(query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> str:
        """Search the documentation.

        Args:
            query: The search query - describe what you're looking for
            limit: Maximum number of results to return (default: 5)
        """
        return _unwrap(service.search(query, limit=limit))

    @mcp.tool(
        description=(
            f"Read the full content of a documentation file from {base_name}. "
            "Use this after search_docs to get more context."
        )
    )
    def read_file(file_path: str) -> str:
        """Read a documentation file.

        Args:
            file_path: Relative path to the documentation file (e.g., "getting-started.md")
        """
        return _unwrap(service.read_file(file_path))

    @mcp.tool(description=f"List all documentation files in {base_name}.")
    def list_files() -> str:
        """List the indexed documentation files."""
        return _unwrap(service.list_files())
