"""
ai-doc-pal - index markdown documentation and serve it to AI agents over MCP.

Turns a folder of .md/.mdx files into a local vector index and exposes
semantic search over it to any MCP client (Claude Code, Claude Desktop, Cursor).

Stack:
- Python + FastMCP (official SDK)
- SQLite (one database file per documentation base)
- numpy (exact nearest-neighbor search over stored vectors)
- httpx (Ollama / OpenAI / OpenAI-compatible embedding endpoints)
- Markdown (source of truth)
"""

__version__ = "0.1.0"
