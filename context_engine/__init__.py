"""ContextEngine MCP gateway."""

__version__ = "1.0.13"

__all__ = ["__version__"]
