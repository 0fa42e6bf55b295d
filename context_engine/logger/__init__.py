from context_engine.logger.mcp_logger import configure_logging

__all__ = ["configure_logging"]
