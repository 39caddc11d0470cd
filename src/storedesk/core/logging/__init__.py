from .setup import ContextFilter, configure_logging, get_logger

__all__ = ["ContextFilter", "configure_logging", "get_logger"]
