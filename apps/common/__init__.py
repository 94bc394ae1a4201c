"""
Common utilities and shared components
"""
from .jsonlog import JsonFormatter, setup_logging
from .metrics import REG, Registry

__all__ = ["JsonFormatter", "setup_logging", "REG", "Registry"]
