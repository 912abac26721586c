"""Utility modules for switchboard."""

from switchboard.utils.logging import get_logger, setup_logging
from switchboard.utils.platform import get_config_dir, get_data_dir, get_platform

__all__ = [
    "get_logger",
    "setup_logging",
    "get_config_dir",
    "get_data_dir",
    "get_platform",
]
