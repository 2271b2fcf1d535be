"""Logging setup for command line use of imcdatasets.

Library modules only log through stdlib ``logging``; applications opt into
loguru sinks with :func:`setup_logging`.
"""

from .loguru_bootstrap import InterceptHandler, setup_logging

__all__ = ["InterceptHandler", "setup_logging"]
