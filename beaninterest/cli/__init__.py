"""Command-line interface for beaninterest."""

from .commands import main

__all__ = ["main"]
