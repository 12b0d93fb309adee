"""Weekly snapshot composer and archive for a private FPL classic league."""

from .cli import main

__all__ = ["main"]
