"""Log parser module - parsing only, no storage."""
from .logparser import LogParser

__all__ = ["LogParser"]
