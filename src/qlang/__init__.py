"""Source intelligence for the q language: lexer, annotator and resolver."""

from __future__ import annotations

__version__ = "0.1.0"
