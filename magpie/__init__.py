"""Magpie: card lookup and query engine for Inscryption fan formats."""

__version__ = "0.1.0"
