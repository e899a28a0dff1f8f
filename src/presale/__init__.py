"""Presale contribution ledger and moderation pipeline."""

__version__ = "0.1.0"
