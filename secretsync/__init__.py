"""Sync deployment secrets from a source repository into service repositories."""

__version__ = "0.1.0"
