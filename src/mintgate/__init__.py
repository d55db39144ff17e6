"""Mint authorization, sponsor delegation and blob storage service."""

__version__ = "0.1.0"
