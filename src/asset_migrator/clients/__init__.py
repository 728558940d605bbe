"""
Client module for the migration backend.

Provides an httpx-based client for balance snapshots, gas and native
prices, and the relay service.
"""

from .http_client import MigrationApiClient

__all__ = ["MigrationApiClient"]
