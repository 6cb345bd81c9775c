"""
RemoteDB - API-key protected remote SQL gateway

A FastAPI service that lets remote clients run SQL against a MySQL
keyspace without holding database credentials, with per-client rate
limiting, query validation for restricted keys and daily query logs.
"""

__version__ = "0.1.0"

from .main import app

__all__ = ["app"]
