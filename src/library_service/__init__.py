"""Library Service - catalog, users and checkout lifecycle over a JSON HTTP API."""

__version__ = "0.1.0"
