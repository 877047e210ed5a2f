"""Passkey Relying-Party request handler exposing the Flask app factory."""

from .app import create_app

__all__ = ["create_app"]
