"""ASGI application factory and dependencies for the Homestock server."""

from homestock.server.app import app, create_app

__all__ = ["app", "create_app"]
