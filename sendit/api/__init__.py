"""REST API for Send-It."""

from .app import create_app

__all__ = ["create_app"]
