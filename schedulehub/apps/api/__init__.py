"""HTTP API for coordinators and candidates."""

from .app import create_app

__all__ = ["create_app"]
