"""FastAPI application exposing the pipeline over HTTP."""

from .server import create_app

__all__ = ["create_app"]
