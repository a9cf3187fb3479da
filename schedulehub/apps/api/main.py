"""ASGI entrypoint: ``uvicorn schedulehub.apps.api.main:app``."""

from .app import create_app

app = create_app()
