"""ASGI entrypoint: `uvicorn castlestay.api.app:app`."""

from castlestay.api.factory import create_app

app = create_app()
