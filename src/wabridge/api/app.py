"""ASGI entrypoint: ``uvicorn wabridge.api.app:app``.

Settings come from the environment; see wabridge.config.
"""

from wabridge.api.factory import create_app

app = create_app()
