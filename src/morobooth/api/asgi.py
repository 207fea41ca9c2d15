"""ASGI entrypoint for the morobooth API."""

from morobooth.api.app import create_app
from morobooth.containers import build_container

app = create_app(build_container())
