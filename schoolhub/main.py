"""Entrypoint for running the API via `python -m schoolhub.main`."""

import logging
import os

import uvicorn

from .app import create_app
from .config import load_settings


logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler()],
)

app = create_app(load_settings(os.getenv("SCHOOLHUB_ENV")))


def run() -> None:
    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":  # pragma: no cover
    run()
