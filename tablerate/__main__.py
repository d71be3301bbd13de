from __future__ import annotations

import logging
import os

import uvicorn

from .app import app


def main() -> None:
    """Serve the API with uvicorn (``python -m tablerate``)."""
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))


if __name__ == "__main__":
    main()
