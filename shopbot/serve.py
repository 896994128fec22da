"""Launch script that starts the Shopbot API under Uvicorn."""

from __future__ import annotations

import importlib
import logging
import os

import uvicorn

logger = logging.getLogger("shopbot.launcher")


def main() -> None:
    try:
        app_module = importlib.import_module("shopbot.main")
    except Exception:
        logger.exception("Unable to import shopbot.main")
        raise
    app = app_module.app  # type: ignore[attr-defined]

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
