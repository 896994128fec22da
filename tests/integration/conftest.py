"""Point the application at throwaway storage before ``shopbot.main`` is imported."""

import os
import tempfile
from pathlib import Path

_FIXTURES = Path(__file__).resolve().parent.parent / "fixtures"
_DATA_DIR = Path(tempfile.mkdtemp(prefix="shopbot-tests-"))

os.environ["SQLITE_PATH"] = str(_DATA_DIR / "shopbot.db")
os.environ["CATALOG_PATH"] = str(_FIXTURES / "catalog.json")
os.environ["SWEEP_INTERVAL_SECONDS"] = "0"
os.environ.setdefault("LOG_LEVEL", "WARNING")
