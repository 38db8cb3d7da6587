from __future__ import annotations

from functools import cache
from pathlib import Path


SQL_DIR = Path(__file__).with_name("sql")


@cache
def load_sql(name: str) -> str:
    path = SQL_DIR / name
    if not path.is_file():
        raise FileNotFoundError(f"sql template is missing: {path}")
    return path.read_text(encoding="utf-8").strip()
