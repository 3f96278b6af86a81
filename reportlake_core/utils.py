"""Shared SQL helpers for reportlake core modules."""
from __future__ import annotations
import re


def _ident(name: str) -> str:
    out = re.sub(r"[^0-9a-zA-Z_]", "_", name.strip())
    if out and out[0].isdigit():
        out = "_" + out
    return out or "col"


def _col_ref(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _sql_str(val: str) -> str:
    return (val or "").replace("'", "''")


def table_name_for(source: str) -> str:
    """Warehouse table holding the rows of a report source."""
    return f"raw_{_ident(source).lower()}"
