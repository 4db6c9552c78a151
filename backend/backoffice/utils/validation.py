from __future__ import annotations
"""Reusable validation helpers for request payloads.

All helpers abort with 400 so handlers can use them inline.
"""
from typing import Any, Iterable, List, Optional
from flask import abort


def validate_status(new_status: str, allowed: Iterable[str], field_name: str = 'status') -> str:
    if new_status not in allowed:
        abort(400, description=f"{field_name} invalid")
    return new_status


def require_fields(data: dict, fields: Iterable[str]):
    missing = [f for f in fields if data.get(f) in (None, '') or (isinstance(data.get(f), str) and not data.get(f).strip())]
    if missing:
        abort(400, description=f"Missing required fields: {', '.join(missing)}")


def clean_text(value: Any, field_name: str) -> Optional[str]:
    """Trimmed string, None for null/blank; 400 for non-strings."""
    if value is None:
        return None
    if not isinstance(value, str):
        abort(400, description=f"{field_name} must be a string")
    value = value.strip()
    return value or None


def parse_price(value: Any) -> float:
    try:
        price = float(value)
    except (TypeError, ValueError):
        abort(400, description='price must be a number')
    if price < 0:
        abort(400, description='price must not be negative')
    return price


def normalize_names(values: Any, field_name: str = 'technicians') -> List[str]:
    """Trim, drop blanks and collapse duplicates, preserving first-seen order."""
    if not isinstance(values, list):
        abort(400, description=f"{field_name} must be an array")
    out: List[str] = []
    for v in values:
        if v is None:
            continue
        if not isinstance(v, str):
            abort(400, description=f"{field_name} entries must be strings")
        name = v.strip()
        if name and name not in out:
            out.append(name)
    return out

__all__ = ['validate_status', 'require_fields', 'clean_text', 'parse_price', 'normalize_names']
