from __future__ import annotations
from typing import List
from flask import abort


def parse_sort(sort_expr: str, allowed: dict) -> List:
    """Turn "-createdAt,status" into order_by clauses; 400 on keys outside ``allowed``."""
    clauses = []
    for token in (t.strip() for t in sort_expr.split(',')):
        if not token:
            continue
        key = token.lstrip('-')
        column = allowed.get(key)
        if column is None:
            abort(400, description=f'Invalid sort field {key}')
        clauses.append(column.desc() if token.startswith('-') else column.asc())
    return clauses


def apply_multi_sort(query, sort_expr: str | None, allowed: dict, default_clause, tie_breaker):
    """Order by the requested fields (or ``default_clause``), always ending on ``tie_breaker``."""
    clauses = parse_sort(sort_expr, allowed) if sort_expr else []
    return query.order_by(*(clauses or [default_clause]), tie_breaker.asc())
