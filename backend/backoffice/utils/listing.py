from __future__ import annotations
from typing import Tuple
from flask import request, abort
from sqlalchemy.orm import Query
from backoffice.config.pagination import normalize_pagination


def apply_pagination(q: Query) -> Tuple[Query, int, int, int]:
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))
    total = q.count()
    return q.offset(offset).limit(limit), total, limit, offset


def build_list_payload(key: str, rows: list, total: int, limit: int, offset: int):
    return {
        key: rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows)
        }
    }


def parse_bool_arg(name: str):
    raw = request.args.get(name)
    if raw is None or raw == '':
        return None
    if raw.lower() in ('true', '1', 'yes'):
        return True
    if raw.lower() in ('false', '0', 'no'):
        return False
    abort(400, description=f'{name} must be true or false')
