from __future__ import annotations
"""Audit logging decorator for mutating route handlers.

Usage examples:

@audit_log('CATEGORY.CREATE', entity='Category', entity_id_key='id', meta_keys=['name', 'price'])
def create_category():
    ... return {'id': cat.id, 'name': cat.name, 'price': cat.price}, 201

@audit_log('CATEGORY.UPDATE', entity='Category', entity_id_key='id', diff_keys=['name', 'price'],
           pre_fetch=lambda a, kw: _snapshot(kw.get('category_id')))
def update_category(category_id): ...

Parameters:
  action: audit action code
  entity: optional entity label
  entity_id_key: key in the returned JSON object whose value becomes entity_id
  entity_id_arg: view keyword argument used when entity_id_key is absent
  meta_keys: keys projected from the returned JSON into meta
  diff_keys + pre_fetch: record before/after values of the listed keys under meta['changes']

Only successful (< 400) responses are audited. The view's own commit has already happened,
so the audit row is committed separately and a failure there never changes the response.
"""

import logging
from functools import wraps
from typing import Any, Callable, Iterable, Optional, Dict

from backoffice.services.audit import add_audit
from backoffice import get_db

logger = logging.getLogger(__name__)


def _extract_payload(rv: Any):
    """Return (data, status) for dict, (dict, status) and (dict, status, headers) returns."""
    if isinstance(rv, tuple) and rv:
        status = rv[1] if len(rv) > 1 and isinstance(rv[1], int) else 200
        return rv[0], status
    return rv, 200


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before_snapshot = None
            if diff_keys and pre_fetch:
                try:
                    before_snapshot = pre_fetch(args, kwargs)
                except Exception:
                    logger.warning('Audit pre-fetch failed for %s', action, exc_info=True)
            rv = fn(*args, **kwargs)
            try:
                data, status = _extract_payload(rv)
                if status >= 400:
                    return rv
                if not isinstance(data, dict):
                    data = {}
                entity_id = None
                if entity_id_key and entity_id_key in data:
                    entity_id = data.get(entity_id_key)
                elif entity_id_arg and entity_id_arg in kwargs:
                    entity_id = kwargs.get(entity_id_arg)
                meta = {k: data.get(k) for k in (meta_keys or []) if k in data}
                if diff_keys and isinstance(before_snapshot, dict):
                    changes = {}
                    for k in diff_keys:
                        if k in before_snapshot and k in data and before_snapshot.get(k) != data.get(k):
                            changes[k] = {'before': before_snapshot.get(k), 'after': data.get(k)}
                    if changes:
                        meta['changes'] = changes
                add_audit(action, entity, entity_id, meta)
                get_db().commit()
            except Exception:
                logger.warning('Audit write failed for %s', action, exc_info=True)
                try:
                    get_db().rollback()
                except Exception:
                    logger.debug('Audit rollback failed', exc_info=True)
            return rv
        return wrapper
    return outer
