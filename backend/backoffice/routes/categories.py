from __future__ import annotations
from flask import Blueprint, request, abort
from sqlalchemy import select

from backoffice import get_db
from backoffice.constants.pages import PAGE_SETTINGS, CAP_VIEW, CAP_ADD, CAP_EDIT, CAP_DELETE
from backoffice.decorators.auth import require_page_permission
from backoffice.decorators.audit import audit_log
from backoffice.models.category import Category
from backoffice.utils.timeutil import iso, utcnow
from backoffice.utils.validation import clean_text, parse_price

categories_bp = Blueprint('categories', __name__)


def _category_json(c: Category):
    return {'id': c.id, 'name': c.name, 'price': float(c.price or 0), 'updatedAt': iso(c.updated_at)}


def _prefetch_category(category_id):
    c = get_db().get(Category, category_id) if category_id is not None else None
    return _category_json(c) if c else {}


def _get_or_404(category_id: int) -> Category:
    c = get_db().get(Category, category_id)
    if not c:
        abort(404, description='Category not found')
    return c


def _assert_unique(name: str, exclude_id=None):
    stmt = select(Category.id).where(Category.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Category.id != exclude_id)
    if get_db().execute(stmt).first():
        abort(400, description=f'Category {name} already exists')


@categories_bp.get('')
@require_page_permission(PAGE_SETTINGS, CAP_VIEW)
def list_categories():
    rows = get_db().execute(select(Category).order_by(Category.name.asc())).scalars().all()
    return {'categories': [_category_json(c) for c in rows]}


@categories_bp.post('')
@require_page_permission(PAGE_SETTINGS, CAP_ADD)
@audit_log('CATEGORY.CREATE', entity='Category', entity_id_key='id', meta_keys=['name', 'price'])
def create_category():
    data = request.get_json(silent=True) or {}
    name = clean_text(data.get('name'), 'name')
    if not name:
        abort(400, description='name and price are required')
    if data.get('price') in (None, ''):
        abort(400, description='name and price are required')
    price = parse_price(data.get('price'))
    _assert_unique(name)
    session = get_db()
    c = Category(name=name, price=price)
    session.add(c)
    session.commit()
    return _category_json(c), 201


@categories_bp.patch('/<int:category_id>')
@require_page_permission(PAGE_SETTINGS, CAP_EDIT)
@audit_log('CATEGORY.UPDATE', entity='Category', entity_id_key='id', diff_keys=['name', 'price'],
           pre_fetch=lambda a, kw: _prefetch_category(kw.get('category_id')))
def update_category(category_id: int):
    data = request.get_json(silent=True) or {}
    c = _get_or_404(category_id)
    if 'name' in data:
        name = clean_text(data.get('name'), 'name')
        if not name:
            abort(400, description='name must not be empty')
        _assert_unique(name, exclude_id=c.id)
        # tickets keep the category string they were filed under
        c.name = name
    if 'price' in data:
        c.price = parse_price(data.get('price'))
    c.updated_at = utcnow()
    get_db().commit()
    return _category_json(c)


@categories_bp.delete('/<int:category_id>')
@require_page_permission(PAGE_SETTINGS, CAP_DELETE)
@audit_log('CATEGORY.DELETE', entity='Category', entity_id_arg='category_id')
def delete_category(category_id: int):
    session = get_db()
    session.delete(_get_or_404(category_id))
    session.commit()
    return {'deleted': True}
