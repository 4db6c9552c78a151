from flask import Blueprint, request, abort
from sqlalchemy import select

from backoffice import get_db
from backoffice.constants.pages import PAGE_SETTINGS, CAP_VIEW, CAP_ADD, CAP_EDIT, CAP_DELETE
from backoffice.decorators.auth import require_page_permission
from backoffice.decorators.audit import audit_log
from backoffice.models.technician import Technician
from backoffice.utils.validation import clean_text

technicians_bp = Blueprint('technicians', __name__)


def _technician_json(t: Technician):
    return {'id': t.id, 'name': t.name, 'phone': t.phone}


def _get_or_404(technician_id: int) -> Technician:
    t = get_db().get(Technician, technician_id)
    if not t:
        abort(404, description='Technician not found')
    return t


def _assert_unique(name: str, exclude_id=None):
    stmt = select(Technician.id).where(Technician.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Technician.id != exclude_id)
    if get_db().execute(stmt).first():
        abort(400, description=f'Technician {name} already exists')


@technicians_bp.get('')
@require_page_permission(PAGE_SETTINGS, CAP_VIEW)
def list_technicians():
    rows = get_db().execute(select(Technician).order_by(Technician.name.asc())).scalars().all()
    return {'technicians': [_technician_json(t) for t in rows]}


@technicians_bp.post('')
@require_page_permission(PAGE_SETTINGS, CAP_ADD)
@audit_log('TECHNICIAN.CREATE', entity='Technician', entity_id_key='id', meta_keys=['name', 'phone'])
def create_technician():
    data = request.get_json(silent=True) or {}
    name = clean_text(data.get('name'), 'name')
    if not name:
        abort(400, description='name is required')
    _assert_unique(name)
    session = get_db()
    t = Technician(name=name, phone=clean_text(data.get('phone'), 'phone'))
    session.add(t)
    session.commit()
    return _technician_json(t), 201


@technicians_bp.patch('/<int:technician_id>')
@require_page_permission(PAGE_SETTINGS, CAP_EDIT)
@audit_log('TECHNICIAN.UPDATE', entity='Technician', entity_id_key='id', meta_keys=['name', 'phone'])
def update_technician(technician_id: int):
    data = request.get_json(silent=True) or {}
    t = _get_or_404(technician_id)
    if 'name' in data:
        name = clean_text(data.get('name'), 'name')
        if not name:
            abort(400, description='name must not be empty')
        _assert_unique(name, exclude_id=t.id)
        t.name = name
    if 'phone' in data:
        t.phone = clean_text(data.get('phone'), 'phone')
    get_db().commit()
    return _technician_json(t)


@technicians_bp.delete('/<int:technician_id>')
@require_page_permission(PAGE_SETTINGS, CAP_DELETE)
@audit_log('TECHNICIAN.DELETE', entity='Technician', entity_id_arg='technician_id')
def delete_technician(technician_id: int):
    session = get_db()
    session.delete(_get_or_404(technician_id))
    session.commit()
    return {'deleted': True}
