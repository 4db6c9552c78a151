"""initial back-office schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=128), nullable=False, unique=True),
        sa.Column('name', sa.String(length=128), nullable=False, server_default=''),
        sa.Column('password_hash', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='user'),
        sa.Column('approved', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('page_permissions', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table('categories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False, unique=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_categories_name', 'categories', ['name'])

    op.create_table('technicians',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False, unique=True),
        sa.Column('phone', sa.String(length=32)),
        sa.Column('created_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_technicians_name', 'technicians', ['name'])

    op.create_table('tickets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_code', sa.String(length=32), nullable=False, unique=True),
        sa.Column('client_name', sa.String(length=128), nullable=False),
        sa.Column('client_number', sa.String(length=32)),
        sa.Column('station', sa.String(length=128), nullable=False, server_default=''),
        sa.Column('house_number', sa.String(length=64)),
        sa.Column('category', sa.String(length=128)),
        sa.Column('problem_description', sa.Text()),
        sa.Column('date_time_reported', sa.DateTime(timezone=True)),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='open'),
        sa.Column('technicians', sa.JSON(), nullable=False),
        sa.Column('technician', sa.String(length=128)),
        sa.Column('resolved_at', sa.DateTime(timezone=True)),
        sa.Column('resolution_notes', sa.Text()),
        sa.Column('paid', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('paid_at', sa.DateTime(timezone=True)),
        sa.Column('paid_by', sa.String(length=128)),
        sa.Column('last_reminder_sent', sa.DateTime(timezone=True)),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_tickets_ticket_code', 'tickets', ['ticket_code'])
    op.create_index('ix_tickets_category', 'tickets', ['category'])
    op.create_index('ix_tickets_status', 'tickets', ['status'])
    op.create_index('ix_tickets_paid', 'tickets', ['paid'])
    op.create_index('ix_tickets_created_at', 'tickets', ['created_at'])

    op.create_table('payment_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('payment_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('total_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('ticket_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tickets', sa.JSON(), nullable=False),
        sa.Column('technician_breakdown', sa.JSON(), nullable=False),
        sa.Column('cleared_by', sa.String(length=128), nullable=False),
        sa.Column('cleared_by_name', sa.String(length=128)),
        sa.Column('created_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_payment_history_payment_date', 'payment_history', ['payment_date'])

    op.create_table('cost_tracking',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('type', sa.String(length=16), nullable=False, unique=True),
        sa.Column('last_cleared_date', sa.DateTime(timezone=True)),
        sa.Column('cleared_by', sa.String(length=128)),
        sa.Column('cleared_at', sa.DateTime(timezone=True)),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
    )

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_email', sa.String(length=128), nullable=False, server_default=''),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64)),
        sa.Column('entity_id', sa.String(length=64)),
        sa.Column('meta', sa.JSON()),
        sa.Column('created_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_audit_logs_actor_email', 'audit_logs', ['actor_email'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])


def downgrade():
    for table in ('audit_logs', 'cost_tracking', 'payment_history', 'tickets', 'technicians', 'categories', 'users'):
        op.drop_table(table)
