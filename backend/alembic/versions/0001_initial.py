"""power dialer schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'contacts',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('first_name', sa.String(length=128), nullable=True),
        sa.Column('last_name', sa.String(length=128), nullable=True),
        sa.Column('phone1', sa.String(length=32), nullable=True),
        sa.Column('email1', sa.String(length=255), nullable=True),
        sa.Column('company_name', sa.String(length=255), nullable=True),
        sa.Column('property_address', sa.String(length=500), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('dnc', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('dnc_reason', sa.String(length=255), nullable=True),
        sa.Column('phone1_valid', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('phone1_invalid_reason', sa.String(length=255), nullable=True),
        sa.Column('no_answer_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('custom_fields', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_contacts_phone1'), 'contacts', ['phone1'], unique=False)

    op.create_table(
        'tags',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('color', sa.String(length=16), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )

    op.create_table(
        'contact_tags',
        sa.Column('contact_id', sa.String(length=64), sa.ForeignKey('contacts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('tag_id', sa.Integer(), sa.ForeignKey('tags.id', ondelete='CASCADE'), nullable=False),
        sa.PrimaryKeyConstraint('contact_id', 'tag_id'),
    )

    op.create_table(
        'tasks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('contact_id', sa.String(length=64), sa.ForeignKey('contacts.id', ondelete='CASCADE'), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=True),
        sa.Column('priority', sa.String(length=16), nullable=True),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('assigned_to', sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_tasks_contact_id'), 'tasks', ['contact_id'], unique=False)

    op.create_table(
        'scheduled_messages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('contact_id', sa.String(length=64), sa.ForeignKey('contacts.id', ondelete='CASCADE'), nullable=True),
        sa.Column('channel', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=True),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('from_number', sa.String(length=32), nullable=True),
        sa.Column('to_number', sa.String(length=32), nullable=True),
        sa.Column('from_email', sa.String(length=255), nullable=True),
        sa.Column('to_email', sa.String(length=255), nullable=True),
        sa.Column('subject', sa.String(length=500), nullable=True),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('source', sa.String(length=32), nullable=True),
        sa.Column('template_id', sa.String(length=64), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_scheduled_messages_contact_id'), 'scheduled_messages', ['contact_id'], unique=False)

    op.create_table(
        'sequence_enrollments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('contact_id', sa.String(length=64), sa.ForeignKey('contacts.id', ondelete='CASCADE'), nullable=True),
        sa.Column('sequence_id', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=True),
        sa.Column('current_step_index', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_sequence_enrollments_contact_id'), 'sequence_enrollments', ['contact_id'], unique=False)
    op.create_index(op.f('ix_sequence_enrollments_sequence_id'), 'sequence_enrollments', ['sequence_id'], unique=False)

    op.create_table(
        'deals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('contact_id', sa.String(length=64), sa.ForeignKey('contacts.id', ondelete='CASCADE'), nullable=True),
        sa.Column('pipeline_id', sa.String(length=64), nullable=True),
        sa.Column('stage', sa.String(length=64), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('contact_id', 'pipeline_id', name='uq_deals_contact_pipeline'),
    )
    op.create_index(op.f('ix_deals_contact_id'), 'deals', ['contact_id'], unique=False)

    op.create_table(
        'dialer_lists',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('max_lines', sa.Integer(), nullable=True),
        sa.Column('caller_id_strategy', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='ACTIVE'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'dialer_list_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('list_id', sa.String(length=64), sa.ForeignKey('dialer_lists.id'), nullable=False),
        sa.Column('contact_id', sa.String(length=64), sa.ForeignKey('contacts.id'), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='PENDING'),
        sa.Column('attempt_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('disposition', sa.String(length=128), nullable=True),
        sa.Column('last_called_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_dialer_list_entries_list_id'), 'dialer_list_entries', ['list_id'], unique=False)
    op.create_index(op.f('ix_dialer_list_entries_contact_id'), 'dialer_list_entries', ['contact_id'], unique=False)

    op.create_table(
        'dialer_runs',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('list_id', sa.String(length=64), sa.ForeignKey('dialer_lists.id'), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('max_lines', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('caller_id_strategy', sa.String(length=32), nullable=True),
        sa.Column('selected_numbers', sa.JSON(), nullable=True),
        sa.Column('cursor', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_contacts', sa.Integer(), nullable=False, server_default='0'),
        *[
            sa.Column(f'total_{name}', sa.Integer(), nullable=False, server_default='0')
            for name in ('attempted', 'answered', 'no_answer', 'voicemail', 'busy', 'failed', 'canceled', 'talk_seconds')
        ],
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paused_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_dialer_runs_list_id'), 'dialer_runs', ['list_id'], unique=False)
    op.create_index(op.f('ix_dialer_runs_status'), 'dialer_runs', ['status'], unique=False)

    op.create_table(
        'dialer_run_legs',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('run_id', sa.String(length=64), sa.ForeignKey('dialer_runs.id'), nullable=False),
        sa.Column('list_entry_id', sa.Integer(), sa.ForeignKey('dialer_list_entries.id'), nullable=True),
        sa.Column('contact_id', sa.String(length=64), nullable=True),
        sa.Column('call_control_id', sa.String(length=128), nullable=True),
        sa.Column('from_number', sa.String(length=32), nullable=False),
        sa.Column('to_number', sa.String(length=32), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('amd_result', sa.String(length=16), nullable=True),
        sa.Column('hangup_cause', sa.String(length=64), nullable=True),
        sa.Column('talk_seconds', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('answered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_dialer_run_legs_run_id'), 'dialer_run_legs', ['run_id'], unique=False)
    op.create_index(op.f('ix_dialer_run_legs_contact_id'), 'dialer_run_legs', ['contact_id'], unique=False)
    op.create_index(op.f('ix_dialer_run_legs_call_control_id'), 'dialer_run_legs', ['call_control_id'], unique=False)

    op.create_table(
        'call_dispositions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('color', sa.String(length=16), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('marks_dnc', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )

    op.create_table(
        'disposition_actions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('disposition_id', sa.Integer(), sa.ForeignKey('call_dispositions.id', ondelete='CASCADE'), nullable=True),
        sa.Column('action_type', sa.String(length=32), nullable=False),
        sa.Column('config', sa.JSON(), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_disposition_actions_disposition_id'), 'disposition_actions', ['disposition_id'], unique=False)

    op.create_table(
        'disposition_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('disposition_id', sa.Integer(), sa.ForeignKey('call_dispositions.id'), nullable=True),
        sa.Column('contact_id', sa.String(length=64), nullable=False),
        sa.Column('run_id', sa.String(length=64), nullable=True),
        sa.Column('list_id', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('actions_executed', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_disposition_logs_disposition_id'), 'disposition_logs', ['disposition_id'], unique=False)
    op.create_index(op.f('ix_disposition_logs_contact_id'), 'disposition_logs', ['contact_id'], unique=False)


def downgrade() -> None:
    for table in (
        'disposition_logs',
        'disposition_actions',
        'call_dispositions',
        'dialer_run_legs',
        'dialer_runs',
        'dialer_list_entries',
        'dialer_lists',
        'deals',
        'sequence_enrollments',
        'scheduled_messages',
        'tasks',
        'contact_tags',
        'tags',
        'contacts',
    ):
        op.drop_table(table)
