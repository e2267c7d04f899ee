"""ledger schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

Members and family groups, practices with schedules and trainers,
enrollments and attendance, courts and reservations, dues, the payment
trail, notification logs and settings.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now())


def _updated_at() -> sa.Column:
    return sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now())


def upgrade() -> None:
    op.create_table(
        'members',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('dni', sa.String(20), nullable=False, unique=True),
        sa.Column('full_name', sa.String(), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('plan_type', sa.String(20), nullable=False, server_default='INDIVIDUAL'),
        sa.Column('family_group_id', sa.Integer(), nullable=True),
        sa.Column('head_of_family_id', sa.Integer(), sa.ForeignKey('members.id'), nullable=True),
        sa.Column('joined_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        _created_at(),
        sa.CheckConstraint("plan_type IN ('INDIVIDUAL', 'FAMILY')", name='check_plan_type_valid'),
    )
    op.create_index('idx_members_family_group', 'members', ['family_group_id'])

    op.create_table(
        'trainers',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('full_name', sa.String(), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        _created_at(),
    )

    op.create_table(
        'practices',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint('capacity > 0', name='check_practice_capacity_positive'),
        sa.CheckConstraint('price > 0', name='check_practice_price_positive'),
    )

    op.create_table(
        'practice_schedules',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('practice_id', sa.Integer(), sa.ForeignKey('practices.id'), nullable=False),
        sa.Column('weekday', sa.String(10), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.CheckConstraint(
            "weekday IN ('MONDAY', 'TUESDAY', 'WEDNESDAY', 'THURSDAY', 'FRIDAY', "
            "'SATURDAY', 'SUNDAY')",
            name='check_weekday_valid',
        ),
        sa.CheckConstraint('start_time < end_time', name='check_schedule_start_before_end'),
    )
    op.create_index('idx_practice_schedules_practice', 'practice_schedules', ['practice_id'])

    op.create_table(
        'practice_trainers',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('practice_id', sa.Integer(), sa.ForeignKey('practices.id'), nullable=False),
        sa.Column('trainer_id', sa.Integer(), sa.ForeignKey('trainers.id'), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('practice_id', 'trainer_id'),
    )
    op.create_index('idx_practice_trainers_practice', 'practice_trainers', ['practice_id'])

    op.create_table(
        'enrollments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('member_id', sa.Integer(), sa.ForeignKey('members.id'), nullable=False),
        sa.Column(
            'practice_id',
            sa.Integer(),
            sa.ForeignKey('practices.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.Column('enrolled_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        _updated_at(),
        sa.UniqueConstraint('member_id', 'practice_id', name='uq_enrollments_member_practice'),
    )
    op.create_index('idx_enrollments_practice_active', 'enrollments', ['practice_id', 'active'])
    op.create_index('idx_enrollments_member', 'enrollments', ['member_id'])

    op.create_table(
        'courts',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(), nullable=False, unique=True),
        sa.Column('price', sa.Integer(), nullable=False),
        _created_at(),
        sa.CheckConstraint('price >= 0', name='check_court_price_non_negative'),
    )

    op.create_table(
        'reservations',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('court_id', sa.Integer(), sa.ForeignKey('courts.id'), nullable=False),
        sa.Column('member_id', sa.Integer(), sa.ForeignKey('members.id'), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        _created_at(),
        sa.UniqueConstraint('court_id', 'date', 'start_time'),
    )
    op.create_index('idx_reservations_member', 'reservations', ['member_id'])

    op.create_table(
        'dues',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('member_id', sa.Integer(), sa.ForeignKey('members.id'), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        _created_at(),
        sa.UniqueConstraint('member_id', 'month', 'year'),
        sa.CheckConstraint('month >= 1 AND month <= 12', name='check_due_month_range'),
        sa.CheckConstraint('amount >= 0', name='check_due_amount_non_negative'),
    )

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('due_id', sa.Integer(), sa.ForeignKey('dues.id'), nullable=True),
        sa.Column('enrollment_id', sa.Integer(), sa.ForeignKey('enrollments.id'), nullable=True),
        sa.Column('reservation_id', sa.Integer(), sa.ForeignKey('reservations.id'), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('method', sa.String(30), nullable=False),
        sa.Column('card_last4', sa.String(4), nullable=True),
        sa.Column('reference', sa.String(100), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('PENDING', 'PAID')", name='check_payment_status_valid'),
        sa.CheckConstraint(
            '(CASE WHEN due_id IS NULL THEN 0 ELSE 1 END)'
            ' + (CASE WHEN enrollment_id IS NULL THEN 0 ELSE 1 END)'
            ' + (CASE WHEN reservation_id IS NULL THEN 0 ELSE 1 END) = 1',
            name='check_payment_single_obligation',
        ),
    )
    op.create_index('idx_payments_due', 'payments', ['due_id'])
    op.create_index('idx_payments_enrollment', 'payments', ['enrollment_id'])
    op.create_index('idx_payments_reservation', 'payments', ['reservation_id'])

    op.create_table(
        'attendances',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('enrollment_id', sa.Integer(), sa.ForeignKey('enrollments.id'), nullable=False),
        sa.Column('class_date', sa.Date(), nullable=False),
        sa.Column('present', sa.Boolean(), nullable=False),
        _updated_at(),
        sa.UniqueConstraint('enrollment_id', 'class_date'),
    )

    op.create_table(
        'notification_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('member_id', sa.Integer(), sa.ForeignKey('members.id'), nullable=True),
        sa.Column('template', sa.String(50), nullable=False),
        sa.Column('to_address', sa.String(255), nullable=True),
        sa.Column('subject', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "status IN ('sent', 'failed', 'skipped')", name='check_notification_status_valid'
        ),
    )
    op.create_index(
        'idx_notification_logs_member', 'notification_logs', ['member_id', 'created_at']
    )

    op.create_table(
        'settings',
        sa.Column('key', sa.String(), primary_key=True),
        sa.Column('value', sa.Text(), nullable=False),
        _updated_at(),
    )


def downgrade() -> None:
    for table in (
        'settings',
        'notification_logs',
        'attendances',
        'payments',
        'dues',
        'reservations',
        'courts',
        'enrollments',
        'practice_trainers',
        'practice_schedules',
        'practices',
        'trainers',
        'members',
    ):
        op.drop_table(table)
