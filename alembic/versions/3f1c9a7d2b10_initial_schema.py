"""initial schema

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2024-06-01 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# SQLAlchemy stores Python enums by member name
userrole_enum = sa.Enum('ADMIN', 'STAFF', 'OWNER', 'USER', name='userrole')
userstatus_enum = sa.Enum('ACTIVE', 'INACTIVE', name='userstatus')
propertystatus_enum = sa.Enum('PENDING', 'APPROVED', 'REJECTED', 'DRAFT', name='propertystatus')
bookingstatus_enum = sa.Enum('PENDING', 'CONFIRMED', 'COMPLETED', 'CANCELLED', 'BLOCKED', name='bookingstatus')
messagestatus_enum = sa.Enum('NEW', 'READ', 'REPLIED', name='messagestatus')
auditseverity_enum = sa.Enum('INFO', 'WARNING', 'ERROR', 'CRITICAL', name='auditseverity')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('role', userrole_enum, nullable=False),
        sa.Column('status', userstatus_enum, nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'properties',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('price_unit', sa.String(50), nullable=False),
        sa.Column('images', sa.JSON(), nullable=True),
        sa.Column('location', sa.String(255), nullable=False),
        sa.Column('bedrooms', sa.Integer(), nullable=False),
        sa.Column('bathrooms', sa.Integer(), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('amenities', sa.JSON(), nullable=True),
        sa.Column('featured', sa.Boolean(), nullable=False),
        sa.Column('rating', sa.Numeric(3, 2), nullable=False),
        sa.Column('review_count', sa.Integer(), nullable=False),
        sa.Column('status', propertystatus_enum, nullable=False, server_default='PENDING'),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_visible', sa.Boolean(), nullable=False),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('approved_at', sa.TIMESTAMP(), nullable=True),
        sa.Column('owner_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False),
    )
    op.create_index('ix_properties_id', 'properties', ['id'])
    op.create_index('ix_properties_location', 'properties', ['location'])
    op.create_index('ix_properties_owner_id', 'properties', ['owner_id'])
    op.create_index('ix_properties_visibility', 'properties', ['status', 'is_active', 'is_visible'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('property_id', sa.Integer(), sa.ForeignKey('properties.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('guest_name', sa.String(255), nullable=False),
        sa.Column('guest_email', sa.String(255), nullable=False),
        sa.Column('guest_phone', sa.String(50), nullable=True),
        sa.Column('check_in', sa.Date(), nullable=False),
        sa.Column('check_out', sa.Date(), nullable=False),
        sa.Column('guests', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', bookingstatus_enum, nullable=False, server_default='PENDING'),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False),
    )
    op.create_index('ix_bookings_id', 'bookings', ['id'])
    op.create_index('ix_bookings_property_id', 'bookings', ['property_id'])
    op.create_index('ix_bookings_user_id', 'bookings', ['user_id'])
    op.create_index('ix_bookings_property_status', 'bookings', ['property_id', 'status'])

    op.create_table(
        'messages',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('subject', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('status', messagestatus_enum, nullable=False, server_default='NEW'),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False),
    )
    op.create_index('ix_messages_id', 'messages', ['id'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('type', sa.String(100), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('property_id', sa.Integer(), sa.ForeignKey('properties.id'), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False),
    )
    op.create_index('ix_notifications_id', 'notifications', ['id'])
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('action', sa.String(255), nullable=False),
        sa.Column('entity', sa.String(255), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('old_values', sa.Text(), nullable=True),
        sa.Column('new_values', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('severity', auditseverity_enum, nullable=False, server_default='INFO'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False),
    )
    op.create_index('ix_audit_logs_id', 'audit_logs', ['id'])
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])

    op.create_table(
        'outbox_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('topic', sa.String(255), nullable=False),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=True),
    )
    op.create_index('ix_outbox_events_id', 'outbox_events', ['id'])
    op.create_index('ix_outbox_events_status', 'outbox_events', ['status'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('outbox_events')
    op.drop_table('audit_logs')
    op.drop_table('notifications')
    op.drop_table('messages')
    op.drop_table('bookings')
    op.drop_table('properties')
    op.drop_table('users')

    bind = op.get_bind()
    for enum in (auditseverity_enum, messagestatus_enum, bookingstatus_enum,
                 propertystatus_enum, userstatus_enum, userrole_enum):
        enum.drop(bind, checkfirst=True)
