"""Create users, domains, api_keys, email_logs and webhook_events tables

Revision ID: 001
Revises:
Create Date: 2026-10-16 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Tables may already exist if Base.metadata.create_all ran first
    conn = op.get_bind()
    inspector = inspect(conn)
    existing_tables = inspector.get_table_names()

    if 'users' not in existing_tables:
        op.create_table(
            'users',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('email', sa.String(length=255), nullable=False),
            sa.Column('password_hash', sa.String(length=255), nullable=False),
            sa.Column('name', sa.String(length=255), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_users_email', 'users', ['email'], unique=True)

    if 'domains' not in existing_tables:
        op.create_table(
            'domains',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('user_id', sa.String(length=36), nullable=False),
            sa.Column('domain', sa.String(length=255), nullable=False),
            sa.Column('status', sa.String(length=50), nullable=False, server_default='pending'),
            sa.Column('ses_identity_arn', sa.String(length=255), nullable=True),
            sa.Column('ses_configuration_set', sa.String(length=255), nullable=True),
            sa.Column('do_domain_id', sa.String(length=255), nullable=True),
            sa.Column('dns_records', sa.JSON(), nullable=False),
            sa.Column('verification_token', sa.String(length=255), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_domains_user_id', 'domains', ['user_id'])
        op.create_index('ix_domains_domain', 'domains', ['domain'], unique=True)

    if 'api_keys' not in existing_tables:
        op.create_table(
            'api_keys',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('user_id', sa.String(length=36), nullable=False),
            sa.Column('domain_id', sa.String(length=36), nullable=False),
            sa.Column('key_name', sa.String(length=255), nullable=False),
            sa.Column('key_hash', sa.String(length=255), nullable=False),
            sa.Column('key_prefix', sa.String(length=20), nullable=False),
            sa.Column('permissions', sa.JSON(), nullable=False),
            sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['domain_id'], ['domains.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('user_id', 'key_name', name='uq_api_keys_user_key_name')
        )
        op.create_index('ix_api_keys_user_id', 'api_keys', ['user_id'])
        op.create_index('ix_api_keys_domain_id', 'api_keys', ['domain_id'])
        op.create_index('ix_api_keys_key_prefix', 'api_keys', ['key_prefix'])

    if 'email_logs' not in existing_tables:
        op.create_table(
            'email_logs',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('api_key_id', sa.String(length=36), nullable=True),
            sa.Column('domain_id', sa.String(length=36), nullable=False),
            sa.Column('message_id', sa.String(length=255), nullable=True),
            sa.Column('from_email', sa.String(length=255), nullable=False),
            sa.Column('to_emails', sa.JSON(), nullable=False),
            sa.Column('cc_emails', sa.JSON(), nullable=False),
            sa.Column('bcc_emails', sa.JSON(), nullable=False),
            sa.Column('subject', sa.String(length=500), nullable=True),
            sa.Column('html_content', sa.Text(), nullable=True),
            sa.Column('text_content', sa.Text(), nullable=True),
            sa.Column('attachments', sa.JSON(), nullable=False),
            sa.Column('status', sa.String(length=50), nullable=False, server_default='pending'),
            sa.Column('ses_message_id', sa.String(length=255), nullable=True),
            sa.Column('error_message', sa.Text(), nullable=True),
            sa.Column('webhook_data', sa.JSON(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(['api_key_id'], ['api_keys.id'], ondelete='SET NULL'),
            sa.ForeignKeyConstraint(['domain_id'], ['domains.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_email_logs_api_key_id', 'email_logs', ['api_key_id'])
        op.create_index('ix_email_logs_domain_id', 'email_logs', ['domain_id'])
        op.create_index('ix_email_logs_message_id', 'email_logs', ['message_id'])
        op.create_index('ix_email_logs_ses_message_id', 'email_logs', ['ses_message_id'])
        op.create_index('ix_email_logs_created_at', 'email_logs', ['created_at'])
        op.create_index('ix_email_logs_domain_status', 'email_logs', ['domain_id', 'status'])

    if 'webhook_events' not in existing_tables:
        op.create_table(
            'webhook_events',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('email_log_id', sa.String(length=36), nullable=True),
            sa.Column('event_type', sa.String(length=50), nullable=False),
            sa.Column('event_data', sa.JSON(), nullable=False),
            sa.Column('processed', sa.Boolean(), nullable=False, server_default='false'),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(['email_log_id'], ['email_logs.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_webhook_events_email_log_id', 'webhook_events', ['email_log_id'])
        op.create_index('ix_webhook_events_processed', 'webhook_events', ['processed'])


def downgrade() -> None:
    op.drop_table('webhook_events')
    op.drop_table('email_logs')
    op.drop_table('api_keys')
    op.drop_table('domains')
    op.drop_table('users')
