"""create role, account and friend tables

Revision ID: c7d1e2f3a4b5
Revises:
Create Date: 2026-10-19

Tables:
  role     id (uuid text) | role (unique label) | status
  account  id (uuid text) | username_login, email unique | status 0/1/2
  friend   id (serial) | id_user → friend_id | status_fr Pending/Done | status 0/1

uq_friend_active_pair is partial (status = 1): soft-deleted edges stay in the
table and never block a fresh request for the same pair.

Seeds the "User" and "Admin" roles; provisioning and registration fail with a
provisioning_error when DEFAULT_ROLE_NAME does not match an active role.
"""
from alembic import op
import sqlalchemy as sa
import uuid

revision = 'c7d1e2f3a4b5'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'role',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('role', sa.String(50), nullable=False, unique=True),
        sa.Column('status', sa.Integer(), server_default='1', nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
    )

    op.create_table(
        'account',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('username_login', sa.String(100), nullable=False),
        sa.Column('password_login', sa.String(255), nullable=False),
        sa.Column('username', sa.String(100), nullable=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('gmail', sa.String(255), nullable=True),
        sa.Column('provider', sa.String(30), nullable=True),
        sa.Column('openid_sub', sa.String(255), nullable=True),
        sa.Column('email_verified', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('role_id', sa.String(36), sa.ForeignKey('role.id'), nullable=True),
        sa.Column('status', sa.Integer(), server_default='1', nullable=False),
        sa.Column('image', sa.String(500), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('place_of_residence', sa.String(255), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index('ix_account_username_login', 'account', ['username_login'], unique=True)
    op.create_index('ix_account_email', 'account', ['email'], unique=True)
    op.create_index('ix_account_role_id', 'account', ['role_id'])
    op.create_index('ix_account_status', 'account', ['status'])

    op.create_table(
        'friend',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('id_user', sa.String(36), sa.ForeignKey('account.id'), nullable=False),
        sa.Column('friend_id', sa.String(36), sa.ForeignKey('account.id'), nullable=False),
        sa.Column('status_fr', sa.String(10), server_default='Pending', nullable=False),
        sa.Column('status', sa.Integer(), server_default='1', nullable=False),
    )
    op.create_index('ix_friend_id_user', 'friend', ['id_user'])
    op.create_index('ix_friend_friend_id', 'friend', ['friend_id'])
    op.create_index(
        'uq_friend_active_pair',
        'friend',
        ['id_user', 'friend_id'],
        unique=True,
        postgresql_where=sa.text('status = 1'),
        sqlite_where=sa.text('status = 1'),
    )

    # ── Seed roles ─────────────────────────────────────────────────────────
    op.bulk_insert(
        sa.table(
            'role',
            sa.column('id',     sa.String(36)),
            sa.column('role',   sa.String(50)),
            sa.column('status', sa.Integer()),
        ),
        [
            {'id': str(uuid.uuid4()), 'role': 'User',  'status': 1},
            {'id': str(uuid.uuid4()), 'role': 'Admin', 'status': 1},
        ],
    )


def downgrade() -> None:
    op.drop_index('uq_friend_active_pair', table_name='friend')
    op.drop_index('ix_friend_friend_id', table_name='friend')
    op.drop_index('ix_friend_id_user', table_name='friend')
    op.drop_table('friend')
    op.drop_index('ix_account_status', table_name='account')
    op.drop_index('ix_account_role_id', table_name='account')
    op.drop_index('ix_account_email', table_name='account')
    op.drop_index('ix_account_username_login', table_name='account')
    op.drop_table('account')
    op.drop_table('role')
