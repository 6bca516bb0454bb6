"""Create users and wallet_transactions tables

Revision ID: 001_users_wallet_transactions
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_users_wallet_transactions'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), nullable=False, comment='Auth provider user id (UUID)'),
        sa.Column('email', sa.String(254), nullable=False, comment='Lowercased email address'),
        sa.Column('name', sa.String(100), nullable=True, comment='Display name'),
        sa.Column('credits', sa.Integer(), server_default='0', nullable=False, comment='Legacy integer credit balance'),
        sa.Column('wallet_balance', sa.Numeric(10, 2), server_default='0', nullable=False, comment='Wallet balance in AED'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    op.create_table(
        'wallet_transactions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False, comment='Reference to user'),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False, comment='AED: positive for top_up/refund, negative for agent_usage'),
        sa.Column('type', sa.String(20), nullable=False, comment='top_up, agent_usage or refund'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('agent_slug', sa.String(100), nullable=True, comment='Agent charged or refunded'),
        sa.Column('stripe_session_id', sa.String(255), nullable=True, comment='Stripe Checkout session id (dedup key)'),
        sa.Column('credits', sa.Integer(), nullable=True, comment='Legacy credits granted by this entry'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint("type IN ('top_up', 'agent_usage', 'refund')", name='ck_wallet_transactions_type'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_wallet_transactions_user_id'), 'wallet_transactions', ['user_id'], unique=False)
    op.create_index(op.f('ix_wallet_transactions_stripe_session_id'), 'wallet_transactions', ['stripe_session_id'], unique=True)
    op.create_index(op.f('ix_wallet_transactions_created_at'), 'wallet_transactions', ['created_at'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_wallet_transactions_created_at'), table_name='wallet_transactions')
    op.drop_index(op.f('ix_wallet_transactions_stripe_session_id'), table_name='wallet_transactions')
    op.drop_index(op.f('ix_wallet_transactions_user_id'), table_name='wallet_transactions')
    op.drop_table('wallet_transactions')

    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
