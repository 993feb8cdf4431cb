"""Create cache, price cache and strategy ledger tables

Revision ID: c1d2e3f4a5b6
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'c1d2e3f4a5b6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'cache_entries',
        sa.Column('key', sa.String(255), primary_key=True),
        sa.Column('value', postgresql.JSONB(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_cache_entries_expires_at', 'cache_entries', ['expires_at'])

    op.create_table(
        'price_cache',
        sa.Column('tx_hash', sa.String(66), primary_key=True),
        sa.Column('price_eth', sa.Float(), nullable=False),
        sa.Column('payment_symbol', sa.String(20), nullable=False),
        sa.Column('marketplace', sa.String(50), nullable=False),
        sa.Column('image_url', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'chain_transfers',
        sa.Column('tx_hash', sa.String(66), primary_key=True),
        sa.Column('log_index', sa.Integer(), primary_key=True),
        sa.Column('block_number', sa.BigInteger(), nullable=False),
        sa.Column('timestamp', sa.BigInteger(), nullable=False),
        sa.Column('from_addr', sa.String(42), nullable=False),
        sa.Column('to_addr', sa.String(42), nullable=False),
        sa.Column('token_id', sa.String(80), nullable=False),
    )
    op.create_index('ix_chain_transfers_block', 'chain_transfers', ['block_number'])
    op.create_index('ix_chain_transfers_token', 'chain_transfers', ['token_id'])

    op.create_table(
        'token_burns',
        sa.Column('tx_hash', sa.String(66), primary_key=True),
        sa.Column('log_index', sa.Integer(), primary_key=True),
        sa.Column('block_number', sa.BigInteger(), nullable=False),
        sa.Column('timestamp', sa.BigInteger(), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('burn_address', sa.String(42), nullable=False),
    )
    op.create_index('ix_token_burns_timestamp', 'token_burns', ['timestamp'])

    op.create_table(
        'sync_state',
        sa.Column('contract_address', sa.String(42), primary_key=True),
        sa.Column('last_synced_block', sa.BigInteger(), nullable=False),
        sa.Column('is_syncing', sa.Boolean(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('sync_state')
    op.drop_index('ix_token_burns_timestamp', table_name='token_burns')
    op.drop_table('token_burns')
    op.drop_index('ix_chain_transfers_token', table_name='chain_transfers')
    op.drop_index('ix_chain_transfers_block', table_name='chain_transfers')
    op.drop_table('chain_transfers')
    op.drop_table('price_cache')
    op.drop_index('ix_cache_entries_expires_at', table_name='cache_entries')
    op.drop_table('cache_entries')
