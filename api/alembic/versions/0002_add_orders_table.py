"""add orders table"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = '0002_add_orders_table'
down_revision = '0001_initial'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('order_id', sa.String(64), nullable=False, unique=True),
        sa.Column('order_type', sa.String(64), nullable=True),
        sa.Column('status', sa.String(32), nullable=False, server_default=sa.text("'pending'")),
        sa.Column('payment_type', sa.String(64), nullable=True),
        sa.Column('crypto_amount', sa.Float(), nullable=True),
        sa.Column('crypto_ticker', sa.String(16), nullable=True),
        sa.Column('fiat_amount', sa.Float(), nullable=True),
        sa.Column('fiat_ticker', sa.String(16), nullable=True),
        sa.Column('recipient_name', sa.String(255), nullable=True),
        sa.Column('error', sa.String(255), nullable=True),
        sa.Column('details_json', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index('ix_orders_status', 'orders', ['status'])


def downgrade() -> None:
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_table('orders')
