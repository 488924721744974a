"""initial schema

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create profiles and token_purchases."""

    # ========================================================================
    # Create profiles table
    # ========================================================================
    op.create_table(
        'profiles',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('role', sa.String(32), nullable=False, server_default='cliente'),
        sa.Column('tokens', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('tokens >= 0', name='ck_profile_tokens_non_negative'),
        sa.CheckConstraint("role IN ('cliente', 'profissional', 'estabelecimento')", name='ck_profile_role'),
    )

    op.create_index('idx_profiles_email_created_at', 'profiles', ['email', 'created_at'])

    # ========================================================================
    # Create token_purchases table
    # ========================================================================
    op.create_table(
        'token_purchases',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('profile_id', UUID(as_uuid=True), nullable=False),
        sa.Column('user_email', sa.String(255), nullable=False),
        sa.Column('role', sa.String(32), nullable=False),
        sa.Column('plan_id', sa.String(32), nullable=False),
        sa.Column('plan_name', sa.String(64), nullable=False),
        sa.Column('tokens_amount', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('rate', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('gateway_payment_id', sa.String(64), nullable=True),
        sa.Column('gateway_status', sa.String(64), nullable=True),
        sa.Column('gateway_status_detail', sa.Text(), nullable=True),
        sa.Column('pix_qr_code', sa.Text(), nullable=True),
        sa.Column('pix_qr_code_base64', sa.Text(), nullable=True),
        sa.Column('pix_ticket_url', sa.Text(), nullable=True),
        sa.Column('pix_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('tokens_credited', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('tokens_credited_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'cancelled', 'expired', 'failed')",
            name='ck_token_purchase_status',
        ),
        sa.CheckConstraint("role IN ('profissional', 'estabelecimento')", name='ck_token_purchase_role'),
        sa.CheckConstraint('tokens_amount > 0', name='ck_token_purchase_tokens_positive'),
        sa.CheckConstraint('amount > 0', name='ck_token_purchase_amount_positive'),
        sa.ForeignKeyConstraint(['profile_id'], ['profiles.id'], name='fk_token_purchases_profile', ondelete='RESTRICT'),
    )

    op.create_index('idx_token_purchases_user_id', 'token_purchases', ['user_id'])
    op.create_index('idx_token_purchases_profile_id', 'token_purchases', ['profile_id'])
    op.create_index(
        'idx_token_purchases_pending', 'token_purchases', ['created_at'],
        postgresql_where=sa.text("status = 'pending'"),
    )
    op.create_index(
        'idx_token_purchases_gateway_payment_id', 'token_purchases', ['gateway_payment_id'],
        postgresql_where=sa.text('gateway_payment_id IS NOT NULL'),
    )


def downgrade() -> None:
    """Drop token_purchases and profiles."""
    op.drop_index('idx_token_purchases_gateway_payment_id', table_name='token_purchases')
    op.drop_index('idx_token_purchases_pending', table_name='token_purchases')
    op.drop_index('idx_token_purchases_profile_id', table_name='token_purchases')
    op.drop_index('idx_token_purchases_user_id', table_name='token_purchases')
    op.drop_table('token_purchases')

    op.drop_index('idx_profiles_email_created_at', table_name='profiles')
    op.drop_table('profiles')
