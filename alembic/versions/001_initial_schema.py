"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-09-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None

claim_status = sa.Enum(
    'draft', 'submitted', 'paid', 'partially_paid', 'denied', 'exception',
    name='claim_status',
)
batch_status = sa.Enum('pending', 'posted', 'exception', 'failed', name='batch_status')


def upgrade() -> None:
    # Create claims table
    op.create_table(
        'claims',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('claim_number', sa.String(length=50), nullable=False),
        sa.Column('patient_id', sa.String(length=50), nullable=True),
        sa.Column('patient_name', sa.String(length=255), nullable=True),
        sa.Column('provider_id', sa.String(length=50), nullable=True),
        sa.Column('service_date', sa.Date(), nullable=True),
        sa.Column('procedure_code', sa.String(length=10), nullable=True),
        sa.Column('diagnosis_code', sa.String(length=10), nullable=True),
        sa.Column('total_charged', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('paid_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('adjustment_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('status', claim_status, nullable=False),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('total_charged >= 0', name='ck_claims_total_charged_non_negative'),
        sa.CheckConstraint('paid_amount >= 0', name='ck_claims_paid_non_negative'),
        sa.CheckConstraint('paid_amount <= total_charged', name='ck_claims_paid_within_charges'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_claims_id'), 'claims', ['id'], unique=False)
    op.create_index(op.f('ix_claims_claim_number'), 'claims', ['claim_number'], unique=True)
    op.create_index(op.f('ix_claims_patient_id'), 'claims', ['patient_id'], unique=False)
    op.create_index(op.f('ix_claims_provider_id'), 'claims', ['provider_id'], unique=False)
    op.create_index(op.f('ix_claims_status'), 'claims', ['status'], unique=False)

    # Create remittance_batches table
    op.create_table(
        'remittance_batches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('era_number', sa.String(length=50), nullable=False),
        sa.Column('provider_id', sa.String(length=50), nullable=False),
        sa.Column('payer_name', sa.String(length=255), nullable=True),
        sa.Column('check_number', sa.String(length=50), nullable=True),
        sa.Column('check_date', sa.Date(), nullable=True),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('claims_count', sa.Integer(), nullable=False),
        sa.Column('status', batch_status, nullable=False),
        sa.Column('auto_posted', sa.Boolean(), nullable=False),
        sa.Column('exceptions', sa.JSON(), nullable=False),
        sa.Column('file_name', sa.String(length=255), nullable=True),
        sa.Column('raw_content', sa.Text(), nullable=True),
        sa.Column('parse_errors', sa.JSON(), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('processed_by', sa.String(length=50), nullable=True),
        sa.Column('created_by', sa.String(length=50), nullable=True),
        sa.Column('archived_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_remittance_batches_id'), 'remittance_batches', ['id'], unique=False)
    op.create_index(op.f('ix_remittance_batches_era_number'), 'remittance_batches', ['era_number'], unique=True)
    op.create_index(op.f('ix_remittance_batches_provider_id'), 'remittance_batches', ['provider_id'], unique=False)
    op.create_index(op.f('ix_remittance_batches_payer_name'), 'remittance_batches', ['payer_name'], unique=False)
    op.create_index(op.f('ix_remittance_batches_status'), 'remittance_batches', ['status'], unique=False)
    op.create_index(op.f('ix_remittance_batches_processed_at'), 'remittance_batches', ['processed_at'], unique=False)

    # Create remittance_line_items table
    op.create_table(
        'remittance_line_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('batch_id', sa.Integer(), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('claim_number', sa.String(length=50), nullable=False),
        sa.Column('patient_name', sa.String(length=255), nullable=True),
        sa.Column('service_date', sa.Date(), nullable=True),
        sa.Column('charged_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('paid_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('adjustment_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('adjustment_reason', sa.String(length=20), nullable=True),
        sa.Column('posted', sa.Boolean(), nullable=False),
        sa.Column('posted_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['batch_id'], ['remittance_batches.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('batch_id', 'line_number', name='uq_line_item_batch_line')
    )
    op.create_index(op.f('ix_remittance_line_items_id'), 'remittance_line_items', ['id'], unique=False)
    op.create_index(op.f('ix_remittance_line_items_batch_id'), 'remittance_line_items', ['batch_id'], unique=False)
    op.create_index(op.f('ix_remittance_line_items_claim_number'), 'remittance_line_items', ['claim_number'], unique=False)

    # Create payment_postings table
    op.create_table(
        'payment_postings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('claim_id', sa.Integer(), nullable=False),
        sa.Column('batch_id', sa.Integer(), nullable=True),
        sa.Column('line_item_id', sa.Integer(), nullable=True),
        sa.Column('paid_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('adjustment_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('adjustment_reason', sa.String(length=20), nullable=True),
        sa.Column('posted_at', sa.DateTime(), nullable=False),
        sa.Column('posted_by', sa.String(length=50), nullable=False),
        sa.Column('auto_posted', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['claim_id'], ['claims.id'], ),
        sa.ForeignKeyConstraint(['batch_id'], ['remittance_batches.id'], ),
        sa.ForeignKeyConstraint(['line_item_id'], ['remittance_line_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('claim_id', 'batch_id', name='uq_payment_posting_claim_batch')
    )
    op.create_index(op.f('ix_payment_postings_id'), 'payment_postings', ['id'], unique=False)
    op.create_index(op.f('ix_payment_postings_claim_id'), 'payment_postings', ['claim_id'], unique=False)
    op.create_index(op.f('ix_payment_postings_batch_id'), 'payment_postings', ['batch_id'], unique=False)
    op.create_index(op.f('ix_payment_postings_posted_at'), 'payment_postings', ['posted_at'], unique=False)
    op.create_index(op.f('ix_payment_postings_posted_by'), 'payment_postings', ['posted_by'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_payment_postings_posted_by'), table_name='payment_postings')
    op.drop_index(op.f('ix_payment_postings_posted_at'), table_name='payment_postings')
    op.drop_index(op.f('ix_payment_postings_batch_id'), table_name='payment_postings')
    op.drop_index(op.f('ix_payment_postings_claim_id'), table_name='payment_postings')
    op.drop_index(op.f('ix_payment_postings_id'), table_name='payment_postings')
    op.drop_table('payment_postings')

    op.drop_index(op.f('ix_remittance_line_items_claim_number'), table_name='remittance_line_items')
    op.drop_index(op.f('ix_remittance_line_items_batch_id'), table_name='remittance_line_items')
    op.drop_index(op.f('ix_remittance_line_items_id'), table_name='remittance_line_items')
    op.drop_table('remittance_line_items')

    op.drop_index(op.f('ix_remittance_batches_processed_at'), table_name='remittance_batches')
    op.drop_index(op.f('ix_remittance_batches_status'), table_name='remittance_batches')
    op.drop_index(op.f('ix_remittance_batches_payer_name'), table_name='remittance_batches')
    op.drop_index(op.f('ix_remittance_batches_provider_id'), table_name='remittance_batches')
    op.drop_index(op.f('ix_remittance_batches_era_number'), table_name='remittance_batches')
    op.drop_index(op.f('ix_remittance_batches_id'), table_name='remittance_batches')
    op.drop_table('remittance_batches')

    op.drop_index(op.f('ix_claims_status'), table_name='claims')
    op.drop_index(op.f('ix_claims_provider_id'), table_name='claims')
    op.drop_index(op.f('ix_claims_patient_id'), table_name='claims')
    op.drop_index(op.f('ix_claims_claim_number'), table_name='claims')
    op.drop_index(op.f('ix_claims_id'), table_name='claims')
    op.drop_table('claims')

    batch_status.drop(op.get_bind(), checkfirst=True)
    claim_status.drop(op.get_bind(), checkfirst=True)
