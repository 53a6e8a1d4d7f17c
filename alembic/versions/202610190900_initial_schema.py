"""
Initial schema: accounts, organizations, business records and notifications
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
# revision identifiers, used by Alembic.
revision = '202610190900_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _uuid_pk():
    return sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()'))


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime, nullable=True, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime, nullable=True, server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def _owner_columns(user_nullable=False):
    return [
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('user_profiles.id', ondelete='CASCADE'), nullable=user_nullable),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=True),
    ]


def upgrade():
    op.execute('CREATE EXTENSION IF NOT EXISTS pgcrypto')

    op.create_table(
        'user_profiles',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('account_type', sa.String(length=20), nullable=False, server_default='individual'),
        sa.Column('default_organization_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('industry', sa.String(length=100)),
        sa.Column('business_name', sa.String(length=255)),
        sa.Column('phone', sa.String(length=50)),
        sa.Column('address', sa.String(length=255)),
        sa.Column('city', sa.String(length=100)),
        sa.Column('state', sa.String(length=100)),
        sa.Column('country', sa.String(length=100)),
        sa.Column('zip_code', sa.String(length=20)),
        sa.Column('tax_id', sa.String(length=100)),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.text('true')),
        sa.Column('cancel_scheduled', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('subscription_end_date', sa.DateTime, nullable=True),
        *_timestamps(),
        sa.Column('last_login_at', sa.DateTime, nullable=True),
        sa.CheckConstraint("account_type IN ('individual', 'business')", name='ck_user_profiles_account_type'),
    )
    op.create_index('ix_user_profiles_email', 'user_profiles', ['email'], unique=True)

    op.create_table(
        'organizations',
        _uuid_pk(),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('industry', sa.String(length=100)),
        sa.Column('description', sa.Text),
        sa.Column('features', postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column('settings', postgresql.JSONB, server_default=sa.text("'{}'::jsonb")),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='ACTIVE'),
        sa.Column('member_limit', sa.Integer, nullable=False, server_default='5'),
        sa.Column('is_subscribed', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('subscription_tier', sa.String(length=50), nullable=True),
        sa.Column('subscription_end_date', sa.DateTime, nullable=True),
        sa.Column('cancel_scheduled', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('created_by', postgresql.UUID(as_uuid=True), sa.ForeignKey('user_profiles.id', ondelete='SET NULL'), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('ACTIVE', 'SUSPENDED', 'DELETED', 'INACTIVE')", name='ck_organizations_status'),
    )
    op.create_index('ix_organizations_status', 'organizations', ['status'])
    op.create_foreign_key(
        'fk_user_profiles_default_organization',
        'user_profiles', 'organizations',
        ['default_organization_id'], ['id'],
        ondelete='SET NULL',
    )

    op.create_table(
        'user_preferences',
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('user_profiles.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('email_notifications', sa.Boolean, nullable=False, server_default=sa.text('true')),
        sa.Column('push_notifications', sa.Boolean, nullable=False, server_default=sa.text('true')),
        sa.Column('dark_mode', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('language', sa.String(length=10), nullable=False, server_default='en'),
        sa.Column('updated_at', sa.DateTime, nullable=True, server_default=sa.text('CURRENT_TIMESTAMP')),
    )

    op.create_table(
        'organization_users',
        _uuid_pk(),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('user_profiles.id', ondelete='CASCADE'), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='MEMBER'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('invitation_token', sa.String(length=64), nullable=True, unique=True),
        sa.Column('invitation_expiry', sa.DateTime, nullable=True),
        sa.Column('invited_by', postgresql.UUID(as_uuid=True), sa.ForeignKey('user_profiles.id', ondelete='SET NULL'), nullable=True),
        sa.Column('department', sa.String(length=100)),
        sa.Column('position', sa.String(length=100)),
        sa.Column('permissions', postgresql.JSONB, server_default=sa.text("'{}'::jsonb")),
        sa.Column('last_accessed', sa.DateTime, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('organization_id', 'user_id', name='uq_organization_users_org_user'),
        sa.CheckConstraint("role IN ('OWNER', 'ADMIN', 'MANAGER', 'MEMBER', 'VIEWER')", name='ck_organization_users_role'),
        sa.CheckConstraint("status IN ('PENDING', 'ACTIVE', 'INACTIVE')", name='ck_organization_users_status'),
    )
    op.create_index('ix_organization_users_organization_id', 'organization_users', ['organization_id'])
    op.create_index('ix_organization_users_user_id', 'organization_users', ['user_id'])
    op.create_index('idx_organization_users_org_status', 'organization_users', ['organization_id', 'status'])

    op.create_table(
        'departments',
        _uuid_pk(),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('manager_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('user_profiles.id', ondelete='SET NULL'), nullable=True),
        sa.Column('parent_department_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('departments.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='ACTIVE'),
        *_timestamps(),
        sa.UniqueConstraint('organization_id', 'name', name='uq_departments_org_name'),
    )
    op.create_index('ix_departments_organization_id', 'departments', ['organization_id'])

    op.create_table(
        'organization_activities',
        _uuid_pk(),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('user_profiles.id', ondelete='SET NULL'), nullable=True),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('entity_type', sa.String(length=50)),
        sa.Column('entity_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('description', sa.Text),
        sa.Column('metadata', postgresql.JSONB, server_default=sa.text("'{}'::jsonb")),
        sa.Column('created_at', sa.DateTime, nullable=True, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('idx_organization_activities_org_created', 'organization_activities', ['organization_id', 'created_at'])

    op.create_table(
        'clients',
        _uuid_pk(),
        *_owner_columns(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255)),
        sa.Column('phone', sa.String(length=50)),
        sa.Column('address', sa.String(length=255)),
        sa.Column('city', sa.String(length=100)),
        sa.Column('state', sa.String(length=100)),
        sa.Column('country', sa.String(length=100)),
        sa.Column('zip_code', sa.String(length=20)),
        sa.Column('company_name', sa.String(length=255)),
        sa.Column('tax_id', sa.String(length=100)),
        sa.Column('website', sa.String(length=255)),
        sa.Column('industry', sa.String(length=100)),
        sa.Column('payment_terms', sa.String(length=100)),
        sa.Column('notes', sa.Text),
        sa.Column('type', sa.String(length=20), nullable=False, server_default='individual'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        *_timestamps(),
        sa.CheckConstraint("type IN ('individual', 'business')", name='ck_clients_type'),
        sa.CheckConstraint("status IN ('active', 'inactive')", name='ck_clients_status'),
    )
    op.create_index('ix_clients_user_id', 'clients', ['user_id'])
    op.create_index('ix_clients_organization_id', 'clients', ['organization_id'])

    op.create_table(
        'invoices',
        _uuid_pk(),
        *_owner_columns(),
        sa.Column('client_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('clients.id', ondelete='SET NULL'), nullable=True),
        sa.Column('account_type', sa.String(length=20), nullable=False, server_default='individual'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='DRAFT'),
        sa.Column('invoice_number', sa.String(length=100), nullable=False),
        sa.Column('issue_date', sa.Date, nullable=False, server_default=sa.text('CURRENT_DATE')),
        sa.Column('due_date', sa.Date, nullable=False),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('sub_total', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('tax_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('notes', sa.Text),
        sa.Column('terms_and_conditions', sa.Text),
        sa.Column('purchase_order_number', sa.String(length=100)),
        sa.Column('project_code', sa.String(length=100)),
        sa.Column('payment_terms', sa.String(length=100)),
        sa.Column('pdf_url', sa.String),
        sa.Column('template_id', sa.String(length=100)),
        sa.Column('payment_information', postgresql.JSONB, server_default=sa.text("'{}'::jsonb")),
        sa.Column('public_view_token', sa.String(length=128), nullable=True, unique=True),
        sa.Column('email_sent_at', sa.DateTime, nullable=True),
        sa.Column('email_sent_to', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('DRAFT', 'SENT', 'PAID', 'OVERDUE', 'CANCELLED')", name='ck_invoices_status'),
    )
    op.create_index('ix_invoices_user_id', 'invoices', ['user_id'])
    op.create_index('ix_invoices_client_id', 'invoices', ['client_id'])
    op.create_index('ix_invoices_organization_id', 'invoices', ['organization_id'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])
    op.create_index('ix_invoices_created_at', 'invoices', ['created_at'])
    op.create_index('idx_invoices_org_status', 'invoices', ['organization_id', 'status'])

    op.create_table(
        'invoice_items',
        _uuid_pk(),
        sa.Column('invoice_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.Column('quantity', sa.Integer, nullable=False, server_default='1'),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('position', sa.Integer, nullable=False, server_default='0'),
    )
    op.create_index('ix_invoice_items_invoice_id', 'invoice_items', ['invoice_id'])

    op.create_table(
        'contracts',
        _uuid_pk(),
        *_owner_columns(),
        sa.Column('client_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('clients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('account_type', sa.String(length=20), nullable=False, server_default='individual'),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('start_date', sa.Date, nullable=False),
        sa.Column('end_date', sa.Date, nullable=True),
        sa.Column('status', sa.String(length=30), nullable=False, server_default='DRAFT'),
        sa.Column('value', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('payment_terms', sa.String(length=255)),
        sa.Column('contract_type', sa.String(length=50), nullable=False, server_default='service_agreement'),
        sa.Column('billing_frequency', sa.String(length=20), nullable=False, server_default='one_time'),
        sa.Column('auto_renew', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column(
            'renewal_terms',
            postgresql.JSONB,
            server_default=sa.text('\'{"duration": 365, "priceAdjustment": 0, "notificationDays": [30, 15, 7]}\'::jsonb'),
        ),
        sa.Column('last_renewal_date', sa.Date, nullable=True),
        sa.Column('next_renewal_date', sa.Date, nullable=True),
        sa.Column('renewal_history', postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column('notifications_sent', postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column('approval_status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('approved_by', postgresql.UUID(as_uuid=True), sa.ForeignKey('user_profiles.id', ondelete='SET NULL'), nullable=True),
        sa.Column('approved_at', sa.DateTime, nullable=True),
        sa.Column('public_view_token', sa.String(length=128), nullable=True, unique=True),
        sa.Column('email_sent_at', sa.DateTime, nullable=True),
        sa.Column('email_sent_to', sa.String(length=255), nullable=True),
        sa.Column('metadata', postgresql.JSONB, server_default=sa.text("'{}'::jsonb")),
        *_timestamps(),
    )
    op.create_index('ix_contracts_user_id', 'contracts', ['user_id'])
    op.create_index('ix_contracts_client_id', 'contracts', ['client_id'])
    op.create_index('ix_contracts_organization_id', 'contracts', ['organization_id'])
    op.create_index('ix_contracts_status', 'contracts', ['status'])
    op.create_index('ix_contracts_created_at', 'contracts', ['created_at'])
    op.create_index('idx_contracts_status_end_date', 'contracts', ['status', 'end_date'])

    op.create_table(
        'expenses',
        _uuid_pk(),
        *_owner_columns(),
        sa.Column('account_type', sa.String(length=20), nullable=False, server_default='individual'),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('date', sa.Date, nullable=False),
        sa.Column('category', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('notes', sa.Text),
        sa.Column('receipt_url', sa.String),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('reviewed_by', postgresql.UUID(as_uuid=True), sa.ForeignKey('user_profiles.id', ondelete='SET NULL'), nullable=True),
        sa.Column('reviewed_at', sa.DateTime, nullable=True),
        *_timestamps(),
        sa.CheckConstraint('amount > 0', name='ck_expenses_amount_positive'),
        sa.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name='ck_expenses_status'),
    )
    op.create_index('ix_expenses_user_id', 'expenses', ['user_id'])
    op.create_index('ix_expenses_organization_id', 'expenses', ['organization_id'])

    op.create_table(
        'documents',
        _uuid_pk(),
        *_owner_columns(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False, server_default='OTHER'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='DRAFT'),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('parent_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('documents.id', ondelete='SET NULL'), nullable=True),
        sa.Column('file_url', sa.String, nullable=False),
        sa.Column('file_type', sa.String(length=100)),
        sa.Column('file_size', sa.BigInteger),
        sa.Column('metadata', postgresql.JSONB, server_default=sa.text("'{}'::jsonb")),
        sa.Column('tags', postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column('is_template', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('template_category', sa.String(length=100)),
        *_timestamps(),
    )
    op.create_index('ix_documents_user_id', 'documents', ['user_id'])
    op.create_index('ix_documents_organization_id', 'documents', ['organization_id'])
    op.create_index('ix_documents_parent_id', 'documents', ['parent_id'])

    op.create_table(
        'notifications',
        _uuid_pk(),
        *_owner_columns(),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('priority', sa.String(length=10), nullable=False, server_default='MEDIUM'),
        sa.Column('is_read', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('read_at', sa.DateTime, nullable=True),
        sa.Column('entity_type', sa.String(length=50)),
        sa.Column('entity_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('action_url', sa.String),
        sa.Column('action_text', sa.String(length=100)),
        sa.Column('channels', postgresql.JSONB, server_default=sa.text('\'["IN_APP"]\'::jsonb')),
        sa.Column('sent_channels', postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column('metadata', postgresql.JSONB, server_default=sa.text("'{}'::jsonb")),
        sa.Column('expires_at', sa.DateTime, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=True, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_notifications_organization_id', 'notifications', ['organization_id'])
    op.create_index('idx_notifications_user_read', 'notifications', ['user_id', 'is_read'])


def downgrade():
    op.drop_table('notifications')
    op.drop_table('documents')
    op.drop_table('expenses')
    op.drop_table('contracts')
    op.drop_table('invoice_items')
    op.drop_table('invoices')
    op.drop_table('clients')
    op.drop_table('organization_activities')
    op.drop_table('departments')
    op.drop_table('organization_users')
    op.drop_table('user_preferences')
    op.drop_constraint('fk_user_profiles_default_organization', 'user_profiles', type_='foreignkey')
    op.drop_table('organizations')
    op.drop_table('user_profiles')
