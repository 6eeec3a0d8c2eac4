"""Initial migration

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
import uuid
from decimal import Decimal
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# Default tiers; a NULL limit would mean unlimited
DEFAULT_PLANS = [
    {
        'name': 'free', 'display_name': 'Free', 'description': 'Perfect for trying out VECTERAI',
        'price_eur': Decimal('0'), 'location_limit': 1, 'minute_limit': 50, 'sort_order': 0,
        'features': ['Chat widget', 'Basic reservations', '50 voice minutes/month'],
    },
    {
        'name': 'starter', 'display_name': 'Starter', 'description': 'For small restaurants getting started',
        'price_eur': Decimal('29'), 'location_limit': 1, 'minute_limit': 200, 'sort_order': 1,
        'features': ['Everything in Free', '200 voice minutes/month', 'Email notifications', 'Basic analytics'],
    },
    {
        'name': 'professional', 'display_name': 'Professional', 'description': 'For growing restaurants',
        'price_eur': Decimal('79'), 'location_limit': 3, 'minute_limit': 500, 'sort_order': 2,
        'features': ['Everything in Starter', 'Up to 3 locations', '500 voice minutes/month',
                     'SMS notifications', 'Advanced analytics', 'Priority support'],
    },
    {
        'name': 'enterprise', 'display_name': 'Enterprise', 'description': 'For restaurant groups',
        'price_eur': None, 'location_limit': 10, 'minute_limit': 2000, 'sort_order': 3,
        'features': ['Everything in Professional', 'Up to 10 locations', '2000 voice minutes/month',
                     'Custom integrations', 'Dedicated support', 'SLA guarantee'],
    },
]


def upgrade() -> None:
    # Create plan_configs table
    plan_configs = op.create_table(
        'plan_configs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(50), unique=True, nullable=False),
        sa.Column('display_name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('price_eur', sa.Numeric(10, 2)),
        sa.Column('price_interval', sa.String(10), server_default='month'),
        sa.Column('location_limit', sa.Integer()),
        sa.Column('minute_limit', sa.Integer()),
        sa.Column('features', sa.JSON()),
        sa.Column('stripe_price_id', sa.String(100), unique=True),
        sa.Column('stripe_product_id', sa.String(100)),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('sort_order', sa.Integer(), server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('location_limit IS NULL OR location_limit >= 0', name='ck_plan_configs_location_limit'),
        sa.CheckConstraint('minute_limit IS NULL OR minute_limit >= 0', name='ck_plan_configs_minute_limit'),
    )

    # Create organizations table (owner FK added once users exists)
    op.create_table(
        'organizations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True)),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('plan_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('plan_configs.id')),
        sa.Column('stripe_customer_id', sa.String(100), unique=True),
        sa.Column('stripe_subscription_id', sa.String(100), unique=True),
        sa.Column('subscription_status', sa.String(20), server_default='active'),
        sa.Column('voice_minutes_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('voice_minutes_reset_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('billing_email', sa.String(255)),
        sa.Column('billing_phone', sa.String(20)),
        sa.Column('metadata_json', sa.JSON()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('voice_minutes_used >= 0', name='ck_organizations_voice_minutes_used'),
    )

    # Create users table
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('organizations.id')),
        sa.Column('email', sa.String(255), unique=True, nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255)),
        sa.Column(
            'role',
            sa.Enum('SUPER_ADMIN', 'ORGANIZATION_ADMIN', 'STAFF_VIEWER', name='userrole'),
            server_default='STAFF_VIEWER',
        ),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('last_login', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_foreign_key(
        'fk_organizations_owner_id', 'organizations', 'users', ['owner_id'], ['id'],
    )

    # Create organization_members table
    op.create_table(
        'organization_members',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('role', sa.String(20), server_default='viewer'),
        sa.Column('joined_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('organization_id', 'user_id'),
    )

    # Create restaurants table
    op.create_table(
        'restaurants',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('organizations.id')),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(20)),
        sa.Column('description', sa.Text()),
        sa.Column('address_json', sa.JSON()),
        sa.Column('vapi_phone_number_id', sa.String(100), unique=True),
        sa.Column('settings_json', sa.JSON()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )

    # Create call_logs table
    op.create_table(
        'call_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('call_id', sa.String(100), unique=True, nullable=False),
        sa.Column('assistant_id', sa.String(100)),
        sa.Column('restaurant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('restaurants.id'), nullable=False),
        sa.Column('phone_number', sa.String(30)),
        sa.Column('customer_name', sa.String(255)),
        sa.Column('customer_phone', sa.String(30)),
        sa.Column('direction', sa.String(20), server_default='inbound'),
        sa.Column('status', sa.String(20), server_default='in-progress'),
        sa.Column('started_at', sa.DateTime()),
        sa.Column('ended_at', sa.DateTime()),
        sa.Column('duration_seconds', sa.Integer()),
        sa.Column('billed_minutes', sa.Integer()),
        sa.Column('transcript_json', sa.JSON()),
        sa.Column('summary', sa.Text()),
        sa.Column('language_detected', sa.String(10)),
        sa.Column('sentiment', sa.String(20)),
        sa.Column('intent', sa.String(100)),
        sa.Column('recording_url', sa.String(500)),
        sa.Column('reservation_id', postgresql.UUID(as_uuid=True)),
        sa.Column('order_id', postgresql.UUID(as_uuid=True)),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )

    # Create billing_alerts table
    op.create_table(
        'billing_alerts',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('alert_type', sa.String(50), nullable=False),
        sa.Column('severity', sa.String(20), nullable=False, server_default='warning'),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('dedupe_key', sa.String(255), unique=True),
        sa.Column('stripe_event_id', sa.String(100)),
        sa.Column('stripe_invoice_id', sa.String(100)),
        sa.Column('amount_due', sa.Numeric(10, 2)),
        sa.Column('currency', sa.String(10), server_default='eur'),
        sa.Column('metadata_json', sa.JSON()),
        sa.Column('acknowledged_at', sa.DateTime()),
        sa.Column('acknowledged_by', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    # Create indexes
    op.create_index('ix_restaurants_organization_id', 'restaurants', ['organization_id'])
    op.create_index('ix_call_logs_restaurant_id', 'call_logs', ['restaurant_id'])
    op.create_index('ix_call_logs_started_at', 'call_logs', ['started_at'])
    op.create_index('ix_billing_alerts_organization_id', 'billing_alerts', ['organization_id'])
    op.create_index('ix_billing_alerts_created_at', 'billing_alerts', ['created_at'])

    # Seed default plans
    op.bulk_insert(
        plan_configs,
        [{'id': uuid.uuid4(), 'price_interval': 'month', 'is_active': True, **plan} for plan in DEFAULT_PLANS],
    )


def downgrade() -> None:
    op.drop_table('billing_alerts')
    op.drop_table('call_logs')
    op.drop_table('restaurants')
    op.drop_table('organization_members')
    op.drop_constraint('fk_organizations_owner_id', 'organizations', type_='foreignkey')
    op.drop_table('users')
    op.drop_table('organizations')
    op.drop_table('plan_configs')
    sa.Enum(name='userrole').drop(op.get_bind(), checkfirst=True)
