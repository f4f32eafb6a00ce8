"""Baseline migration - auth, tenancy and intake form tables

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-18

Creates all tables plus create_organization_and_admin(), the atomic
organization + admin profile procedure used by provisioning when
PROVISIONING_USE_DB_FUNCTION is enabled.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create tables, triggers and the provisioning function."""

    op.execute('CREATE EXTENSION IF NOT EXISTS pgcrypto')  # For gen_random_uuid()

    # ==========================================================================
    # Users and verification
    # ==========================================================================
    op.execute('''
        CREATE TABLE users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email VARCHAR(255) UNIQUE NOT NULL,
            password_hash VARCHAR(255) NOT NULL,
            full_name VARCHAR(255),
            email_verified_at TIMESTAMPTZ,
            token_version INTEGER NOT NULL DEFAULT 1,
            is_active BOOLEAN NOT NULL DEFAULT true,
            last_login_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    op.execute('''
        CREATE TABLE email_verification_codes (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            code_hash VARCHAR(64) UNIQUE NOT NULL,
            expires_at TIMESTAMPTZ NOT NULL,
            consumed_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX ix_email_verification_codes_user_id ON email_verification_codes(user_id)')

    op.execute('''
        CREATE TABLE provisioning_intents (
            user_id UUID PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            email VARCHAR(255) NOT NULL,
            organization_name VARCHAR(255) NOT NULL,
            full_name VARCHAR(255) NOT NULL,
            abn VARCHAR(20),
            phone VARCHAR(50),
            plan VARCHAR(50) NOT NULL,
            expires_at TIMESTAMPTZ NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    # ==========================================================================
    # Tenancy
    # ==========================================================================
    op.execute('''
        CREATE TABLE organizations (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name VARCHAR(255) NOT NULL,
            abn VARCHAR(20),
            phone VARCHAR(50),
            created_by_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX ix_organizations_created_by_user_id ON organizations(created_by_user_id)')

    # id = users.id; the primary key serializes racing provisioners
    op.execute('''
        CREATE TABLE profiles (
            id UUID PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            full_name VARCHAR(255) NOT NULL,
            email VARCHAR(255) NOT NULL,
            phone VARCHAR(50),
            role VARCHAR(20) NOT NULL,
            subscription_status VARCHAR(20) NOT NULL,
            plan VARCHAR(50) NOT NULL DEFAULT 'starter',
            trial_ends_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT ck_profiles_role CHECK (role IN ('admin', 'staff'))
        )
    ''')
    op.execute('CREATE INDEX ix_profiles_organization_id ON profiles(organization_id)')

    # ==========================================================================
    # Intake forms and clients
    # ==========================================================================
    op.execute('''
        CREATE TABLE form_configs (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID UNIQUE NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            config JSON NOT NULL,
            current_version INTEGER NOT NULL DEFAULT 1,
            updated_by_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    op.execute('''
        CREATE TABLE clients (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            first_name VARCHAR(100) NOT NULL,
            last_name VARCHAR(100) NOT NULL,
            data JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_by_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX ix_clients_organization_id ON clients(organization_id)')

    # ==========================================================================
    # updated_at triggers
    # ==========================================================================
    op.execute('''
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = now();
            RETURN NEW;
        END;
        $$ language 'plpgsql'
    ''')

    for table in ("users", "organizations", "profiles", "form_configs", "clients"):
        op.execute(f'''
            CREATE TRIGGER update_{table}_updated_at
                BEFORE UPDATE ON {table}
                FOR EACH ROW
                EXECUTE FUNCTION update_updated_at_column()
        ''')

    # ==========================================================================
    # Atomic provisioning
    # ==========================================================================
    op.execute('''
        CREATE OR REPLACE FUNCTION create_organization_and_admin(
            p_user_id UUID,
            p_user_email TEXT,
            p_full_name TEXT,
            p_organization_name TEXT,
            p_abn TEXT,
            p_phone TEXT,
            p_plan TEXT,
            p_trial_days INTEGER
        )
        RETURNS UUID AS $$
        DECLARE
            v_org_id UUID;
        BEGIN
            INSERT INTO organizations (name, abn, phone, created_by_user_id)
            VALUES (p_organization_name, p_abn, p_phone, p_user_id)
            RETURNING id INTO v_org_id;

            INSERT INTO profiles (
                id, organization_id, full_name, email, phone,
                role, subscription_status, plan, trial_ends_at
            )
            VALUES (
                p_user_id, v_org_id, p_full_name, p_user_email, p_phone,
                'admin', 'trial', p_plan, now() + make_interval(days => p_trial_days)
            );

            RETURN v_org_id;
        END;
        $$ LANGUAGE plpgsql
    ''')


def downgrade() -> None:
    """Drop everything created by upgrade()."""

    op.execute(
        'DROP FUNCTION IF EXISTS create_organization_and_admin('
        'UUID, TEXT, TEXT, TEXT, TEXT, TEXT, TEXT, INTEGER)'
    )

    for table in ("clients", "form_configs", "profiles", "organizations", "users"):
        op.execute(f'DROP TRIGGER IF EXISTS update_{table}_updated_at ON {table}')
    op.execute('DROP FUNCTION IF EXISTS update_updated_at_column()')

    # Reverse dependency order
    op.execute('DROP TABLE IF EXISTS clients')
    op.execute('DROP TABLE IF EXISTS form_configs')
    op.execute('DROP TABLE IF EXISTS profiles')
    op.execute('DROP TABLE IF EXISTS organizations')
    op.execute('DROP TABLE IF EXISTS provisioning_intents')
    op.execute('DROP TABLE IF EXISTS email_verification_codes')
    op.execute('DROP TABLE IF EXISTS users')
