"""users with wallet balance, campaigns with running totals

Revision ID: 0001_users_campaigns
Revises:
Create Date: 2025-03-02

"""

from alembic import op

revision = "0001_users_campaigns"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.execute(
        """
    CREATE EXTENSION IF NOT EXISTS "pgcrypto";
    CREATE EXTENSION IF NOT EXISTS "citext";

    CREATE TABLE IF NOT EXISTS users (
      id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
      email CITEXT NOT NULL UNIQUE,
      name TEXT NOT NULL,
      balance NUMERIC(15,2) NOT NULL DEFAULT 0 CHECK (balance >= 0),
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );

    CREATE TABLE IF NOT EXISTS campaigns (
      id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
      user_id UUID NULL REFERENCES users(id) ON DELETE SET NULL,
      title TEXT NOT NULL,
      slug TEXT NOT NULL UNIQUE,
      goal_amount NUMERIC(15,2) NULL,
      current_amount NUMERIC(15,2) NOT NULL DEFAULT 0,
      donor_count INTEGER NOT NULL DEFAULT 0,
      status TEXT NOT NULL DEFAULT 'active',
      end_date TIMESTAMPTZ NULL,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """
    )


def downgrade():
    op.execute(
        """
    DROP TABLE IF EXISTS campaigns;
    DROP TABLE IF EXISTS users;
    """
    )
