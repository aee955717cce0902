"""recurring (automatic) donations + link from donations

Revision ID: 0003_recurring_donations
Revises: 0002_donations
Create Date: 2025-03-09

"""

from alembic import op

revision = "0003_recurring_donations"
down_revision = "0002_donations"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS recurring_donations (
          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
          user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
          campaign_id UUID NOT NULL REFERENCES campaigns(id) ON DELETE CASCADE,
          amount NUMERIC(15,2) NOT NULL CHECK (amount > 0),
          -- text, not an enum: 'minute' was added after launch for cron testing
          frequency VARCHAR(20) NOT NULL,
          is_active BOOLEAN NOT NULL DEFAULT TRUE,
          last_executed_at TIMESTAMPTZ NULL,
          next_execution_at TIMESTAMPTZ NULL,
          created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
          updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
        CREATE INDEX IF NOT EXISTS idx_recurring_user ON recurring_donations(user_id);
        CREATE INDEX IF NOT EXISTS idx_recurring_due
          ON recurring_donations(next_execution_at) WHERE is_active = TRUE;

        ALTER TABLE donations
        ADD COLUMN IF NOT EXISTS recurring_donation_id UUID NULL
          REFERENCES recurring_donations(id) ON DELETE SET NULL;
        """
    )


def downgrade() -> None:
    op.execute(
        """
        ALTER TABLE donations DROP COLUMN IF EXISTS recurring_donation_id;
        DROP TABLE IF EXISTS recurring_donations;
        """
    )
