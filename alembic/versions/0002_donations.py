from alembic import op

revision = "0002_donations"
down_revision = "0001_users_campaigns"
branch_labels = None
depends_on = None


def upgrade():
    op.execute(
        """
    DO $$
    BEGIN
      IF NOT EXISTS (SELECT 1 FROM pg_type WHERE typname = 'donation_status') THEN
        CREATE TYPE donation_status AS ENUM ('pending','paid','failed','expired');
      END IF;
    END$$;

    CREATE TABLE IF NOT EXISTS donations (
      id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
      campaign_id UUID NOT NULL REFERENCES campaigns(id) ON DELETE CASCADE,
      user_id UUID NULL REFERENCES users(id) ON DELETE SET NULL,
      donor_name TEXT NULL,
      donor_email CITEXT NULL,
      amount NUMERIC(15,2) NOT NULL CHECK (amount > 0),
      status donation_status NOT NULL DEFAULT 'pending',
      payment_method TEXT NULL,
      external_id TEXT UNIQUE,
      message TEXT NULL,
      is_anonymous BOOLEAN NOT NULL DEFAULT FALSE,
      paid_at TIMESTAMPTZ NULL,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );

    CREATE INDEX IF NOT EXISTS idx_donations_campaign ON donations(campaign_id, created_at);
    CREATE INDEX IF NOT EXISTS idx_donations_user     ON donations(user_id, created_at);
    """
    )


def downgrade():
    op.execute(
        """
    DROP TABLE IF EXISTS donations;
    DO $$
    BEGIN
      IF EXISTS (SELECT 1 FROM pg_type WHERE typname = 'donation_status') THEN
        DROP TYPE donation_status;
      END IF;
    END$$;
    """
    )
