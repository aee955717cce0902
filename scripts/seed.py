#!/usr/bin/env python3
"""
Seed database with a demo donor, campaign and a per-minute auto donation.

Usage: python scripts/seed.py [--force]
Requires: migrations applied (alembic upgrade head)
"""
import os
import sys

# Ensure the package is on path when run from a checkout
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from flask_jwt_extended import create_access_token

from autodonate import config, create_app
from autodonate.utils.db import Database

DEMO_EMAIL = "demo@example.com"


def seed(db: Database):
    with db.transaction() as cur:
        cur.execute("SELECT COUNT(*) AS n FROM users WHERE email = %s", (DEMO_EMAIL,))
        if cur.fetchone()["n"] > 0:
            print(f"Already seeded ({DEMO_EMAIL} exists). Use --force to re-seed.")
            return None

        cur.execute(
            """
            INSERT INTO users (email, name, balance)
            VALUES (%s, 'Demo Donor', 100000)
            RETURNING id
            """,
            (DEMO_EMAIL,),
        )
        user_id = str(cur.fetchone()["id"])

        cur.execute(
            """
            INSERT INTO campaigns (user_id, title, slug, goal_amount)
            VALUES
                (%s, 'Help Build the School', 'help-build-school', 10000000),
                (%s, 'Emergency Relief Fund', 'emergency-relief', 25000000)
            ON CONFLICT (slug) DO NOTHING
            RETURNING id, title
            """,
            (user_id, user_id),
        )
        campaigns = cur.fetchall()

        # due immediately, then once a minute: drains the demo wallet in 4 passes
        if campaigns:
            cur.execute(
                """
                INSERT INTO recurring_donations (user_id, campaign_id, amount, frequency)
                VALUES (%s, %s, 25000, 'minute')
                """,
                (user_id, campaigns[0]["id"]),
            )

    print("Seeded successfully.")
    print(f"  Demo user: {DEMO_EMAIL} (balance 100000)")
    print(f"  Campaigns: {len(campaigns)}")
    print("  Recurring: 25000 every minute on the first campaign")
    return user_id


def force_seed(db: Database):
    """Clear demo data and re-seed. Use with caution."""
    with db.transaction() as cur:
        cur.execute(
            "DELETE FROM campaigns WHERE slug IN ('help-build-school', 'emergency-relief')"
        )
        cur.execute("DELETE FROM users WHERE email = %s", (DEMO_EMAIL,))
    print("Cleared demo data. Seeding...")
    return seed(db)


if __name__ == "__main__":
    db = Database.from_config(config.as_flask_config())
    try:
        user_id = force_seed(db) if "--force" in sys.argv else seed(db)
    finally:
        db.close()
    if user_id:
        app = create_app(db=db)
        with app.app_context():
            print(f"  Bearer token (15 min): {create_access_token(identity=user_id)}")
