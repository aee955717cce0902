from typing import Any

from autodonate.utils.db import Database


def insert_notification(
    db: Database, *, user_id: str, title: str, message: str, type: str = "system"
) -> str:
    sql = """
    INSERT INTO notifications (user_id, title, message, type)
    VALUES (%s, %s, %s, %s)
    RETURNING id
    """
    with db.transaction() as cur:
        cur.execute(sql, (user_id, title, message, type))
        return str(cur.fetchone()["id"])


def list_for_user(
    db: Database, user_id: str, *, unread_only: bool = False, limit: int = 50
) -> list[dict[str, Any]]:
    sql = "SELECT id, title, message, type, is_read, created_at FROM notifications WHERE user_id = %s"
    if unread_only:
        sql += " AND is_read = FALSE"
    sql += " ORDER BY created_at DESC LIMIT %s"
    with db.transaction() as cur:
        cur.execute(sql, (user_id, limit))
        return [dict(r) for r in cur.fetchall()]

