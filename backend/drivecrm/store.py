# drivecrm/store.py
# All SQL the authorization core and its routes need, behind one object so
# handlers and tests can swap the data source.
import logging
from dataclasses import dataclass, field
from typing import Optional

from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from drivecrm.security.permissions import PermissionEntry
from drivecrm.security.scope import compile_where

logger = logging.getLogger(__name__)

UNSET = object()


@dataclass
class SubjectRecord:
    id: str
    role: str
    email: Optional[str] = None
    name: Optional[str] = None
    is_active: bool = True
    branch_id: Optional[str] = None
    group_id: Optional[str] = None
    overrides: list = field(default_factory=list)


SQL_SUBJECT = """
select u.id::text, u.email, u.name, u.role, u.is_active,
       u.branch_id::text as branch_id, u.group_id::text as group_id
from users u
where u.id::text = %s
"""

SQL_OVERRIDES = """
select module, action, allowed
from user_permission_overrides
where user_id::text = %s
order by module, action
"""

SQL_GROUP_RULES = """
select module, action, allowed
from permission_rules
where group_id::text = %s
order by module, action
"""

LEAD_COLUMNS = sql.SQL(", ").join(
    sql.Identifier("leads", c) for c in
    ("id", "full_name", "phone", "status", "source", "owner_id", "branch_id", "created_at")
)


class PermissionStore:
    def __init__(self, pool: ConnectionPool):
        self.pool = pool

    def load_subject(self, user_id: str) -> Optional[SubjectRecord]:
        with self.pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(SQL_SUBJECT, (user_id,))
            row = cur.fetchone()
            if not row:
                return None
            cur.execute(SQL_OVERRIDES, (user_id,))
            overrides = cur.fetchall()
        return SubjectRecord(overrides=list(overrides), **row)

    def load_group_rules(self, group_id: str) -> list[dict]:
        with self.pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(SQL_GROUP_RULES, (group_id,))
            return list(cur.fetchall())

    def group_exists(self, group_id: str) -> bool:
        with self.pool.connection() as conn, conn.cursor() as cur:
            cur.execute("select 1 from permission_groups where id::text = %s", (group_id,))
            return cur.fetchone() is not None

    def replace_overrides(self, user_id: str, entries: list[PermissionEntry], group_id=UNSET) -> None:
        """Make ``entries`` the user's full override list, atomically."""
        with self.pool.connection() as conn, conn.cursor() as cur:
            if group_id is not UNSET:
                cur.execute("update users set group_id = %s where id::text = %s", (group_id, user_id))
            cur.execute("delete from user_permission_overrides where user_id::text = %s", (user_id,))
            if entries:
                cur.executemany(
                    "insert into user_permission_overrides(user_id, module, action, allowed)"
                    " values (%s, %s, %s, %s)",
                    [(user_id, e.module.value, e.action.value, e.allowed) for e in entries],
                )
            conn.commit()
        logger.info("Replaced %d permission overrides for user %s", len(entries), user_id)

    def active_branch_ids(self) -> list[str]:
        with self.pool.connection() as conn, conn.cursor() as cur:
            cur.execute("select id::text from branches where is_active order by name")
            return [r[0] for r in cur.fetchall()]

    def count_leads(self, where: dict) -> int:
        clause, params = compile_where(where, "leads")
        query = sql.SQL("select count(*) from {} where {}").format(sql.Identifier("leads"), clause)
        with self.pool.connection() as conn, conn.cursor() as cur:
            cur.execute(query, params)
            return cur.fetchone()[0]

    def fetch_leads(self, where: dict, limit: int, offset: int) -> list[dict]:
        clause, params = compile_where(where, "leads")
        query = sql.SQL(
            "select {} from {} where {} order by {} desc limit %s offset %s"
        ).format(LEAD_COLUMNS, sql.Identifier("leads"), clause, sql.Identifier("leads", "created_at"))
        with self.pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(query, [*params, limit, offset])
            return list(cur.fetchall())
