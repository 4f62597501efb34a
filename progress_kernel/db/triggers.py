"""
Module: progress_kernel.db.triggers
Responsibility: Installing, removing and verifying PostgreSQL append-only
    triggers (layer 2 of 2).  This is the database-level complement to the
    ORM listeners in db/immutability.py.
Architecture position: Kernel > DB.  May import from db/ only.  MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - milestone_events rows: no UPDATE, no DELETE.
    - template_change_log rows: no UPDATE, no DELETE.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on any violation (surfaced by SQLAlchemy as
      InternalError / DBAPIError).
    - OperationalError on deadlock during installation (caller retries).

Audit relevance:
    The ORM listeners only see writes that go through a Session.  Bulk
    UPDATE statements, raw SQL and direct psql access are stopped here.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine

# (table, trigger-name stem) pairs protected as append-only.
APPEND_ONLY_TABLES: tuple[tuple[str, str], ...] = (
    ("milestone_events", "milestone_event"),
    ("template_change_log", "template_change_log"),
)

ALL_TRIGGER_NAMES: list[str] = [
    f"trg_{stem}_immutability_{op}"
    for _, stem in APPEND_ONLY_TABLES
    for op in ("update", "delete")
]

_FUNCTION_SQL = """
CREATE OR REPLACE FUNCTION progress_prevent_append_only_change()
RETURNS TRIGGER AS $$
BEGIN
    RAISE EXCEPTION 'IMMUTABILITY_VIOLATION: % rows are append-only (% blocked)',
        TG_TABLE_NAME, TG_OP;
END;
$$ LANGUAGE plpgsql;
"""


def _install_sql() -> str:
    parts = [_FUNCTION_SQL]
    for table, stem in APPEND_ONLY_TABLES:
        for op in ("update", "delete"):
            name = f"trg_{stem}_immutability_{op}"
            parts.append(
                f"DROP TRIGGER IF EXISTS {name} ON {table};\n"
                f"CREATE TRIGGER {name}\n"
                f"    BEFORE {op.upper()} ON {table}\n"
                f"    FOR EACH ROW EXECUTE FUNCTION progress_prevent_append_only_change();\n"
            )
    return "\n".join(parts)


def _drop_sql() -> str:
    parts = [
        f"DROP TRIGGER IF EXISTS trg_{stem}_immutability_{op} ON {table};"
        for table, stem in APPEND_ONLY_TABLES
        for op in ("update", "delete")
    ]
    parts.append("DROP FUNCTION IF EXISTS progress_prevent_append_only_change();")
    return "\n".join(parts)


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install database-level append-only triggers.

    Preconditions: Tables exist and the engine is connected to PostgreSQL.
    Postconditions: Every trigger in ALL_TRIGGER_NAMES is installed.
        Re-running is idempotent.
    """
    with engine.connect() as conn:
        conn.execute(text(_install_sql()))
        conn.commit()


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove the append-only triggers and their function.

    WARNING: Only for dropping the schema in tests or for a one-off
    administrative migration.  Re-install immediately afterwards.
    """
    with engine.connect() as conn:
        conn.execute(text(_drop_sql()))
        conn.commit()


def get_installed_triggers(engine: Engine) -> list[str]:
    """Names of the append-only triggers currently present in pg_trigger."""
    trigger_list = ", ".join(f"'{name}'" for name in ALL_TRIGGER_NAMES)
    check_sql = f"""
    SELECT tgname FROM pg_trigger
    WHERE tgname IN ({trigger_list})
    ORDER BY tgname;
    """

    with engine.connect() as conn:
        result = conn.execute(text(check_sql))
        return [row[0] for row in result]


def triggers_installed(engine: Engine) -> bool:
    """True iff every trigger in ALL_TRIGGER_NAMES is installed."""
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)
