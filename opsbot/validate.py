# opsbot/validate.py
import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

GUARD_OFF = "off"
GUARD_SELECT_ONLY = "select_only"
GUARD_MODES = {GUARD_OFF, GUARD_SELECT_ONLY}

# Root expressions that only read data
READ_ONLY_ROOTS = (exp.Select, exp.Union, exp.Intersect, exp.Except, exp.Subquery)


def check_statement(sql: str, mode: str = GUARD_OFF) -> str | None:
    """
    Returns None when `sql` may run under `mode`, otherwise the reason it may not.
    Unparseable SQL is let through so the database reports the real error.
    """
    if mode not in GUARD_MODES:
        raise ValueError(f"Unknown SQL guard mode: {mode}")
    if mode == GUARD_OFF:
        return None

    try:
        statements = [s for s in sqlglot.parse(sql, read="mysql") if s is not None]
    except SqlglotError:
        return None

    if len(statements) != 1:
        return "Only a single SQL statement is allowed."

    root = statements[0]
    if not isinstance(root, READ_ONLY_ROOTS):
        return f"Only SELECT queries are allowed, got {root.key.upper()}."
    return None
