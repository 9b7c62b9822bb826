import logging

from .db import Database
from .models import ColumnDescriptor, SchemaMap

logger = logging.getLogger(__name__)


def _text(value):
    # some MySQL servers hand back information_schema values as bytes
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8")
    return value


def describe_schema(db: Database) -> SchemaMap:
    """
    Reads the catalog and groups columns by table, keeping ordinal order.
    Returns an empty mapping if the catalog can't be read, so callers can
    treat "no schema" as "database unavailable".
    """
    try:
        _, rows = db.fetch_all(db.catalog_query)
    except Exception as e:
        logger.error("Error getting database schema: %s", e)
        return {}

    tables: dict[str, list[ColumnDescriptor]] = {}
    for row in rows:
        table, column, sql_type, is_nullable, default = (_text(v) for v in row)
        tables.setdefault(table, []).append(
            ColumnDescriptor(
                name=column,
                sql_type=sql_type,
                nullable=str(is_nullable).upper() == "YES",
                default_expr=None if default is None else str(default),
            )
        )
    return {t: tuple(cols) for t, cols in tables.items()}


def render_schema(schema: SchemaMap) -> str:
    """
    Compact, prompt-friendly schema text, one line per table:
      Table "employees": id (int), name (text), status (text)
    """
    lines = []
    for table, cols in schema.items():
        col_list = ", ".join(f"{c.name} ({c.sql_type})" for c in cols)
        lines.append(f'Table "{table}": {col_list}')
    return "\n".join(lines)


def schema_as_dict(schema: SchemaMap) -> dict[str, list[dict]]:
    return {t: [c.as_dict() for c in cols] for t, cols in schema.items()}
