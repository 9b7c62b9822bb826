# opsbot/prompt.py
import json

SQL_RULES = (
    "Rules:\n"
    "1. Return ONLY the SQL query, no explanations\n"
    "2. Use proper MySQL syntax\n"
    "3. Include appropriate WHERE clauses if needed\n"
    "4. Limit results to {row_hint} rows for performance\n"
    "5. Use table and column names exactly as shown in the schema"
)

def build_sql_prompt(question: str, schema_text: str, row_hint: int = 50) -> str:
    """
    Compose a schema-aware prompt asking for a single SQL statement.
    schema_text: output of schema.render_schema, one line per table.
    """
    parts = [
        "Given this MySQL database schema:",
        schema_text,
        "",
        "Convert this natural language query to SQL:",
        f'"{question}"',
        "",
        SQL_RULES.format(row_hint=row_hint),
        "",
        "SQL Query:",
    ]
    return "\n".join(parts)


def _dump_rows(rows: list[dict]) -> str:
    # rows can hold Decimal/date values straight from the driver
    return json.dumps(rows, indent=2, default=str, ensure_ascii=False)


def build_answer_prompt(question: str, sql: str, row_count: int, preview: list[dict]) -> str:
    parts = [
        "Based on this database query result, provide a natural language answer to the user's question.",
        "",
        f'User\'s Question: "{question}"',
        f"SQL Query Used: {sql}",
        f"Query Results (showing {len(preview)} of {row_count} total rows):",
        _dump_rows(preview),
        "",
        "Provide a clear, helpful response that:",
        "1. Directly answers the user's question",
        "2. Includes relevant numbers and data points",
        "3. Is written in a conversational tone",
        "4. Mentions if there are more results than shown",
        "",
        "Response:",
    ]
    return "\n".join(parts)


def build_miss_prompt(question: str, sql: str, error: str | None) -> str:
    parts = [
        "The database query failed or returned no results.",
        "",
        f'User\'s Question: "{question}"',
        f"SQL Query Attempted: {sql}",
        f"Error: {error or 'No results found'}",
        "",
        "Provide a helpful response that:",
        "1. Explains why no data was found",
        "2. Suggests alternative ways to phrase the question",
        "3. Is polite and helpful",
        "",
        "Response:",
    ]
    return "\n".join(parts)
