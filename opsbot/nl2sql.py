# opsbot/nl2sql.py

import logging
import re

from .llm import OllamaClient
from .models import SchemaMap
from .prompt import build_sql_prompt
from .schema import render_schema

logger = logging.getLogger(__name__)

# Wrappers models put around a bare statement. Each is removed wherever it
# matches; add new styles here.
WRAPPER_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"^```[A-Za-z]+[ \t]*(?=\n)\s*"),         # fence with a language tag
    re.compile(r"^```(?:sql\b)?\s*", re.IGNORECASE),   # opening fence
    re.compile(r"\s*```\s*$"),                          # closing fence
    re.compile(r"^SQL Query:\s*", re.IGNORECASE),       # echoed prompt label
)


def extract_statement(text: str) -> str:
    """
    Strip known wrappers from raw model text until none match,
    so "SQL Query: ```sql ...```" and "```sql SQL Query: ...```" both work.
    """
    out = text.strip()
    while True:
        before = out
        for pattern in WRAPPER_PATTERNS:
            out = pattern.sub("", out, count=1).strip()
        if out == before:
            return out


async def generate_sql(llm: OllamaClient, question: str, schema: SchemaMap, row_hint: int = 50) -> str:
    """
    Asks the model for one SQL statement answering `question`.
    The statement is not validated here; GenerationError propagates.
    """
    prompt = build_sql_prompt(question, render_schema(schema), row_hint)
    raw = await llm.generate(prompt)
    sql = extract_statement(raw)
    logger.info("Generated SQL: %s", sql)
    return sql
