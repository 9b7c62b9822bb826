# opsbot/narrate.py

import logging

from .llm import OllamaClient
from .models import ExecutionOutcome, ExecutionSuccess
from .prompt import build_answer_prompt, build_miss_prompt

logger = logging.getLogger(__name__)

FALLBACK_NARRATIVE = (
    "I found some data but had trouble explaining it. "
    "Please try rephrasing your question."
)


def build_narration_prompt(question: str, sql: str, outcome: ExecutionOutcome, preview_rows: int = 5) -> str:
    if isinstance(outcome, ExecutionSuccess) and outcome.rows:
        return build_answer_prompt(question, sql, outcome.row_count, outcome.rows[:preview_rows])
    error = None if isinstance(outcome, ExecutionSuccess) else outcome.message
    return build_miss_prompt(question, sql, error)


async def narrate(llm: OllamaClient, question: str, sql: str, outcome: ExecutionOutcome,
                  preview_rows: int = 5) -> str:
    """
    Turns an execution outcome into a conversational answer with one model call.
    Never raises: any model failure yields FALLBACK_NARRATIVE.
    """
    prompt = build_narration_prompt(question, sql, outcome, preview_rows)
    try:
        text = await llm.generate(prompt)
    except Exception as e:
        logger.warning("Error generating natural response: %s", e)
        return FALLBACK_NARRATIVE
    return text.strip() or FALLBACK_NARRATIVE
