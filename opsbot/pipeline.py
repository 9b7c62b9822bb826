# opsbot/pipeline.py
"""
One chat turn: introspect -> generate SQL -> execute -> narrate.

Stages run strictly in sequence. Blocking database work goes to a worker
thread; every stage is bounded by settings.stage_timeout.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .config import Settings
from .db import Database
from .llm import OllamaClient
from .models import ExecutionFailure, ExecutionOutcome, ExecutionSuccess
from .narrate import FALLBACK_NARRATIVE, narrate
from .nl2sql import generate_sql
from .reports import ReportProvider
from .schema import describe_schema
from .validate import check_statement

logger = logging.getLogger(__name__)

DB_UNAVAILABLE_NARRATIVE = (
    "I'm having trouble connecting to the database right now. Please try again later."
)
FAULT_NARRATIVE = (
    "I encountered an error while processing your request. "
    "Please try again or rephrase your question."
)


class EmptyQuestionError(ValueError):
    pass


class ChatData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sql_query: str = Field(alias="sqlQuery")
    result_count: int = Field(alias="resultCount")
    has_data: bool = Field(alias="hasData")
    preview: list[dict[str, Any]] | None = None
    fields: list[str] = []


class ChatResponse(BaseModel):
    response: str
    type: Literal["success", "error"]
    data: ChatData | None = None
    # set only when the turn hit an unexpected fault
    error: str | None = None


@dataclass
class AppContext:
    settings: Settings
    db: Database
    llm: OllamaClient
    reports: ReportProvider

    async def aclose(self) -> None:
        await self.llm.aclose()
        await self.reports.aclose()


def shape_response(narrative: str, sql: str, outcome: ExecutionOutcome, preview_rows: int = 10) -> ChatResponse:
    if isinstance(outcome, ExecutionSuccess):
        data = ChatData(
            sql_query=sql,
            result_count=outcome.row_count,
            has_data=bool(outcome.rows),
            preview=outcome.rows[:preview_rows],
            fields=list(outcome.field_names),
        )
        return ChatResponse(response=narrative, type="success", data=data)

    data = ChatData(sql_query=sql, result_count=0, has_data=False, preview=None, fields=[])
    return ChatResponse(response=narrative, type="error", data=data)


class ChatPipeline:
    def __init__(self, ctx: AppContext):
        self.ctx = ctx
        self.settings = ctx.settings

    async def _stage(self, coro):
        return await asyncio.wait_for(coro, timeout=self.settings.stage_timeout)

    async def _describe(self):
        try:
            return await self._stage(asyncio.to_thread(describe_schema, self.ctx.db))
        except asyncio.TimeoutError:
            logger.error("Schema introspection timed out")
            return {}

    async def _execute(self, sql: str) -> ExecutionOutcome:
        rejected = check_statement(sql, self.settings.sql_guard)
        if rejected:
            logger.warning("SQL guard rejected statement: %s", rejected)
            return ExecutionFailure(message=rejected, attempted_query=sql)
        try:
            return await self._stage(asyncio.to_thread(self.ctx.db.execute, sql))
        except asyncio.TimeoutError:
            logger.warning("SQL execution timed out")
            return ExecutionFailure(message="Query timed out", attempted_query=sql)

    async def _narrate(self, question: str, sql: str, outcome: ExecutionOutcome) -> str:
        try:
            return await self._stage(
                narrate(self.ctx.llm, question, sql, outcome, self.settings.narration_rows)
            )
        except asyncio.TimeoutError:
            logger.warning("Narration timed out")
            return FALLBACK_NARRATIVE

    async def handle_chat_turn(self, question: str | None) -> ChatResponse:
        """
        Raises EmptyQuestionError for blank input; every other problem is
        folded into the returned ChatResponse.
        """
        if not question or not question.strip():
            raise EmptyQuestionError("Message is required")

        logger.info("Received question: %s", question)
        try:
            schema = await self._describe()
            if not schema:
                return ChatResponse(response=DB_UNAVAILABLE_NARRATIVE, type="error")

            sql = await self._stage(
                generate_sql(self.ctx.llm, question, schema, self.settings.sql_row_hint)
            )
            outcome = await self._execute(sql)
            narrative = await self._narrate(question, sql, outcome)
        except Exception as e:
            logger.exception("Chat pipeline error")
            return ChatResponse(response=FAULT_NARRATIVE, type="error", error=str(e) or type(e).__name__)

        reply = shape_response(narrative, sql, outcome, self.settings.preview_rows)
        logger.info(
            "Sending response: success=%s rows=%s length=%d",
            outcome.ok, reply.data.result_count, len(narrative),
        )
        return reply
