import asyncio

import pytest

from opsbot.config import Settings
from opsbot.models import ExecutionFailure, ExecutionSuccess
from opsbot.narrate import FALLBACK_NARRATIVE
from opsbot.pipeline import (
    DB_UNAVAILABLE_NARRATIVE,
    FAULT_NARRATIVE,
    ChatPipeline,
    EmptyQuestionError,
    shape_response,
)

from conftest import BrokenDatabase, FakeLLM

ACTIVE_SQL = "```sql\nSELECT * FROM employees WHERE status = 'active' LIMIT 50;\n```"


def pipeline_for(ctx, **changes):
    for name, value in changes.items():
        setattr(ctx, name, value)
    return ChatPipeline(ctx)


@pytest.mark.asyncio
@pytest.mark.parametrize("question", [None, "", "   ", "\n\t"])
async def test_blank_question_short_circuits(ctx, llm, question):
    with pytest.raises(EmptyQuestionError):
        await ChatPipeline(ctx).handle_chat_turn(question)
    assert llm.prompts == []


@pytest.mark.asyncio
async def test_empty_schema_reports_database_unavailable(ctx, llm, empty_db):
    reply = await pipeline_for(ctx, db=empty_db).handle_chat_turn("show me everything")

    assert reply.type == "error"
    assert reply.response == DB_UNAVAILABLE_NARRATIVE
    assert reply.data is None
    assert reply.error is None
    assert llm.prompts == []


@pytest.mark.asyncio
async def test_unreachable_database_reports_unavailable(ctx, llm):
    reply = await pipeline_for(ctx, db=BrokenDatabase()).handle_chat_turn("anything")
    assert reply.response == DB_UNAVAILABLE_NARRATIVE
    assert llm.prompts == []


@pytest.mark.asyncio
async def test_active_employees_scenario(ctx):
    llm = FakeLLM(sql=ACTIVE_SQL, narrative="You have 3 active employees: Asha, Ben and Chen.")
    reply = await pipeline_for(ctx, llm=llm).handle_chat_turn("show me all active employees")

    assert reply.type == "success"
    assert reply.response.startswith("You have 3 active employees")
    assert reply.data.sql_query == "SELECT * FROM employees WHERE status = 'active' LIMIT 50;"
    assert "employees" in reply.data.sql_query and "status" in reply.data.sql_query
    assert reply.data.result_count == 3
    assert reply.data.has_data is True
    assert reply.data.fields == ["id", "name", "status"]
    assert [r["name"] for r in reply.data.preview] == ["Asha", "Ben", "Chen"]

    sql_prompt, answer_prompt = llm.prompts
    assert 'Table "employees": id (int), name (text), status (text)' in sql_prompt
    assert "3 total rows" in answer_prompt


@pytest.mark.asyncio
async def test_invalid_table_is_narrated_not_raised(ctx):
    llm = FakeLLM(
        sql="SELECT * FROM foo_bar_nonsense",
        narrative="I couldn't find anything matching that. Try asking about employees or departments.",
    )
    reply = await pipeline_for(ctx, llm=llm).handle_chat_turn("foo bar nonsense")

    assert reply.type == "error"
    assert reply.error is None
    assert reply.data.result_count == 0
    assert reply.data.has_data is False
    assert reply.data.preview is None
    assert "foo_bar_nonsense" not in reply.response
    assert "no such table" in llm.prompts[-1]


@pytest.mark.asyncio
async def test_synthesis_failure_becomes_fault_envelope(ctx, generation_error):
    llm = FakeLLM(sql=generation_error)
    reply = await pipeline_for(ctx, llm=llm).handle_chat_turn("show me all active employees")

    assert reply.type == "error"
    assert reply.response == FAULT_NARRATIVE
    assert reply.error == "Model call failed: quota exceeded"
    assert len(llm.prompts) == 1


@pytest.mark.asyncio
async def test_narration_failure_keeps_the_data(ctx, generation_error):
    llm = FakeLLM(sql=ACTIVE_SQL, narrative=generation_error)
    reply = await pipeline_for(ctx, llm=llm).handle_chat_turn("show me all active employees")

    assert reply.type == "success"
    assert reply.response == FALLBACK_NARRATIVE
    assert reply.data.result_count == 3


@pytest.mark.asyncio
async def test_preview_is_capped(ctx, db):
    with db.connection() as conn:
        conn.executemany(
            "INSERT INTO employees VALUES (?, ?, 'active')",
            [(100 + i, f"extra-{i}") for i in range(20)],
        )
    llm = FakeLLM(sql="SELECT * FROM employees WHERE status = 'active'")
    reply = await pipeline_for(ctx, llm=llm).handle_chat_turn("active people")

    assert reply.data.result_count == 23
    assert len(reply.data.preview) == 10
    # narrator only sees five rows
    assert "extra-2" not in llm.prompts[-1]


@pytest.mark.asyncio
async def test_guard_rejection_is_an_execution_failure(ctx, db):
    llm = FakeLLM(sql="DELETE FROM employees", narrative="I can only read data.")
    ctx.settings = Settings(sql_guard="select_only", stage_timeout=5)
    reply = await pipeline_for(ctx, llm=llm).handle_chat_turn("remove everyone")

    assert reply.type == "error"
    assert reply.data.result_count == 0
    assert "Only SELECT queries are allowed" in llm.prompts[-1]
    assert db.execute("SELECT COUNT(*) AS n FROM employees").rows == [{"n": 5}]


class SlowLLM(FakeLLM):
    async def generate(self, prompt):
        await asyncio.sleep(2)
        return await super().generate(prompt)


@pytest.mark.asyncio
async def test_slow_synthesis_times_out(ctx):
    ctx.settings = Settings(stage_timeout=0.3)
    reply = await pipeline_for(ctx, llm=SlowLLM()).handle_chat_turn("show me all active employees")

    assert reply.type == "error"
    assert reply.response == FAULT_NARRATIVE
    assert reply.error


def test_shape_response_for_failure():
    reply = shape_response("sorry", "SELECT x", ExecutionFailure("bad", "SELECT x"))
    assert reply.type == "error"
    assert reply.data.result_count == 0
    assert reply.data.has_data is False
    assert reply.data.preview is None


def test_shape_response_preview_never_exceeds_count():
    rows = [{"n": i} for i in range(4)]
    reply = shape_response("ok", "SELECT n", ExecutionSuccess(rows, 4, ["n"]), preview_rows=10)
    assert len(reply.data.preview) == 4 <= reply.data.result_count


@pytest.mark.asyncio
async def test_guard_passes_broken_sql_to_the_database(ctx):
    llm = FakeLLM(sql="SELECT 'unterminated FROM employees", narrative="That query was malformed.")
    ctx.settings = Settings(sql_guard="select_only", stage_timeout=5)
    reply = await pipeline_for(ctx, llm=llm).handle_chat_turn("who is unterminated?")

    assert reply.type == "error"
    assert reply.error is None
    assert reply.response == "That query was malformed."
    assert reply.data.result_count == 0
    assert "unrecognized token" in llm.prompts[-1]
