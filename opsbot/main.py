# opsbot/main.py
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import settings
from .db import Database
from .llm import OllamaClient
from .pipeline import FAULT_NARRATIVE, AppContext, ChatPipeline, EmptyQuestionError
from .reports import ReportFetchError, ReportProvider, UnknownReportError
from .schema import describe_schema, schema_as_dict

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_context() -> AppContext:
    return AppContext(
        settings=settings,
        db=Database.from_settings(settings),
        llm=OllamaClient.from_settings(settings),
        reports=ReportProvider.from_settings(settings),
    )


# Build the clients once at startup and close them on shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    ctx = build_context()
    app.state.ctx = ctx
    logger.info("Database: %s@%s/%s", settings.db_user, settings.db_host, settings.db_name)
    logger.info("AI: Ollama model %s at %s", settings.ollama_model, settings.ollama_url)
    yield
    await ctx.aclose()


app = FastAPI(title="OpsBot NL2SQL", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list(),
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_context(request: Request) -> AppContext:
    return request.app.state.ctx


class ChatIn(BaseModel):
    # optional so a missing message is answered with 400, not 422
    message: str | None = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@app.get("/")
def root():
    return {"service": "opsbot", "model": settings.ollama_model}


@app.post("/chat")
async def chat(body: ChatIn, ctx: AppContext = Depends(get_context)):
    try:
        reply = await ChatPipeline(ctx).handle_chat_turn(body.message)
    except EmptyQuestionError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    try:
        content = jsonable_encoder(reply, by_alias=True, exclude_none=False)
    except Exception as e:
        logger.exception("Could not encode chat response")
        return JSONResponse(
            status_code=500,
            content={"response": FAULT_NARRATIVE, "type": "error", "error": str(e)},
        )
    if reply.error is None:
        content.pop("error")
        return JSONResponse(status_code=200, content=content)
    return JSONResponse(status_code=500, content=content)


@app.get("/health")
async def health(ctx: AppContext = Depends(get_context)):
    try:
        await asyncio.to_thread(ctx.db.ping)
    except Exception as e:
        return JSONResponse(
            status_code=500,
            content={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(e),
                "timestamp": _now(),
            },
        )
    return {"status": "healthy", "database": "connected", "timestamp": _now()}


@app.get("/tables")
async def tables(ctx: AppContext = Depends(get_context)):
    try:
        schema = await asyncio.to_thread(describe_schema, ctx.db)
    except Exception as e:
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})
    return {"success": True, "tables": list(schema), "schema": schema_as_dict(schema)}


@app.get("/reports")
def list_reports(ctx: AppContext = Depends(get_context)):
    return {"reports": ctx.reports.available()}


@app.get("/reports/{key}")
async def get_report(key: str, ctx: AppContext = Depends(get_context)):
    try:
        report = await ctx.reports.fetch_report(key)
    except UnknownReportError:
        return JSONResponse(status_code=404, content={"success": False, "error": f"Unknown report: {key}"})
    except ReportFetchError as e:
        return JSONResponse(status_code=502, content={"success": False, "error": str(e)})
    return jsonable_encoder(report.as_payload())
