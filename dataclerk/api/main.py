"""FastAPI application exposing database browsing and the chat pipeline."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from time import perf_counter
from typing import Any, Dict, List, Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request, Response
from pydantic import BaseModel, Field

from dataclerk.agent.data_gateway import DataGatewayError, DataProxyClient
from dataclerk.agent.llm import GeminiClient
from dataclerk.agent.service import PipelineError, QueryOrchestrator
from dataclerk.core.config import get_settings
from dataclerk.core.logging import (
    configure_logging,
    get_logger,
    log_structured,
    reset_conversation_id,
    reset_request_id,
    set_conversation_id,
    set_request_id,
)

settings = get_settings()
configure_logging(settings.log_level)
logger = get_logger(__name__)

llm_client = GeminiClient(settings.gemini)
data_client = DataProxyClient(settings.data_proxy)
orchestrator = QueryOrchestrator(llm_client, data_client, log_sql_text=settings.log_sql_text)


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    await llm_client.aclose()
    await data_client.aclose()


app = FastAPI(title="DataClerk Query API", lifespan=lifespan)


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid4())
    request_token = set_request_id(request_id)
    request.state.request_id = request_id

    started = perf_counter()
    try:
        response: Response = await call_next(request)
    except Exception as exc:
        elapsed_ms = round((perf_counter() - started) * 1000, 2)
        log_structured(
            logger,
            logging.ERROR,
            "request_failed",
            path=request.url.path,
            method=request.method,
            elapsed_ms=elapsed_ms,
            error=str(exc),
        )
        reset_request_id(request_token)
        raise

    elapsed_ms = round((perf_counter() - started) * 1000, 2)
    log_structured(
        logger,
        logging.INFO,
        "request_completed",
        path=request.url.path,
        method=request.method,
        status=response.status_code,
        elapsed_ms=elapsed_ms,
    )
    reset_request_id(request_token)

    response.headers["x-request-id"] = request_id
    return response


class ChatRequest(BaseModel):
    database: str = Field(..., description="Database to query.")
    question: str = Field(..., min_length=1, description="Natural language question to answer.")
    api_key: Optional[str] = Field(None, description="Completion API key; defaults to GEMINI_API_KEY.")
    conversation_id: Optional[str] = Field(None, description="Conversation identifier for log correlation.")


class ChatResponse(BaseModel):
    sql: str
    rows: List[Dict[str, Any]]
    messages: List[Dict[str, Any]]
    conversation_id: str


class ColumnResponse(BaseModel):
    name: str
    data_type: str
    constraints: str = ""


class TableResponse(BaseModel):
    table_name: str
    columns: List[ColumnResponse]


class DatabaseInfoResponse(BaseModel):
    name: str
    status: str
    table_count: int
    health: str
    last_updated: str


def _gateway_failure(exc: DataGatewayError) -> HTTPException:
    log_structured(logger, logging.ERROR, "data_proxy_failure", reason=exc.reason.name, error=exc.message)
    return HTTPException(status_code=502, detail=exc.to_dict())


@app.get("/databases", response_model=List[str])
async def list_databases() -> List[str]:
    try:
        return await data_client.list_databases()
    except DataGatewayError as exc:
        raise _gateway_failure(exc) from exc


@app.get("/databases/{name}", response_model=DatabaseInfoResponse)
async def database_info(name: str) -> DatabaseInfoResponse:
    try:
        info = await data_client.database_info(name)
    except DataGatewayError as exc:
        raise _gateway_failure(exc) from exc
    return DatabaseInfoResponse(**info.to_dict())


@app.get("/databases/{name}/schema", response_model=List[TableResponse])
async def database_schema(name: str) -> List[TableResponse]:
    try:
        tables = await data_client.schema(name)
    except DataGatewayError as exc:
        raise _gateway_failure(exc) from exc
    return [TableResponse(**table.to_dict()) for table in tables]


@app.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest) -> ChatResponse:
    api_key = request.api_key or settings.gemini.api_key
    if not api_key:
        raise HTTPException(status_code=400, detail="No completion API key supplied.")

    conversation_id = request.conversation_id or str(uuid4())
    conversation_token = set_conversation_id(conversation_id)
    try:
        result = await orchestrator.process_query(request.database, request.question, api_key)
    except PipelineError as exc:
        log_structured(
            logger,
            logging.ERROR,
            "chat_pipeline_error",
            stage=exc.stage.value,
            reason=exc.reason.name,
            root_reason=exc.root_reason.name,
        )
        raise HTTPException(status_code=502, detail=exc.to_dict()) from exc
    finally:
        reset_conversation_id(conversation_token)

    payload = result.to_dict()
    return ChatResponse(
        sql=payload["sql"],
        rows=payload["rows"],
        messages=payload["messages"],
        conversation_id=conversation_id,
    )
