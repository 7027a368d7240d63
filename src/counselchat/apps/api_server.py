from __future__ import annotations

from typing import Annotated

import uvicorn
from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from counselchat import __version__
from counselchat.apps.runtime_support import build_chat_runtime
from counselchat.cli import base_parser
from counselchat.core.chat.models import ChatMessage, ChatSession, MessageRole
from counselchat.core.identity.users import UserLookup, UserRecord
from counselchat.core.runtime.errors import (
    AccountDeactivatedError,
    ChatError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)


class CreateSessionRequest(BaseModel):
    title: str = Field(min_length=1)
    owner_key: str


class AddMessageRequest(BaseModel):
    role: MessageRole
    content: str = Field(min_length=1)


class RenameSessionRequest(BaseModel):
    title: str = Field(min_length=1)


class CreateUserRequest(BaseModel):
    email: str
    display_name: str = ""
    external_id: str | None = None


class RegisterUserRequest(BaseModel):
    email: str
    display_name: str = Field(min_length=1)


class PromptTurn(BaseModel):
    role: str = Field(pattern="^(user|assistant|system)$")
    content: str


class CompletionRequestModel(BaseModel):
    messages: list[PromptTurn]


_STATUS_BY_ERROR: dict[type[ChatError], int] = {
    NotFoundError: 404,
    ValidationError: 422,
    AccountDeactivatedError: 403,
    PersistenceError: 503,
}


def _http_error(exc: ChatError) -> HTTPException:
    for error_type, status in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status, detail={"code": exc.code, "message": str(exc)})
    return HTTPException(status_code=500, detail={"code": exc.code, "message": str(exc)})


def create_app(config_path: str | None = None, *, runtime=None) -> FastAPI:
    runtime = runtime or build_chat_runtime(config_path=config_path)
    remote = runtime.remote_store
    users = runtime.users
    app = FastAPI(title="CounselChat API", version=__version__)

    @app.exception_handler(ChatError)
    async def _chat_error_handler(request, exc: ChatError):
        _ = request
        http_exc = _http_error(exc)
        return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok", "version": __version__, "environment": runtime.cfg.environment}

    @app.get("/health/db")
    def health_db() -> dict:
        try:
            with runtime.db_session_factory() as db:
                db.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise HTTPException(status_code=503, detail={"code": "database_unavailable", "message": str(exc)}) from exc
        return {"status": "ok"}

    @app.get("/sessions", response_model=list[ChatSession])
    async def list_sessions(owner_key: Annotated[str | None, Query()] = None) -> list[ChatSession]:
        return await remote.list_sessions(owner_key)

    @app.post("/sessions", response_model=ChatSession, status_code=201)
    async def create_session(payload: CreateSessionRequest) -> ChatSession:
        return await remote.create_session(payload.title, payload.owner_key)

    @app.patch("/sessions/{session_id}", response_model=ChatSession)
    async def rename_session(session_id: str, payload: RenameSessionRequest) -> ChatSession:
        return await remote.update_session_title(session_id, payload.title)

    @app.delete("/sessions/{session_id}")
    async def delete_session(session_id: str) -> dict:
        return {"success": await remote.delete_session(session_id)}

    @app.get("/sessions/{session_id}/messages", response_model=list[ChatMessage])
    async def get_messages(session_id: str) -> list[ChatMessage]:
        return await remote.get_messages(session_id)

    @app.post("/sessions/{session_id}/messages", response_model=ChatMessage, status_code=201)
    async def add_message(session_id: str, payload: AddMessageRequest) -> ChatMessage:
        return await remote.add_message(session_id, payload.role, payload.content)

    @app.get("/users/check", response_model=None)
    def check_user(email: str | None = None, external_id: str | None = None) -> UserLookup:
        return users.check_user_exists(email=email, external_id=external_id)

    @app.post("/users", response_model=None)
    def create_user(payload: CreateUserRequest) -> UserRecord:
        return users.create_user(payload.email, payload.display_name, payload.external_id)

    @app.post("/users/register", response_model=None, status_code=201)
    def register_user(payload: RegisterUserRequest) -> UserRecord:
        return users.register_user(payload.email, payload.display_name)

    @app.get("/users/{user_id}", response_model=None)
    def get_user(user_id: str) -> UserRecord:
        record = users.get_user(user_id)
        if record is None:
            raise NotFoundError(f"user {user_id} does not exist")
        return record

    @app.post("/ai/chat")
    async def ai_chat(payload: CompletionRequestModel) -> dict:
        result = await runtime.completion.complete(payload.messages)
        return {"content": result.content, "fallback": result.fallback}

    return app


def main() -> int:
    parser = base_parser("counselchat-api", "CounselChat remote store and completion API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8080)
    args = parser.parse_args()

    api = create_app(config_path=args.config)
    uvicorn.run(api, host=args.host, port=args.port, log_level="info")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
