"""
MODULE OVERVIEW:
The FastAPI application for the development agent server.

WHAT IS HAPPENING HERE:
This is a stand-in for a real agent backend, speaking the same wire contract: JSON for
conversations, files and non-streaming sends, and an SSE body for streaming replies.
The lifespan only logs; all state lives in the in-memory store, so there is nothing to
start or tear down.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from starlette.exceptions import HTTPException

from agent_chat.server.conversation_store import store
from agent_chat.server.middleware import TimingMiddleware
from agent_chat.server.route_utils import http_exception_handler, validation_exception_handler
from agent_chat.server.routes import agents, conversations, files, messages


@asynccontextmanager
async def lifespan(app: FastAPI):
    # STARTUP
    logger.info(f"Agent chat dev server starting up with agents={','.join(store.agents)}")
    yield
    # SHUTDOWN
    logger.info(f"Server shutting down. conversations={len(store.conversations)} files={len(store.files)}")


app = FastAPI(
    title="Agent Chat Dev Server",
    description="A scripted agent server for exercising the streaming chat client",
    version="1.0.0",
    lifespan=lifespan
)

# Add Middlewares
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)

# Route registrations
app.include_router(agents.router, tags=["Agents"])
app.include_router(conversations.router, tags=["Conversations"])
app.include_router(messages.router, tags=["Messages"])
app.include_router(files.router, tags=["Files"])

@app.get("/healthz", tags=["Ops"])
async def health_check():
    return {"status": "ok"}

@app.get("/stats", tags=["Ops"])
async def get_stats():
    return {
        "agents": len(store.agents),
        "conversations": len(store.conversations),
        "messages": sum(len(m) for m in store.messages.values()),
        "files": len(store.files),
    }
