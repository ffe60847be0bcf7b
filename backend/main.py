import sys
if sys.stdout.encoding != 'utf-8':
    sys.stdout.reconfigure(encoding='utf-8')
if sys.stderr.encoding != 'utf-8':
    sys.stderr.reconfigure(encoding='utf-8')

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
import uvicorn

from dotenv import load_dotenv
load_dotenv()

import config
from database import engine, Base
from rate_limiter import limiter, rate_limit_exceeded_handler
from agent.loop import AgentConfig, AgentLoop
from llm.provider_factory import classify_model, create_provider
from tools.document_tools import build_document_registry

from routers.chat_router import router as chat_router
from routers.chats_router import router as chats_router
from routers.documents_router import router as documents_router

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def build_agent_loop() -> AgentLoop:
    """Resolve the configured model and assemble the agent. Unknown models fail here, at startup."""
    agent_config = AgentConfig(
        model_id=config.CHAT_MODEL_ID,
        temperature=config.CHAT_TEMPERATURE,
        max_iterations=config.CHAT_MAX_ITERATIONS,
        max_tokens=config.CHAT_MAX_TOKENS,
        system_prompt=config.SYSTEM_PROMPT,
    )
    gateway = create_provider(
        agent_config.model_id,
        provider_config={"max_tokens": agent_config.max_tokens, "temperature": agent_config.temperature},
    )
    registry = build_document_registry()
    logger.info(
        f"Chat model {agent_config.model_id} ({classify_model(agent_config.model_id).value}), "
        f"tools: {', '.join(registry.names())}"
    )
    return AgentLoop(gateway, registry, agent_config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    app.state.agent_loop = build_agent_loop()

    yield


app = FastAPI(title="Docs Assistant", lifespan=lifespan)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Chat-Id"],
)

# Include routers
app.include_router(chat_router)
app.include_router(chats_router)
app.include_router(documents_router)

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
