import os

DATABASE_URL                = os.getenv("DATABASE_URL", "sqlite:///./docs_assistant.db")

CHAT_MODEL_ID               = os.getenv("CHAT_MODEL_ID", "claude-sonnet-4-0")
CHAT_TEMPERATURE            = float(os.getenv("CHAT_TEMPERATURE", "0.5"))
CHAT_MAX_ITERATIONS         = int(os.getenv("CHAT_MAX_ITERATIONS", "5"))
CHAT_TIMEOUT_SECONDS        = float(os.getenv("CHAT_TIMEOUT_SECONDS", "120"))
CHAT_MAX_TOKENS             = int(os.getenv("CHAT_MAX_TOKENS", "4096"))
PERSIST_PARTIAL_TRANSCRIPT  = os.getenv("PERSIST_PARTIAL_TRANSCRIPT", "true").lower() in ("1", "true", "yes")
STREAM_QUEUE_SIZE           = int(os.getenv("STREAM_QUEUE_SIZE", "64"))

OPENAI_API_KEY              = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL             = os.getenv("OPENAI_BASE_URL")
ANTHROPIC_API_KEY           = os.getenv("ANTHROPIC_API_KEY")
ANTHROPIC_BASE_URL          = os.getenv("ANTHROPIC_BASE_URL")
GOOGLE_API_KEY              = os.getenv("GOOGLE_API_KEY")
GOOGLE_BASE_URL             = os.getenv("GOOGLE_BASE_URL")

LOG_LEVEL                   = os.getenv("LOG_LEVEL", "INFO")

SYSTEM_PROMPT = (
    "You are a helpful writing assistant embedded in a document editor. "
    "You can create, read, update and list the user's documents with the tools provided. "
    "Always look a document up before changing it, and tell the user what you changed."
)
