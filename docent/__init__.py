"""
Docent
======

Knowledge-grounded AI chat assistant core.

Modules:
    - core: Database models, schemas, sessions and repositories
    - retrieval: Cosine similarity and semantic/keyword/hybrid search
    - personality: Cached, corpus-derived system prompt
    - chat: Buffered and streamed conversation turns
    - knowledge: Knowledge item management
    - ingestion: Source directory ingestion
    - llms: Text-generation and embedding adapters
    - observability: Logging with turn context
    - resilience: Error taxonomy and retries
"""

__version__ = "0.1.0"

from .assistant import Assistant
from .config import Settings, get_settings
from .core.db import build_engine, build_session_factory, init_db
from .core.schemas import (
    BuildPersonalityInput,
    KnowledgeItemCreate,
    KnowledgeItemUpdate,
    SendMessageInput,
    SendMessageOutput,
)
from .resilience import (
    CollaboratorUnavailableError,
    DocentError,
    InvalidInputError,
    NotFoundError,
)
from .retrieval import SearchMode

__all__ = [
    # Facade
    "Assistant",
    # Configuration
    "Settings",
    "get_settings",
    # Database utilities
    "build_engine",
    "build_session_factory",
    "init_db",
    # Inputs and outputs
    "BuildPersonalityInput",
    "KnowledgeItemCreate",
    "KnowledgeItemUpdate",
    "SendMessageInput",
    "SendMessageOutput",
    "SearchMode",
    # Errors
    "DocentError",
    "InvalidInputError",
    "NotFoundError",
    "CollaboratorUnavailableError",
]
