"""Medly symptom-log MCP server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging
from pathlib import Path

from fastmcp import FastMCP

from medly.core.audit.logger import AuditLogger
from medly.core.config.settings import Settings, get_settings
from medly.core.contract.loader import load_contract_directory
from medly.core.contract.registry import ContractRegistry
from medly.core.contract.validator import validate_contract_directory
from medly.core.llm.client import ChatGenerationClient
from medly.core.llm.provider import LLMProvider, create_provider
from medly.core.storage.database import HealthDatabase
from medly.core.storage.encryption import EncryptionError, FieldEncryptor
from medly.core.storage.repository import (
    ChatRepository,
    KnowledgeBaseRepository,
    LogRepository,
    SessionStateRepository,
)
from medly.domains.health.chat.session import ChatSession, ChatSessionManager
from medly.domains.health.knowledge.seed import KnowledgePackError, ensure_knowledge_base_seeded
from medly.domains.health.prompts.health_prompts import register_health_prompts
from medly.domains.health.resources.contracts import register_health_contract_resources
from medly.domains.health.tools.audit_tools import register_audit_tools
from medly.domains.health.tools.chat_tools import register_chat_tools
from medly.domains.health.tools.knowledge_tools import register_knowledge_tools
from medly.domains.health.tools.log_tools import register_log_tools

logger = logging.getLogger(__name__)

# Answer contract YAML definitions live under src/medly/domains/health/contracts/
_CONTRACT_DIR = Path(__file__).resolve().parent.parent.parent / "domains" / "health" / "contracts"

VERSION = "0.1.0"


def _build_provider(settings: Settings) -> LLMProvider:
    if settings.llm_provider == "mock":
        provider_name = "mock"
        api_key = ""
        model = ""
    elif settings.llm_provider == "anthropic":
        api_key = settings.anthropic_api_key
        model = settings.anthropic_model
        provider_name = "anthropic" if api_key else "mock"
    elif settings.llm_provider == "openai":
        api_key = settings.openai_api_key
        model = settings.openai_model
        provider_name = "openai" if api_key else "mock"
    else:  # pragma: no cover
        raise ValueError(f"Unknown LLM provider: {settings.llm_provider!r}")

    if provider_name == "mock" and settings.llm_provider != "mock":
        logger.warning(
            "No API key configured for provider '%s'; falling back to mock provider",
            settings.llm_provider,
        )
    return create_provider(provider_name=provider_name, api_key=api_key, model=model)


def _open_storage(settings: Settings) -> tuple[HealthDatabase, FieldEncryptor, bool]:
    """Open the encrypted store; fall back to an ephemeral in-memory one."""
    if settings.encryption_key:
        try:
            encryptor = FieldEncryptor(settings.encryption_key)
            database = HealthDatabase(settings.db_path)
            database.initialize()
            logger.info(
                "Symptom log store initialized: %s (schema v%d)",
                settings.db_path,
                database.get_schema_version(),
            )
            return database, encryptor, True
        except EncryptionError as exc:
            logger.error("Failed to initialize storage: %s", exc)
            logger.warning("Continuing with an in-memory store; logs will not persist")
    else:
        logger.info(
            "No ENCRYPTION_KEY configured, using an in-memory store. "
            "Set ENCRYPTION_KEY to persist symptom logs."
        )
    database = HealthDatabase(":memory:")
    database.initialize()
    return database, FieldEncryptor(FieldEncryptor.generate_key()), False


def create_app(
    *,
    provider_override: LLMProvider | None = None,
    database_override: HealthDatabase | None = None,
    encryptor_override: FieldEncryptor | None = None,
) -> FastMCP:
    """Create and configure the Medly MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Loads the answer contracts
    3. Creates the generation client
    4. Opens the encrypted symptom-log store and seeds the knowledge base
    5. Registers all tools, resources, and prompts
    """
    settings = get_settings()

    # --- Server instance ---
    server = FastMCP(
        "Medly Symptom Log",
        instructions=(
            "Women's health symptom-log server. Records symptoms, summarizes "
            "them into pattern cards and logged-day statistics, searches a local "
            "reference library, and answers questions through a contract-checked "
            "assistant that only ever sees de-identified data."
        ),
    )

    # --- Answer contracts ---
    contracts = ContractRegistry()
    contract_count = load_contract_directory(_CONTRACT_DIR, contracts)
    logger.info("Loaded %d answer contracts from %s", contract_count, _CONTRACT_DIR)
    _, contract_errors = validate_contract_directory(_CONTRACT_DIR)
    for error in contract_errors:
        logger.warning("Contract problem: %s", error)

    # --- Generation client ---
    provider = provider_override or _build_provider(settings)
    client = ChatGenerationClient(
        provider,
        max_retries=settings.llm_max_retries,
        retry_base_delay_s=settings.llm_retry_base_delay_s,
        max_tokens=settings.llm_max_tokens,
        temperature=settings.llm_temperature,
    )

    # --- Storage ---
    if database_override is not None:
        database = database_override
        database.initialize()
        encryptor = encryptor_override or FieldEncryptor(FieldEncryptor.generate_key())
        # Caller owns the store and its lifetime.
        persistent = True
    else:
        database, encryptor, persistent = _open_storage(settings)

    logs = LogRepository(database, encryptor)
    knowledge = KnowledgeBaseRepository(database)
    chat = ChatRepository(database)
    states = SessionStateRepository(database)
    audit_logger = AuditLogger(database)

    try:
        ensure_knowledge_base_seeded(knowledge, settings.knowledge_pack_path or None)
    except KnowledgePackError as exc:
        logger.error("Knowledge base not seeded: %s", exc)

    def _new_session(thread_id: str) -> ChatSession:
        return ChatSession(
            thread_id,
            logs=logs,
            knowledge=knowledge,
            chat=chat,
            states=states,
            contracts=contracts,
            client=client,
            settings=settings,
            audit=audit_logger,
        )

    sessions = ChatSessionManager(_new_session)

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": "Medly Symptom Log",
            "version": VERSION,
            "contracts_loaded": contract_count,
            "llm_provider": client.provider_name,
            "storage_persistent": persistent,
            "logs_stored": logs.count(),
            "kb_documents": knowledge.count(),
        }

    register_log_tools(server, logs, settings, audit_logger)
    register_knowledge_tools(server, knowledge, audit_logger)
    register_chat_tools(server, sessions, audit_logger)
    register_audit_tools(server, audit_logger)
    logger.info("Symptom log, knowledge, chat and audit tools registered")

    # --- Register resources ---
    register_health_contract_resources(server, contracts)

    # --- Register prompts ---
    register_health_prompts(server)

    return server


# Module-level instance for FastMCP discovery (`fastmcp run ...app.py:mcp`).
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
