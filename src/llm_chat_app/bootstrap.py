from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from llm_chat_app.app_config import CONFIG_FILENAME, AppConfig, ConfigManager, RuntimeEnv
from llm_chat_app.database import (
    DEFAULT_DB_FILENAME,
    DatabaseConnection,
    MessageRepository,
    SessionRepository,
)
from llm_chat_app.logging_config import setup_logging
from llm_chat_app.provider import ChatError, LLMProvider, create_provider
from llm_chat_app.services.chat_service import ChatService


@dataclass
class AppRuntime:
    config_manager: ConfigManager
    config: AppConfig
    connection: DatabaseConnection
    sessions: SessionRepository
    messages: MessageRepository
    chat_service: ChatService
    log_descriptions: list[str]

    async def shutdown(self) -> None:
        await self.connection.close()


def resolve_db_path(app: AppConfig, env: RuntimeEnv) -> Path:
    if app.database_path:
        db_path = Path(app.database_path).expanduser()
        if not db_path.is_absolute():
            db_path = env.data_dir / db_path
        return db_path
    return env.data_dir / DEFAULT_DB_FILENAME


def build_provider(config_manager: ConfigManager, app: AppConfig) -> LLMProvider | None:
    if not config_manager.is_api_key_configured():
        return None
    try:
        return create_provider(app, config_manager.get_api_key())
    except ChatError as ex:
        logger.warning(f"Provider unavailable: {ex}")
        return None


async def bootstrap_runtime(env: RuntimeEnv, *, config_path: str | Path | None = None) -> AppRuntime:
    config_manager = ConfigManager(config_path or env.data_dir / CONFIG_FILENAME)
    app = config_manager.load()
    config_manager.apply_runtime_env(env)

    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers, log_dir=env.data_dir)

    validation = config_manager.validate()
    for error in validation.errors:
        logger.warning(f"Config: {error}")

    connection = DatabaseConnection(
        resolve_db_path(app, env),
        allow_destructive_reset=env.allow_destructive_reset,
    )
    await connection.connect()

    sessions = SessionRepository(connection)
    messages = MessageRepository(connection)
    chat_service = ChatService(
        connection,
        sessions,
        messages,
        app,
        provider=build_provider(config_manager, app),
    )

    try:
        await chat_service.prune_history()
    except BaseException:
        await connection.close()
        raise

    return AppRuntime(
        config_manager=config_manager,
        config=app,
        connection=connection,
        sessions=sessions,
        messages=messages,
        chat_service=chat_service,
        log_descriptions=log_descriptions,
    )
