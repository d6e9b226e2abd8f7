from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

DEFAULT_DATA_DIR = Path.home() / ".llm-chat-app"
CONFIG_FILENAME = "config.json"

_DEFAULT_ALLOWED_FILE_TYPES = [
    ".txt", ".md", ".json", ".js", ".ts", ".jsx", ".tsx", ".py", ".java",
    ".cpp", ".c", ".h", ".css", ".html", ".xml", ".yaml", ".yml",
]


@dataclass
class RuntimeEnv:
    anthropic_api_key: str
    aws_access_key_id: str | None
    aws_secret_access_key: str | None
    environment: str
    data_dir: Path

    @property
    def allow_destructive_reset(self) -> bool:
        return self.environment != "production"


@dataclass
class AppConfig:
    model: str = "claude-3-haiku-20240307"
    max_tokens: int = 4096
    temperature: float = 0.7
    bedrock_region: str = "us-east-1"
    bedrock_model_id: str = "anthropic.claude-3-haiku-20240307-v1:0"
    theme: str = "system"
    language: str = "en"
    auto_save: bool = True
    auto_save_interval: int = 30_000
    context_file_path: str | None = None
    database_path: str | None = None
    max_session_history: int = 1000
    max_file_size: int = 10 * 1024 * 1024
    allowed_file_types: list[str] = field(default_factory=lambda: list(_DEFAULT_ALLOWED_FILE_TYPES))
    upload_directory: str | None = None
    compaction_keep_recent: int = 10
    compaction_threshold_messages: int = 0
    log_level: str = "INFO"
    log_consumers: list | None = None


@dataclass
class ConfigValidation:
    is_valid: bool
    errors: list[str]


# JSON key -> AppConfig attribute
_KEYS = {
    "Model": "model",
    "MaxTokens": "max_tokens",
    "Temperature": "temperature",
    "BedrockRegion": "bedrock_region",
    "BedrockModelId": "bedrock_model_id",
    "Theme": "theme",
    "Language": "language",
    "AutoSave": "auto_save",
    "AutoSaveInterval": "auto_save_interval",
    "ContextFilePath": "context_file_path",
    "DatabasePath": "database_path",
    "MaxSessionHistory": "max_session_history",
    "MaxFileSize": "max_file_size",
    "AllowedFileTypes": "allowed_file_types",
    "UploadDirectory": "upload_directory",
    "CompactionKeepRecent": "compaction_keep_recent",
    "CompactionThresholdMessages": "compaction_threshold_messages",
    "LogLevel": "log_level",
    "LogConsumers": "log_consumers",
}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_app_config(config: dict) -> AppConfig:
    defaults = AppConfig()
    return AppConfig(
        model=str(config.get("Model", defaults.model)),
        max_tokens=int(config.get("MaxTokens", defaults.max_tokens)),
        temperature=float(config.get("Temperature", defaults.temperature)),
        bedrock_region=str(config.get("BedrockRegion", defaults.bedrock_region)),
        bedrock_model_id=str(config.get("BedrockModelId", defaults.bedrock_model_id)),
        theme=str(config.get("Theme", defaults.theme)).strip().lower(),
        language=str(config.get("Language", defaults.language)),
        auto_save=_to_bool(config.get("AutoSave"), default=defaults.auto_save),
        auto_save_interval=int(config.get("AutoSaveInterval", defaults.auto_save_interval)),
        context_file_path=_optional_str(config.get("ContextFilePath")),
        database_path=_optional_str(config.get("DatabasePath")),
        max_session_history=int(config.get("MaxSessionHistory", defaults.max_session_history)),
        max_file_size=int(config.get("MaxFileSize", defaults.max_file_size)),
        allowed_file_types=list(config.get("AllowedFileTypes", defaults.allowed_file_types)),
        upload_directory=_optional_str(config.get("UploadDirectory")),
        compaction_keep_recent=int(config.get("CompactionKeepRecent", defaults.compaction_keep_recent)),
        compaction_threshold_messages=int(
            config.get("CompactionThresholdMessages", defaults.compaction_threshold_messages)
        ),
        log_level=str(config.get("LogLevel", defaults.log_level)),
        log_consumers=config.get("LogConsumers"),
    )


def app_config_to_dict(app: AppConfig) -> dict:
    return {key: getattr(app, attr) for key, attr in _KEYS.items()}


def resolve_runtime_env() -> RuntimeEnv:
    data_dir = _optional_str(os.environ.get("LLM_CHAT_DATA_DIR"))
    return RuntimeEnv(
        anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
        aws_access_key_id=os.environ.get("AWS_ACCESS_KEY_ID"),
        aws_secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY"),
        environment=os.environ.get("LLM_CHAT_ENV", "production").strip().lower(),
        data_dir=Path(data_dir).expanduser() if data_dir else DEFAULT_DATA_DIR,
    )


class ConfigManager:
    """Settings provider backed by a JSON file. Credentials stay in memory only."""

    def __init__(self, config_path: str | Path):
        self._config_path = Path(config_path)
        self._config = AppConfig()
        self._api_key: str | None = None
        self._aws_access_key_id: str | None = None
        self._aws_secret_access_key: str | None = None

    @property
    def config_path(self) -> Path:
        return self._config_path

    def load(self) -> AppConfig:
        if not self._config_path.exists():
            self._config = AppConfig()
            self.save()
            return self.get_config()

        try:
            with open(self._config_path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("config root must be a JSON object")
            self._config = parse_app_config(data)
        except (OSError, ValueError, TypeError) as ex:
            logger.error(f"Failed to load config file {self._config_path}: {ex}")
            self._config = AppConfig()
        return self.get_config()

    def save(self) -> None:
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._config_path, "w", encoding="utf-8") as f:
            json.dump(app_config_to_dict(self._config), f, indent=2)

    def get_config(self) -> AppConfig:
        return parse_app_config(app_config_to_dict(self._config))

    def update_config(self, updates: dict) -> AppConfig:
        unknown = sorted(set(updates) - set(_KEYS))
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
        merged = app_config_to_dict(self._config)
        merged.update(updates)
        self._config = parse_app_config(merged)
        self.save()
        return self.get_config()

    def set_api_key(self, key: str) -> None:
        self._api_key = key.strip() or None

    def get_api_key(self) -> str | None:
        return self._api_key

    def is_api_key_configured(self) -> bool:
        return bool(self._api_key)

    def set_bedrock_credentials(self, access_key_id: str, secret_access_key: str) -> None:
        self._aws_access_key_id = access_key_id.strip() or None
        self._aws_secret_access_key = secret_access_key.strip() or None

    def get_bedrock_credentials(self) -> tuple[str | None, str | None]:
        return self._aws_access_key_id, self._aws_secret_access_key

    def is_bedrock_configured(self) -> bool:
        return bool(self._aws_access_key_id and self._aws_secret_access_key)

    def apply_runtime_env(self, env: RuntimeEnv) -> None:
        if env.anthropic_api_key:
            self.set_api_key(env.anthropic_api_key)
        if env.aws_access_key_id and env.aws_secret_access_key:
            self.set_bedrock_credentials(env.aws_access_key_id, env.aws_secret_access_key)

    def validate(self) -> ConfigValidation:
        errors: list[str] = []
        if not self.is_api_key_configured() and not self.is_bedrock_configured():
            errors.append("Neither an Anthropic API key nor AWS Bedrock credentials are configured")
        if self._config.max_tokens <= 0:
            errors.append("MaxTokens must be at least 1")
        if not 0 <= self._config.temperature <= 1:
            errors.append("Temperature must be between 0 and 1")
        if self._config.max_file_size <= 0:
            errors.append("MaxFileSize must be at least 1")
        return ConfigValidation(is_valid=not errors, errors=errors)
