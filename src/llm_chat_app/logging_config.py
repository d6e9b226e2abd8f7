import sys
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger

LOG_FILENAME = "llm-chat.log"


@runtime_checkable
class LogConsumer(Protocol):
    def register(self, level: str) -> None: ...
    def describe(self, level: str) -> str: ...


class ConsoleLogConsumer:
    def __init__(self, stream: str = "stderr"):
        self._stream = sys.stdout if stream == "stdout" else sys.stderr
        self._stream_name = "stdout" if stream == "stdout" else "stderr"

    def register(self, level: str) -> None:
        logger.add(
            self._stream,
            level=level,
            format="<level>{level:<8}</level> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        )

    def describe(self, level: str) -> str:
        return f"console ({self._stream_name}, {level})"


class FileLogConsumer:
    def __init__(
        self,
        path: str = LOG_FILENAME,
        rotation: str = "5 MB",
        retention: int = 5,
        base_dir: str | Path | None = None,
    ):
        log_path = Path(path).expanduser()
        if not log_path.is_absolute() and base_dir is not None:
            log_path = Path(base_dir) / log_path
        self._path = log_path
        self._rotation = rotation
        self._retention = retention

    def register(self, level: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(self._path),
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} - {message}",
            rotation=self._rotation,
            retention=self._retention,
            encoding="utf-8",
        )

    def describe(self, level: str) -> str:
        return f"file ({self._path}, {level})"


_CONSUMER_TYPES: dict[str, type[LogConsumer]] = {
    "console": ConsoleLogConsumer,
    "file": FileLogConsumer,
}

_DEFAULT_CONSUMERS = [
    {"type": "console", "level": "WARNING"},
    {"type": "file", "path": LOG_FILENAME},
]


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
    *,
    log_dir: str | Path | None = None,
) -> list[str]:
    """Replace loguru's default sink with the configured consumers.

    Relative file sink paths resolve against log_dir. Returns one description
    per registered consumer.
    """
    logger.remove()

    if consumers is None:
        consumers = _DEFAULT_CONSUMERS

    descriptions: list[str] = []
    for config in consumers:
        sink_type = config.get("type", "")
        cls = _CONSUMER_TYPES.get(sink_type)
        if cls is None:
            logger.warning(f"Unknown log consumer type: {sink_type!r}")
            continue

        kwargs = {k: v for k, v in config.items() if k not in ("type", "level")}
        if cls is FileLogConsumer:
            kwargs.setdefault("base_dir", log_dir)
        sink_level = config.get("level", level)

        consumer = cls(**kwargs)
        consumer.register(sink_level)
        descriptions.append(consumer.describe(sink_level))

    return descriptions
