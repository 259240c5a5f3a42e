from __future__ import annotations

import codecs
import logging
import os
from dataclasses import asdict, dataclass
from functools import lru_cache
from typing import Any, Dict

_DEFAULT_TEMP_PREFIX = "BUF"
_DEFAULT_COPY_CHUNK_SIZE = 64 * 1024


def _bool_from_env(value: str | None, *, default: bool) -> bool:
    if value is None:
        return default
    value = value.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_optional_int(raw: str | None) -> int | None:
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid integer value '{raw}'") from exc


def _infer_temp_dir_from_env() -> str | None:
    raw = os.getenv("PTREEX_TEMP_DIR")
    if raw is None or raw.strip() == "":
        return None
    path = os.path.abspath(os.path.expanduser(raw.strip()))
    if not os.path.isdir(path):
        raise ValueError(f"Temporary directory '{raw}' does not exist.")
    return path


def _infer_temp_prefix_from_env() -> str:
    prefix = os.getenv("PTREEX_TEMP_PREFIX")
    if prefix is None:
        return _DEFAULT_TEMP_PREFIX
    prefix = prefix.strip()
    if not prefix:
        raise ValueError("PTREEX_TEMP_PREFIX must not be empty.")
    return prefix


def _infer_chunk_size_from_env() -> int:
    chunk_size = _parse_optional_int(os.getenv("PTREEX_COPY_CHUNK_SIZE"))
    if chunk_size is None:
        return _DEFAULT_COPY_CHUNK_SIZE
    if chunk_size <= 0:
        raise ValueError(f"Copy chunk size must be positive, got {chunk_size}.")
    return chunk_size


def _normalise_encoding(value: str | None) -> str:
    if value is None or value.strip() == "":
        return "utf-8"
    try:
        return codecs.lookup(value.strip()).name
    except LookupError as exc:
        raise ValueError(f"Unknown string encoding '{value}'.") from exc


@dataclass(frozen=True)
class RuntimeConfig:
    log_level: str
    temp_dir: str | None
    temp_prefix: str
    copy_chunk_size: int
    file_header: bool
    string_encoding: str

    def describe(self) -> Dict[str, Any]:
        return asdict(self)


def _configure_logging(level: str) -> None:
    logger = logging.getLogger("ptreex")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(level)
        formatter = logging.Formatter("%(levelname)s %(name)s: %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)


@lru_cache(maxsize=None)
def runtime_config() -> RuntimeConfig:
    log_level = os.getenv("PTREEX_LOG_LEVEL", "INFO").upper()

    config = RuntimeConfig(
        log_level=log_level,
        temp_dir=_infer_temp_dir_from_env(),
        temp_prefix=_infer_temp_prefix_from_env(),
        copy_chunk_size=_infer_chunk_size_from_env(),
        file_header=_bool_from_env(os.getenv("PTREEX_FILE_HEADER"), default=False),
        string_encoding=_normalise_encoding(os.getenv("PTREEX_STRING_ENCODING")),
    )
    _configure_logging(config.log_level)
    return config


def reset_runtime_config_cache() -> None:
    runtime_config.cache_clear()
