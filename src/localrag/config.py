"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

DEFAULT_INGEST_DIR = Path("rag-docs")
DEFAULT_DB_PATH = Path("local-rag-vec.db")
DEFAULT_EMBEDDING_MODEL = "text-embedding-v3"
DEFAULT_BASE_URL = "https://dashscope.aliyuncs.com/compatible-mode/v1"
LMSTUDIO_BASE_URL = "http://localhost:1234/v1"
LMSTUDIO_PROVIDER = "lmstudio"
DEFAULT_EXTENSIONS = (
    ".md",
    ".mdx",
    ".txt",
    ".ts",
    ".tsx",
    ".js",
    ".jsx",
    ".json",
    ".pdf",
    ".docx",
    ".xlsx",
)
DEFAULT_EXCLUDES = (
    ".git",
    ".next",
    "node_modules",
    "dist",
    "build",
    "coverage",
    "public",
)

BACKENDS = ("sqlite", "pg")

_TRUTHY = {"1", "true", "yes", "on"}


def _split_list(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _normalize_extensions(extensions: tuple[str, ...] | list[str]) -> tuple[str, ...]:
    normalized = []
    for ext in extensions:
        ext = ext.strip().lower()
        if not ext:
            continue
        normalized.append(ext if ext.startswith(".") else f".{ext}")
    return tuple(normalized)


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _first_env(environ: Mapping[str, str], *names: str) -> str | None:
    for name in names:
        value = environ.get(name)
        if value and value.strip():
            return value.strip()
    return None


@dataclass(slots=True)
class AppConfig:
    ingest_dir: Path = DEFAULT_INGEST_DIR
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    excludes: tuple[str, ...] = DEFAULT_EXCLUDES
    max_file_bytes: int = 200_000
    chunk_tokens: int = 400
    chunk_overlap: int = 60
    embedding_batch: int = 10
    top_k: int = 4
    force_reindex: bool = False
    backend: str = "sqlite"
    db_path: Path = DEFAULT_DB_PATH
    pg_dsn: str | None = None
    embedding_provider: str = "qwen"
    embedding_base_url: str = DEFAULT_BASE_URL
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    embedding_api_key: str | None = field(default=None, repr=False)
    embedding_timeout: float = 30.0
    max_answer_chars: int = 360

    def __post_init__(self) -> None:
        self.ingest_dir = Path(self.ingest_dir)
        self.db_path = Path(self.db_path)
        self.extensions = _normalize_extensions(self.extensions)
        self.excludes = tuple(self.excludes)
        self.embedding_provider = self.embedding_provider.strip().lower() or "qwen"
        self.backend = self.backend.strip().lower()
        if self.backend not in BACKENDS:
            raise ValueError(f"Unknown vector backend {self.backend!r}, expected one of {BACKENDS}")
        if self.chunk_tokens < 1:
            raise ValueError("chunk_tokens must be at least 1")
        if self.chunk_overlap < 0:
            raise ValueError("chunk_overlap must not be negative")
        if self.embedding_batch < 1:
            raise ValueError("embedding_batch must be at least 1")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> "AppConfig":
        """Build a config from environment variables, then apply explicit overrides.

        `MODEL_PROVIDER` picks where embedding defaults come from: ``lmstudio``
        reads the ``LM_STUDIO_*`` variables, anything else the ``QWEN_*`` ones.
        ``RAG_EMBEDDING_BASE_URL`` and ``RAG_EMBEDDING_MODEL`` override both.
        """
        env = os.environ if environ is None else environ
        provider = (_first_env(env, "MODEL_PROVIDER") or "qwen").lower()
        if provider == LMSTUDIO_PROVIDER:
            provider_url = _first_env(env, "LM_STUDIO_BASE_URL") or LMSTUDIO_BASE_URL
            provider_model = _first_env(env, "LM_STUDIO_EMBEDDING_MODEL", "LM_STUDIO_MODEL")
        else:
            provider_url = _first_env(env, "QWEN_BASE_URL") or DEFAULT_BASE_URL
            provider_model = _first_env(env, "QWEN_EMBEDDING_MODEL")
        values = {
            "ingest_dir": Path(env.get("RAG_INGEST_DIR") or DEFAULT_INGEST_DIR),
            "extensions": _split_list(env["RAG_INGEST_EXTENSIONS"])
            if env.get("RAG_INGEST_EXTENSIONS")
            else DEFAULT_EXTENSIONS,
            "excludes": _split_list(env["RAG_INGEST_EXCLUDE"])
            if env.get("RAG_INGEST_EXCLUDE")
            else DEFAULT_EXCLUDES,
            "max_file_bytes": _env_int(env, "RAG_MAX_FILE_BYTES", 200_000),
            "chunk_tokens": _env_int(env, "RAG_CHUNK_TOKENS", 400),
            "chunk_overlap": _env_int(env, "RAG_CHUNK_OVERLAP", 60),
            "embedding_batch": _env_int(env, "RAG_EMBEDDING_BATCH", 10),
            "top_k": _env_int(env, "RAG_TOP_K", 4),
            "force_reindex": (env.get("RAG_FORCE_REINDEX") or "").strip().lower() in _TRUTHY,
            "backend": env.get("RAG_VECTOR_BACKEND") or "sqlite",
            "db_path": Path(env.get("LOCAL_RAG_DB_PATH") or DEFAULT_DB_PATH),
            "pg_dsn": _first_env(env, "PGVECTOR_URL", "DATABASE_URL"),
            "embedding_provider": provider,
            "embedding_base_url": _first_env(env, "RAG_EMBEDDING_BASE_URL") or provider_url,
            "embedding_model": _first_env(env, "RAG_EMBEDDING_MODEL")
            or provider_model
            or DEFAULT_EMBEDDING_MODEL,
            "embedding_api_key": _first_env(
                env, "RAG_EMBEDDING_API_KEY", "QWEN_API_KEY", "DASHSCOPE_API_KEY"
            ),
            "embedding_timeout": _env_float(env, "RAG_EMBEDDING_TIMEOUT", 30.0),
            "max_answer_chars": _env_int(env, "RAG_MAX_ANSWER_CHARS", 360),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path.is_absolute() or base_dir is None:
            return self.db_path
        return base_dir / self.db_path

    def resolve_ingest_dir(self, base_dir: Path | None = None) -> Path:
        if self.ingest_dir.is_absolute() or base_dir is None:
            return self.ingest_dir
        return base_dir / self.ingest_dir
