from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path

from annexarchive.encoders import ARCHIVE_FORMATS, CHUNK_SIZE
from annexarchive.exporter import MISSING_POLICIES


CONFIG_FILENAME = ".annexarchive.json"
ENV_PREFIX = "ANNEXARCHIVE_"


@dataclass(slots=True)
class ExportConfig:
    archive_format: str = "zip"
    ref: str = "HEAD"
    missing: str = "strict"
    chunk_size: int = CHUNK_SIZE
    include: tuple[str, ...] = field(default_factory=tuple)
    exclude: tuple[str, ...] = field(default_factory=tuple)

    def validate(self) -> "ExportConfig":
        if self.archive_format not in ARCHIVE_FORMATS:
            raise ValueError(
                f"Invalid archive type {self.archive_format!r}. Use one of: {', '.join(ARCHIVE_FORMATS)}."
            )
        if self.missing not in MISSING_POLICIES:
            raise ValueError(f"Invalid missing-content policy {self.missing!r}. Use 'strict' or 'skip'.")
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if not self.ref.strip():
            raise ValueError("ref must not be empty")
        return self


def read_conf_default(key: str, default: str) -> str:
    """Return the environment variable ``key``, or ``default`` when it is unset."""
    return os.environ.get(key, default)


def config_path(base_dir: Path | None = None) -> Path:
    return (base_dir or Path.cwd()).resolve() / CONFIG_FILENAME


def _parse_chunk_size(value: object) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"chunk_size must be an integer, got {value!r}") from exc


def _load_file(path: Path) -> ExportConfig:
    with path.open("r", encoding="utf-8") as fh:
        try:
            data = json.load(fh)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid config file {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Invalid config file {path}: expected a JSON object")

    defaults = ExportConfig()
    return ExportConfig(
        archive_format=str(data.get("archive_format", defaults.archive_format)),
        ref=str(data.get("ref", defaults.ref)),
        missing=str(data.get("missing", defaults.missing)),
        chunk_size=_parse_chunk_size(data.get("chunk_size", defaults.chunk_size)),
        include=tuple(str(p) for p in data.get("include", ())),
        exclude=tuple(str(p) for p in data.get("exclude", ())),
    )


def load_config(base_dir: Path | None = None) -> ExportConfig:
    """Load defaults from ``.annexarchive.json`` (optional) and ``ANNEXARCHIVE_*`` env vars."""
    path = config_path(base_dir)
    config = _load_file(path) if path.exists() else ExportConfig()

    config = replace(
        config,
        archive_format=read_conf_default(f"{ENV_PREFIX}FORMAT", config.archive_format).strip().lower(),
        ref=read_conf_default(f"{ENV_PREFIX}REF", config.ref).strip(),
        missing=read_conf_default(f"{ENV_PREFIX}MISSING", config.missing).strip().lower(),
        chunk_size=_parse_chunk_size(read_conf_default(f"{ENV_PREFIX}CHUNK_SIZE", str(config.chunk_size))),
    )
    return config.validate()


def save_config(config: ExportConfig, base_dir: Path | None = None) -> Path:
    path = config_path(base_dir)
    payload = asdict(config.validate())
    payload["include"] = list(config.include)
    payload["exclude"] = list(config.exclude)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2)
        fh.write("\n")
    return path
