# src/sac/settings.py
"""Persisted advanced settings.

Settings live in a JSON file under the platform config directory, stored
as one object under ``STORAGE_KEY``. Loading is forgiving: a missing or
malformed file, or a malformed value, falls back to the default for that
key. The pipeline never reads this file; callers load settings before a
run and pass a ``ProcessingConfig`` in.
"""

import json
import logging
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from platformdirs import user_config_dir

from sac.config import DEFAULT_ACCEPTED_TYPES, DEFAULT_TOKEN_LIMIT, MAX_FILE_SIZE, STORAGE_KEY
from sac.core.filters import parse_allowed_formats
from sac.models import ProcessingConfig

logger = logging.getLogger(__name__)

APP_NAME = "sac"
SETTINGS_FILENAME = "settings.json"
DEFAULT_SETTINGS_PATH = Path(user_config_dir(APP_NAME, appauthor=False)) / SETTINGS_FILENAME


@dataclass(frozen=True)
class Settings:
    """The externally recognized options, keyed as they are persisted."""

    tokenLimit: int = DEFAULT_TOKEN_LIMIT
    excludePatterns: List[str] = field(default_factory=list)
    removeComments: bool = False
    minifyCode: bool = False
    allowedFormats: str = "\n".join(DEFAULT_ACCEPTED_TYPES)
    githubToken: str = ""
    githubUrl: str = ""

    def update(self, **changes: Any) -> "Settings":
        """Return a copy with the given keys replaced; ``None`` values are ignored."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def to_processing_config(self, max_file_size: int = MAX_FILE_SIZE, ignore_spec=None) -> ProcessingConfig:
        return ProcessingConfig(
            allowed_extensions=parse_allowed_formats(self.allowedFormats.split("\n")),
            skip_patterns=tuple(self.excludePatterns),
            max_file_size=max_file_size,
            token_budget=self.tokenLimit,
            strip_comments=self.removeComments,
            minify=self.minifyCode,
            credential=self.githubToken or None,
            ignore_spec=ignore_spec,
        )


DEFAULT_SETTINGS = Settings()


def _coerce(parsed: Dict[str, Any]) -> Settings:
    """Normalize each key, falling back to its default when the value is unusable."""
    defaults = DEFAULT_SETTINGS

    try:
        token_limit = int(parsed.get("tokenLimit"))
    except (TypeError, ValueError):
        token_limit = 0
    excludes = parsed.get("excludePatterns")
    formats = parsed.get("allowedFormats")
    token = parsed.get("githubToken")
    url = parsed.get("githubUrl")

    return Settings(
        tokenLimit=token_limit or defaults.tokenLimit,
        excludePatterns=[str(p) for p in excludes] if isinstance(excludes, list) else list(defaults.excludePatterns),
        removeComments=bool(parsed.get("removeComments", defaults.removeComments)),
        minifyCode=bool(parsed.get("minifyCode", defaults.minifyCode)),
        allowedFormats=formats if isinstance(formats, str) else defaults.allowedFormats,
        githubToken=token if isinstance(token, str) else defaults.githubToken,
        githubUrl=url if isinstance(url, str) else defaults.githubUrl,
    )


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load persisted settings, or defaults when nothing usable is stored."""
    path = path or DEFAULT_SETTINGS_PATH
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return DEFAULT_SETTINGS
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable settings file %s: %s", path, e)
        return DEFAULT_SETTINGS

    stored = data.get(STORAGE_KEY) if isinstance(data, dict) else None
    if not isinstance(stored, dict):
        return DEFAULT_SETTINGS
    return _coerce(stored)


def save_settings(settings: Settings, path: Optional[Path] = None) -> Path:
    """Write settings as pretty-printed JSON and return the file path."""
    path = path or DEFAULT_SETTINGS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({STORAGE_KEY: asdict(settings)}, indent=2) + "\n", encoding="utf-8")
    logger.debug("Saved settings to %s", path)
    return path
