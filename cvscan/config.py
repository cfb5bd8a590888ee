from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigError

DEFAULT_API_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-4.1"


class ChecklistItem(BaseModel):
    question: str
    weight: float = 1.0
    important: bool = False


class ViewConfig(BaseModel):
    pretty_name: str = ""
    score_checklist: Dict[str, ChecklistItem] = Field(default_factory=dict)
    questions: Dict[str, str] = Field(default_factory=dict)

    def checklist(self) -> Dict[str, str]:
        return {key: item.question for key, item in self.score_checklist.items()}

    def weights(self) -> Dict[str, float]:
        return {key: item.weight for key, item in self.score_checklist.items()}


class Config(BaseModel):
    views: Dict[str, ViewConfig] = Field(default_factory=dict)


class ModelSettings(BaseModel):
    api_key: str = Field(min_length=1)
    api_url: str = DEFAULT_API_URL
    model_name: str = DEFAULT_MODEL
    temperature: Optional[float] = Field(default=0.0, ge=0.0, le=2.0)
    timeout_s: float = Field(default=120.0, gt=0)
    max_output_tokens: Optional[int] = Field(default=None, ge=1)


class RunSettings(BaseModel):
    repeats: int = Field(default=5, ge=1)
    max_concurrency: int = Field(default=3, ge=1)
    retries: int = Field(default=8, ge=1)
    retry_delay_s: float = Field(default=5.0, ge=0.0)
    cache_path: str = "./cache.sqlite"
    pdf_dir: str = "./pdf"
    result_dir: str = "./result"
    text_dir: str = "./text"


def load_config(path: str = "./config.json") -> Config:
    try:
        with open(path) as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"failed to read config file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"failed to parse config file {path}: {e}") from e
    try:
        return Config(**data)
    except ValidationError as e:
        raise ConfigError(f"invalid config file {path}: {e}") from e


def resolve_api_key(explicit: Optional[str] = None, env_var: str = "OPENAI_API_KEY",
                    file_name: str = "OpenAIAPIKey.txt") -> Optional[str]:
    """Explicit value first, then environment variable, then key file next to the package."""
    if explicit:
        return explicit.strip()
    key = os.environ.get(env_var)
    if key:
        return key.strip()

    key_file = Path(__file__).parent.parent / file_name
    if key_file.exists():
        return key_file.read_text().strip()

    return None
