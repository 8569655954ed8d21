"""Configuration models and YAML loading.

Secrets come from the environment first (``OPENAI_API_KEY``,
``OPENAI_BASE_URL``, optionally via a ``.env`` file) and fall back to the YAML
document.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from uitest_agent.data import GenerationMode, TestCase
from uitest_agent.exceptions import ConfigurationError

DEFAULT_CONFIG_LOCATIONS = [
    os.path.join("config", "config.yaml"),
    "config.yaml",
]


class TargetConfig(BaseModel):
    url: str = ""
    max_concurrent_tests: int = Field(default=2, ge=1)
    test_timeout_seconds: Optional[float] = Field(default=900, gt=0)


class LLMConfig(BaseModel):
    api: str = "openai"
    model: str = "gpt-4o-mini"
    api_key: str = ""
    base_url: Optional[str] = None
    temperature: float = 0.1

    @field_validator("api")
    @classmethod
    def validate_api(cls, value: str) -> str:
        normalized = value.lower()
        if normalized != "openai":
            raise ValueError(f"Unsupported LLM api: {value}")
        return normalized


class ViewportConfig(BaseModel):
    width: int = 1280
    height: int = 720


class BrowserConfig(BaseModel):
    headless: bool = True
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    language: str = "en-US"
    timeout_ms: int = 30000
    tracing: bool = True
    trace_dir: str = "./traces"


class DomConfig(BaseModel):
    skip_styles: bool = True
    skip_scripts: bool = True
    interactive_only: bool = False


class CacheConfig(BaseModel):
    type: str = "file"
    path: str = "./cache/step_cache.json"
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "agent:step:"

    @field_validator("type")
    @classmethod
    def validate_type(cls, value: str) -> str:
        normalized = value.lower()
        if normalized not in {"memory", "file", "redis"}:
            raise ValueError("cache.type must be 'memory', 'file' or 'redis'")
        return normalized


class GenerationConfig(BaseModel):
    mode: GenerationMode = GenerationMode.STEP_BY_STEP
    max_repair_attempts: int = Field(default=3, ge=1)
    fail_fast: bool = False
    output_dir: str = "./generated_tests"
    run_timeout_seconds: float = 300


class TestCaseConfig(BaseModel):
    __test__ = False

    title: str
    steps: Union[List[str], str]

    def to_test_case(self) -> TestCase:
        steps = self.steps
        if isinstance(steps, str):
            steps = [part for part in steps.split(";")]
        return TestCase.from_descriptions(self.title, steps)


class AgentConfig(BaseModel):
    target: TargetConfig = Field(default_factory=TargetConfig)
    llm_config: LLMConfig = Field(default_factory=LLMConfig)
    browser_config: BrowserConfig = Field(default_factory=BrowserConfig)
    dom: DomConfig = Field(default_factory=DomConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    test_cases: List[TestCaseConfig] = Field(default_factory=list)
    log: Dict[str, Any] = Field(default_factory=lambda: {"level": "info"})

    def browser_settings(self) -> Dict[str, Any]:
        """Flattened dict in the shape the browser session expects."""
        return {
            "headless": self.browser_config.headless,
            "viewport": self.browser_config.viewport.model_dump(),
            "language": self.browser_config.language,
            "timeout_ms": self.browser_config.timeout_ms,
            "tracing": self.browser_config.tracing,
            "trace_dir": self.browser_config.trace_dir,
        }


def find_config_file(explicit_path: Optional[str] = None) -> str:
    """Return the config path, preferring an explicit one over the default
    locations."""
    if explicit_path:
        if os.path.isfile(explicit_path):
            return explicit_path
        raise FileNotFoundError(f"Specified config file not found: {explicit_path}")

    for path in DEFAULT_CONFIG_LOCATIONS:
        if os.path.isfile(path):
            logging.info(f"Auto-discovered config file: {path}")
            return path
    raise FileNotFoundError(f"Config file not found, searched: {', '.join(DEFAULT_CONFIG_LOCATIONS)}")


def load_config(path: Union[str, Path], env_file: Optional[str] = None) -> AgentConfig:
    """Read YAML, apply environment overrides and validate."""
    load_dotenv(env_file)
    config_path = Path(path)
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read config {config_path}: {e}") from e
    return build_config(payload)


def build_config(payload: Dict[str, Any]) -> AgentConfig:
    payload = dict(payload)
    llm_raw = dict(payload.get("llm_config") or {})
    llm_raw["api_key"] = os.getenv("OPENAI_API_KEY") or llm_raw.get("api_key", "")
    llm_raw["base_url"] = os.getenv("OPENAI_BASE_URL") or llm_raw.get("base_url")
    payload["llm_config"] = llm_raw

    if os.getenv("DOCKER_ENV") == "true":
        browser_raw = dict(payload.get("browser_config") or {})
        if not browser_raw.get("headless", True):
            logging.warning("Docker environment detected, forcing headless mode")
        browser_raw["headless"] = True
        payload["browser_config"] = browser_raw

    try:
        return AgentConfig.model_validate(payload)
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e
