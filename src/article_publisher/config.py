"""Project settings: YAML file loading and the AG2 ``llm_config`` for each agent.

Values in the YAML file may reference the environment as ``${VAR}`` or
``${VAR:-fallback}``; a ``.env`` file next to the working directory is read
first.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .models import AgentRole, ProjectConfig

load_dotenv()

_ENV_REF = re.compile(r"\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<fallback>[^}]*))?\}")

_AZURE_HOSTS = ("openai.azure.com", "cognitiveservices.azure.com")


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _expand(match: re.Match[str]) -> str:
    return os.environ.get(match.group("name")) or match.group("fallback") or ""


def _resolve_env_vars(value: Any) -> Any:
    """Expand environment references in every string of a parsed YAML tree."""
    if isinstance(value, str):
        return _ENV_REF.sub(_expand, value)
    if isinstance(value, dict):
        return {key: _resolve_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def apply_azure_fallbacks(config: ProjectConfig) -> ProjectConfig:
    config.azure.fill_from_env()
    return config


def load_config(config_path: str | Path) -> ProjectConfig:
    """Read and validate a project config file.

    An empty file yields the defaults. Anything other than a mapping at the
    top level is rejected.
    """
    path = Path(config_path)
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: expected a mapping at the top level, got {type(raw).__name__}")

    return apply_azure_fallbacks(ProjectConfig.model_validate(_resolve_env_vars(raw)))


# ---------------------------------------------------------------------------
# Per-agent LLM settings
# ---------------------------------------------------------------------------

def _is_azure(endpoint: str) -> bool:
    return any(host in endpoint.lower() for host in _AZURE_HOSTS)


def _provider_entry(model: str, config: ProjectConfig) -> dict[str, Any]:
    """One ``config_list`` entry for *model*.

    A ``models.overrides`` entry wins over the shared ``azure`` block; its
    ``api_type`` is passed through untouched. Azure hosts get deployment
    routing and anything else is treated as OpenAI-compatible.
    """
    azure = config.azure
    override = config.models.overrides.get(model)
    endpoint = override.endpoint.rstrip("/") if override else azure.endpoint
    entry: dict[str, Any] = {
        "model": model,
        "api_key": (override and override.api_key) or azure.api_key,
    }

    if override is not None and override.api_type:
        entry.update(api_type=override.api_type, base_url=endpoint)
    elif _is_azure(endpoint):
        entry.update(
            api_type="azure",
            azure_endpoint=endpoint,
            azure_deployment=model,
            api_version=(override and override.api_version) or azure.api_version,
        )
    elif endpoint:
        entry["base_url"] = endpoint
    return entry


def build_role_llm_config(role: AgentRole | str, config: ProjectConfig) -> dict[str, Any]:
    """AG2 ``llm_config`` for the agent playing *role*."""
    model = config.models.model_for(role)
    return {
        "config_list": [_provider_entry(model, config)],
        "timeout": config.timeout,
        "seed": config.seed,
    }
