"""Hydra structured config dataclasses.

These mirror the Pydantic ``ProjectConfig`` for Hydra schema validation.
At runtime the Hydra DictConfig is converted to ``ProjectConfig`` via
``cli._to_project_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from hydra.core.config_store import ConfigStore


@dataclass
class AzureConf:
    api_key: str = "${oc.env:AZURE_OPENAI_API_KEY,''}"
    api_version: str = "${oc.env:AZURE_OPENAI_API_VERSION,''}"
    endpoint: str = "${oc.env:AZURE_OPENAI_ENDPOINT,''}"


@dataclass
class ModelConf:
    default: str = "gpt-5.2"
    researcher: str | None = None
    writer: str | None = None
    fact_checker: str | None = None
    editor: str | None = None
    critic: str | None = None


@dataclass
class QualityConf:
    min_fact_check_confidence: str = "medium"
    min_editor_score: float = 0.8
    min_critic_score: float = 0.7
    min_key_facts: int = 3
    min_outline_sections: int = 2
    min_word_ratio: float = 0.5


@dataclass
class ApprovalConf:
    after_research: bool = False
    after_draft: bool = False
    after_fact_check: bool = False
    after_edit: bool = False
    before_publish: bool = True


@dataclass
class RetryConf:
    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0


@dataclass
class RevisionConf:
    routes: dict[str, str] = field(default_factory=lambda: {
        "factual": "fact_checking",
        "structural": "drafting",
        "syntax": "editing",
    })
    editor_issue_category: str = "structural"
    structural_issue_threshold: int = 1
    style_issue_threshold: int = 2


@dataclass
class ApubConf:
    # --- Dispatch + CLI-only fields ---
    mode: str = "run"
    no_approve: bool = False
    verbose: bool = False
    quiet: bool = False
    topic: str | None = None
    audience: str = "general readers"
    word_count: int = 800
    sections: list[str] = field(default_factory=list)
    related_pages: list[str] = field(default_factory=list)
    context: str = ""
    goal: str = ""
    output_file: str | None = None
    snapshot_file: str | None = None

    # --- ProjectConfig fields (1:1 mapping) ---
    project_name: str = "article-publisher"

    azure: AzureConf = field(default_factory=AzureConf)
    models: ModelConf = field(default_factory=ModelConf)

    max_revision_cycles: int = 3
    phase_timeout: float = 300.0
    timeout: int = 120
    seed: int = 42

    quality: QualityConf = field(default_factory=QualityConf)
    approval: ApprovalConf = field(default_factory=ApprovalConf)
    retry: RetryConf = field(default_factory=RetryConf)
    revision: RevisionConf = field(default_factory=RevisionConf)


# Keys present in ApubConf that are NOT part of ProjectConfig.
CLI_ONLY_KEYS = frozenset({
    "mode", "no_approve", "verbose", "quiet",
    "topic", "audience", "word_count", "sections", "related_pages",
    "context", "goal", "output_file", "snapshot_file",
})


def register_configs() -> None:
    """Register the structured config schema with Hydra's ConfigStore."""
    cs = ConfigStore.instance()
    cs.store(name="apub_schema", node=ApubConf)
