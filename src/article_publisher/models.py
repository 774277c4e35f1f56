"""Pydantic models for the article publishing pipeline."""

from __future__ import annotations

import os
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Phase(str, Enum):
    CREATED = "created"
    RESEARCHING = "researching"
    DRAFTING = "drafting"
    FACT_CHECKING = "fact_checking"
    EDITING = "editing"
    CRITIQUING = "critiquing"
    AWAITING_APPROVAL = "awaiting_approval"
    PUBLISHED = "published"
    REJECTED = "rejected"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class AgentRole(str, Enum):
    RESEARCHER = "researcher"
    WRITER = "writer"
    FACT_CHECKER = "fact_checker"
    EDITOR = "editor"
    CRITIC = "critic"

    @property
    def display_name(self) -> str:
        return {
            AgentRole.RESEARCHER: "Research Agent",
            AgentRole.WRITER: "Writer Agent",
            AgentRole.FACT_CHECKER: "Fact Checker Agent",
            AgentRole.EDITOR: "Editor Agent",
            AgentRole.CRITIC: "Critic Agent",
        }[self]


class RecommendedAction(str, Enum):
    APPROVE = "approve"
    REVISE = "revise"
    REJECT = "reject"

    @classmethod
    def from_text(cls, value: str | None) -> RecommendedAction:
        """Lenient parse; anything unrecognised means another pass is needed."""
        if not value:
            return cls.REVISE
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.REVISE


class ConfidenceLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {ConfidenceLevel.LOW: 0, ConfidenceLevel.MEDIUM: 1, ConfidenceLevel.HIGH: 2}[self]

    def meets_minimum(self, minimum: ConfidenceLevel) -> bool:
        return self.rank >= minimum.rank

    @classmethod
    def from_text(cls, value: str | None) -> ConfidenceLevel:
        if not value:
            return cls.LOW
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.LOW


class IssueCategory(str, Enum):
    """Kinds of downstream findings that decide where a revision goes."""
    FACTUAL = "factual"
    STRUCTURAL = "structural"
    SYNTAX = "syntax"


# ---------------------------------------------------------------------------
# Input brief
# ---------------------------------------------------------------------------

_WORD_RE = re.compile(r"[A-Za-z0-9]+")


def to_page_name(topic: str) -> str:
    """Turn a topic into a CamelCase page name (``"apache kafka"`` -> ``"ApacheKafka"``)."""
    words = _WORD_RE.findall(topic)
    return "".join(w[:1].upper() + w[1:] for w in words)


class TopicBrief(BaseModel):
    """What to write about, for whom, and how long."""
    topic: str = Field(..., description="Subject of the article")
    target_audience: str = Field(default="general readers")
    target_word_count: int = Field(default=800, ge=0)
    required_sections: list[str] = Field(default_factory=list)
    related_pages: list[str] = Field(default_factory=list, description="Existing pages to link to")
    source_urls: list[str] = Field(default_factory=list)
    domain_context: str = Field(default="", description="Extra domain knowledge for the researcher")
    specific_goal: str = Field(default="", description="What the reader should be able to do afterwards")

    @field_validator("topic")
    @classmethod
    def _topic_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("topic must not be blank")
        return v.strip()


# ---------------------------------------------------------------------------
# Phase outputs (immutable once produced)
# ---------------------------------------------------------------------------

class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class KeyFact(_Frozen):
    fact: str
    source_index: int | None = Field(default=None, description="Index into the brief's sources")

    @property
    def has_source(self) -> bool:
        return self.source_index is not None and self.source_index >= 0


class SourceCitation(_Frozen):
    description: str
    reliability: ConfidenceLevel = ConfidenceLevel.MEDIUM


class ResearchBrief(_Frozen):
    """Researching output: the material a writer needs."""
    key_facts: tuple[KeyFact, ...] = ()
    sources: tuple[SourceCitation, ...] = ()
    suggested_outline: tuple[str, ...] = ()
    related_page_suggestions: tuple[str, ...] = ()
    glossary: dict[str, str] = Field(default_factory=dict)
    uncertain_areas: tuple[str, ...] = ()

    def is_valid(self) -> bool:
        return bool(self.key_facts) and bool(self.suggested_outline)


class ArticleDraft(_Frozen):
    """Drafting output."""
    content: str
    summary: str = ""
    internal_links: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("draft content must not be blank")
        return v

    def word_count(self) -> int:
        return len(self.content.split())


class VerifiedClaim(_Frozen):
    claim: str
    status: str = "verified"
    source_index: int | None = None


class QuestionableClaim(_Frozen):
    claim: str
    issue: str = ""
    suggestion: str = ""


class FactCheckReport(_Frozen):
    """Fact checking output."""
    annotated_content: str = ""
    verified_claims: tuple[VerifiedClaim, ...] = ()
    questionable_claims: tuple[QuestionableClaim, ...] = ()
    consistency_issues: tuple[str, ...] = ()
    overall_confidence: ConfidenceLevel = ConfidenceLevel.MEDIUM
    recommended_action: RecommendedAction = RecommendedAction.APPROVE

    def issue_count(self) -> int:
        return len(self.questionable_claims) + len(self.consistency_issues)

    def meets_confidence(self, minimum: ConfidenceLevel) -> bool:
        return self.overall_confidence.meets_minimum(minimum)


class DocumentMetadata(_Frozen):
    title: str
    summary: str = ""
    author: str = "AI Publisher"
    created_at: datetime = Field(default_factory=utcnow)
    modified_at: datetime = Field(default_factory=utcnow)


class FinalArticle(_Frozen):
    """Editing output: publication-ready content."""
    content: str
    metadata: DocumentMetadata
    edit_summary: str = ""
    quality_score: float = Field(default=0.8, ge=0.0, le=1.0)
    added_links: tuple[str, ...] = ()

    def word_count(self) -> int:
        return len(self.content.split())


class CriticReport(_Frozen):
    """Critiquing output."""
    overall_score: float = Field(default=0.0, ge=0.0, le=1.0)
    structure_score: float = Field(default=0.0, ge=0.0, le=1.0)
    syntax_score: float = Field(default=0.0, ge=0.0, le=1.0)
    readability_score: float = Field(default=0.0, ge=0.0, le=1.0)
    structure_issues: tuple[str, ...] = ()
    syntax_issues: tuple[str, ...] = ()
    style_issues: tuple[str, ...] = ()
    factual_issues: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()
    recommended_action: RecommendedAction = RecommendedAction.REVISE

    def total_issues(self) -> int:
        return (
            len(self.structure_issues) + len(self.syntax_issues)
            + len(self.style_issues) + len(self.factual_issues)
        )

    def issue_summary(self) -> str:
        parts = []
        for label, issues in (
            ("factual", self.factual_issues),
            ("structure", self.structure_issues),
            ("syntax", self.syntax_issues),
            ("style", self.style_issues),
        ):
            if issues:
                parts.append(f"{len(issues)} {label}")
        return ", ".join(parts) if parts else "no issues"


PhaseOutput = ResearchBrief | ArticleDraft | FactCheckReport | FinalArticle | CriticReport

OUTPUT_PHASE: dict[type, Phase] = {
    ResearchBrief: Phase.RESEARCHING,
    ArticleDraft: Phase.DRAFTING,
    FactCheckReport: Phase.FACT_CHECKING,
    FinalArticle: Phase.EDITING,
    CriticReport: Phase.CRITIQUING,
}


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------

class Contribution(_Frozen):
    """One successful agent invocation recorded on a document."""
    role: AgentRole
    phase: Phase
    timestamp: datetime = Field(default_factory=utcnow)
    duration: float = Field(default=0.0, description="Wall-clock seconds")
    metrics: dict[str, Any] = Field(default_factory=dict)


class PhaseChange(_Frozen):
    """One entry of a document's transition log."""
    source: Phase
    target: Phase
    at: datetime = Field(default_factory=utcnow)
    revision: bool = False


# ---------------------------------------------------------------------------
# Human approval
# ---------------------------------------------------------------------------

class ApprovalAction(str, Enum):
    APPROVE = "approve"
    REQUEST_CHANGES = "request_changes"
    REJECT = "reject"


class ApprovalRequest(BaseModel):
    """A checkpoint where the pipeline waits for a human decision."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    document: Any = Field(..., description="The Document awaiting approval")
    phase: Phase = Field(..., description="Phase whose output is up for approval")
    next_phase: Phase = Field(..., description="Where the document goes on approval")
    requested_at: datetime = Field(default_factory=utcnow)
    summary: str = ""


class ApprovalDecision(BaseModel):
    action: ApprovalAction
    feedback: str = Field(default="", description="What to change, for request_changes/reject")
    approver: str = "auto"


# ---------------------------------------------------------------------------
# Pipeline result
# ---------------------------------------------------------------------------

class PipelineResult(BaseModel):
    """Outcome of one pipeline run."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    document: Any = Field(default=None, description="The Document that was driven")
    failed_at: Phase | None = Field(default=None, description="Last committed phase when the run failed")
    error: str | None = None
    rejection_reason: str | None = None
    total_time: float = 0.0
    phases_completed: list[Phase] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Project Configuration (loaded from YAML)
# ---------------------------------------------------------------------------

_AZURE_ENV_VARS = {
    "api_key": "AZURE_OPENAI_API_KEY",
    "api_version": "AZURE_OPENAI_API_VERSION",
    "endpoint": "AZURE_OPENAI_ENDPOINT",
}


class ModelEndpointOverride(BaseModel):
    """Per-model endpoint override (e.g. a model served from a different resource)."""
    endpoint: str = Field(..., description="Endpoint URL for this model")
    api_key: str = Field(default="", description="API key (falls back to azure.api_key)")
    api_version: str = Field(default="", description="API version (falls back to azure.api_version)")
    api_type: str | None = Field(default=None, description="Force an AG2 api_type, e.g. 'anthropic'")


class ModelConfig(BaseModel):
    """LLM model configuration per role."""
    default: str = Field(default="gpt-5.2", description="Default model")
    researcher: str | None = Field(default=None)
    writer: str | None = Field(default=None)
    fact_checker: str | None = Field(default=None)
    editor: str | None = Field(default=None)
    critic: str | None = Field(default=None)
    overrides: dict[str, ModelEndpointOverride] = Field(default_factory=dict)

    def model_for(self, role: AgentRole | str) -> str:
        """Model name configured for *role*; unknown or unset roles get ``default``."""
        name = role.value if isinstance(role, AgentRole) else role.lower()
        if name not in {r.value for r in AgentRole}:
            return self.default
        return getattr(self, name) or self.default


class AzureConfig(BaseModel):
    """Azure OpenAI connection settings."""
    api_key: str = Field(default="", description="Azure OpenAI API key (or ${ENV_VAR})")
    api_version: str = Field(default="", description="API version")
    endpoint: str = Field(default="", description="Azure endpoint URL")

    def fill_from_env(self) -> None:
        """Take any credential left blank from its ``AZURE_OPENAI_*`` variable."""
        for field, var in _AZURE_ENV_VARS.items():
            if not getattr(self, field):
                setattr(self, field, os.getenv(var, ""))
        self.endpoint = self.endpoint.rstrip("/")


class QualityConfig(BaseModel):
    """Thresholds the orchestrator applies to phase outputs."""
    min_fact_check_confidence: ConfidenceLevel = ConfidenceLevel.MEDIUM
    min_editor_score: float = Field(default=0.8, ge=0.0, le=1.0)
    min_critic_score: float = Field(default=0.7, ge=0.0, le=1.0)
    min_key_facts: int = Field(default=3, ge=1, description="Research brief needs at least this many facts")
    min_outline_sections: int = Field(default=2, ge=1)
    min_word_ratio: float = Field(default=0.5, ge=0.0, description="Draft words / target words")


class ApprovalConfig(BaseModel):
    """Phase boundaries where a human decision is requested."""
    after_research: bool = False
    after_draft: bool = False
    after_fact_check: bool = False
    after_edit: bool = False
    before_publish: bool = True


class RetryConfig(BaseModel):
    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0.0, description="Seconds before the first retry")
    multiplier: float = Field(default=2.0, ge=1.0)

    def delay_for(self, attempt: int) -> float:
        """Delay after failed *attempt* (1-based)."""
        return self.base_delay * (self.multiplier ** (attempt - 1))


class RevisionPolicy(BaseModel):
    """Where a revision goes for each kind of finding."""
    routes: dict[IssueCategory, Phase] = Field(
        default_factory=lambda: {
            IssueCategory.FACTUAL: Phase.FACT_CHECKING,
            IssueCategory.STRUCTURAL: Phase.DRAFTING,
            IssueCategory.SYNTAX: Phase.EDITING,
        }
    )
    editor_issue_category: IssueCategory = Field(
        default=IssueCategory.STRUCTURAL,
        description="Category assumed when the editor's quality score is too low",
    )
    structural_issue_threshold: int = Field(
        default=1,
        description="More structure issues than this count as a structural problem",
    )
    style_issue_threshold: int = Field(
        default=2,
        description="More style issues than this count as a structural problem",
    )


class ProjectConfig(BaseModel):
    """Full project configuration loaded from config.yaml."""
    project_name: str = Field(default="article-publisher")

    # Azure OpenAI
    azure: AzureConfig = Field(default_factory=AzureConfig)

    # Models
    models: ModelConfig = Field(default_factory=ModelConfig)

    # Pipeline settings
    max_revision_cycles: int = Field(default=3, ge=0, description="Backward transitions allowed per document")
    phase_timeout: float = Field(default=300.0, gt=0, description="Seconds allowed per provider call")
    timeout: int = Field(default=120, description="LLM client timeout in seconds")
    seed: int = Field(default=42, description="LLM seed for reproducibility")

    quality: QualityConfig = Field(default_factory=QualityConfig)
    approval: ApprovalConfig = Field(default_factory=ApprovalConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    revision: RevisionPolicy = Field(default_factory=RevisionPolicy)
