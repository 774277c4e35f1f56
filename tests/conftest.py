"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from article_publisher.document import Document
from article_publisher.logging_config import NullCallbacks
from article_publisher.models import (
    AgentRole,
    ArticleDraft,
    ConfidenceLevel,
    CriticReport,
    DocumentMetadata,
    FactCheckReport,
    FinalArticle,
    KeyFact,
    Phase,
    ProjectConfig,
    RecommendedAction,
    ResearchBrief,
    SourceCitation,
    TopicBrief,
    VerifiedClaim,
)

from fakes import ARTICLE_TEXT, HAPPY_RESPONSES, ScriptedGenerator

FIXTURES_DIR = Path(__file__).parent / "fixtures"
SAMPLE_CONFIG = FIXTURES_DIR / "sample_config.yaml"


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def sample_config_path() -> Path:
    return SAMPLE_CONFIG


@pytest.fixture
def brief() -> TopicBrief:
    return TopicBrief(topic="apache kafka", target_audience="backend developers", target_word_count=40)


@pytest.fixture
def config() -> ProjectConfig:
    return ProjectConfig()


@pytest.fixture
def callbacks() -> NullCallbacks:
    return NullCallbacks()


@pytest.fixture
def generator_factory():
    def _make(**overrides: list) -> ScriptedGenerator:
        responses = dict(HAPPY_RESPONSES)
        for role_name, items in overrides.items():
            responses[AgentRole(role_name)] = items
        return ScriptedGenerator(responses)
    return _make


@pytest.fixture
def sample_outputs() -> dict[Phase, object]:
    return {
        Phase.RESEARCHING: ResearchBrief(
            key_facts=(KeyFact(fact="Kafka was created at LinkedIn", source_index=0),
                       KeyFact(fact="Topics have partitions"),
                       KeyFact(fact="Consumers track offsets")),
            sources=(SourceCitation(description="Kafka docs", reliability=ConfidenceLevel.HIGH),),
            suggested_outline=("Overview", "Architecture"),
        ),
        Phase.DRAFTING: ArticleDraft(content=ARTICLE_TEXT, summary="Kafka summary"),
        Phase.FACT_CHECKING: FactCheckReport(
            verified_claims=(VerifiedClaim(claim="Kafka was created at LinkedIn"),),
            overall_confidence=ConfidenceLevel.HIGH,
            recommended_action=RecommendedAction.APPROVE,
        ),
        Phase.EDITING: FinalArticle(
            content=ARTICLE_TEXT,
            metadata=DocumentMetadata(title="Apache Kafka"),
            quality_score=0.9,
        ),
        Phase.CRITIQUING: CriticReport(overall_score=0.9, recommended_action=RecommendedAction.APPROVE),
    }


@pytest.fixture
def document_at(brief, sample_outputs):
    """Build a document standing in *phase*, with every earlier output attached."""
    flow = [Phase.RESEARCHING, Phase.DRAFTING, Phase.FACT_CHECKING, Phase.EDITING, Phase.CRITIQUING]

    def _make(phase: Phase) -> Document:
        document = Document(brief)
        for step in flow:
            document.transition_to(step)
            if step is phase:
                return document
            document.attach(sample_outputs[step])
        raise ValueError(f"not a processing phase: {phase}")
    return _make
