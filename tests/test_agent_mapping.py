"""Tests for agent prompts, response mapping and output validation."""

from __future__ import annotations

import pytest

from article_publisher.agents.critic import build_critic_prompt, map_critic_report, validate_critique
from article_publisher.agents.editor import build_editor_prompt, map_final_article, validate_final_article
from article_publisher.agents.fact_checker import map_fact_check_report, validate_fact_check
from article_publisher.agents.researcher import build_research_prompt, map_research_brief, validate_research
from article_publisher.agents.writer import build_writer_prompt, map_article_draft, validate_draft
from article_publisher.errors import MalformedResponseError
from article_publisher.models import (
    ArticleDraft,
    ConfidenceLevel,
    CriticReport,
    FactCheckReport,
    KeyFact,
    Phase,
    QuestionableClaim,
    RecommendedAction,
    ResearchBrief,
)
from article_publisher.recovery import ResponseReader, parse_response

from fakes import CRITIC_APPROVE_JSON, EDITOR_JSON, RESEARCH_JSON


class TestResearcher:
    def test_maps_full_response(self, document_at):
        brief = map_research_brief(parse_response(RESEARCH_JSON), document_at(Phase.RESEARCHING))
        assert len(brief.key_facts) == 3
        assert brief.key_facts[0].source_index == 0
        assert brief.key_facts[2].source_index is None
        assert brief.sources[0].reliability is ConfidenceLevel.HIGH
        assert brief.suggested_outline == ("Overview", "Architecture", "Use cases")
        assert brief.related_page_suggestions == ("EventStreaming",)
        assert brief.glossary == {"partition": "an ordered, append-only log"}

    def test_camel_case_keys(self, document_at):
        reader = ResponseReader({"keyFacts": ["Kafka uses topics"], "suggestedOutline": ["Intro", "Body"]})
        brief = map_research_brief(reader, document_at(Phase.RESEARCHING))
        assert brief.key_facts[0].fact == "Kafka uses topics"
        assert brief.suggested_outline == ("Intro", "Body")

    def test_missing_outline_is_malformed(self, document_at):
        with pytest.raises(MalformedResponseError):
            map_research_brief(ResponseReader({"key_facts": ["x"]}), document_at(Phase.RESEARCHING))

    def test_no_usable_facts(self, document_at):
        reader = ResponseReader({"key_facts": [None, {"fact": "  "}], "suggested_outline": ["A", "B"]})
        with pytest.raises(ValueError):
            map_research_brief(reader, document_at(Phase.RESEARCHING))

    def test_validation_thresholds(self, document_at):
        document = document_at(Phase.RESEARCHING)
        document.attach(ResearchBrief(
            key_facts=(KeyFact(fact="one"), KeyFact(fact="two")),
            suggested_outline=("A", "B"),
        ))
        assert not validate_research(document, min_key_facts=3)
        assert validate_research(document, min_key_facts=2)

    def test_prompt_carries_brief(self, document_at):
        prompt = build_research_prompt(document_at(Phase.RESEARCHING))
        assert "TOPIC: apache kafka" in prompt
        assert "backend developers" in prompt
        assert "REVISION REQUESTED" not in prompt


class TestWriter:
    def test_missing_summary_is_malformed(self, document_at):
        with pytest.raises(MalformedResponseError):
            map_article_draft(ResponseReader({"content": "text"}), document_at(Phase.DRAFTING))

    def test_maps_lists(self, document_at):
        reader = ResponseReader({"content": "Body", "summary": "S", "internalLinks": ["A"], "categories": "Tech"})
        draft = map_article_draft(reader, document_at(Phase.DRAFTING))
        assert draft.internal_links == ("A",)
        assert draft.categories == ("Tech",)

    def test_word_ratio(self, document_at):
        document = document_at(Phase.DRAFTING)
        document.attach(ArticleDraft(content="only five words right here", summary="s"))
        assert not validate_draft(document, min_word_ratio=0.5)
        assert validate_draft(document, min_word_ratio=0.1)

    def test_prompt_includes_research(self, document_at):
        prompt = build_writer_prompt(document_at(Phase.DRAFTING))
        assert "PAGE NAME: ApacheKafka" in prompt
        assert "- Kafka was created at LinkedIn" in prompt
        assert "1. Overview" in prompt

    def test_revision_prompt_includes_previous_draft_and_notes(self, document_at):
        document = document_at(Phase.FACT_CHECKING)
        document.attach(FactCheckReport(questionable_claims=(QuestionableClaim(claim="c", issue="wrong"),)))
        document.revert_for_revision(Phase.DRAFTING, "fix the origin claim")
        prompt = build_writer_prompt(document)
        assert "PREVIOUS DRAFT" in prompt
        assert "REVISION REQUESTED (cycle 1)" in prompt
        assert "fix the origin claim" in prompt


class TestFactChecker:
    def test_defaults_when_partial(self, document_at):
        reader = ResponseReader({"verified_claims": ["Kafka is distributed"]})
        report = map_fact_check_report(reader, document_at(Phase.FACT_CHECKING))
        assert report.overall_confidence is ConfidenceLevel.MEDIUM
        assert report.recommended_action is RecommendedAction.APPROVE
        assert report.annotated_content.startswith("# Apache Kafka")

    def test_unknown_action_means_revise(self, document_at):
        reader = ResponseReader({"recommended_action": "maybe", "overall_confidence": "very high"})
        report = map_fact_check_report(reader, document_at(Phase.FACT_CHECKING))
        assert report.recommended_action is RecommendedAction.REVISE
        assert report.overall_confidence is ConfidenceLevel.LOW

    def test_no_fields_is_malformed(self, document_at):
        with pytest.raises(MalformedResponseError):
            map_fact_check_report(ResponseReader({"notes": "fine"}), document_at(Phase.FACT_CHECKING))

    def test_claims_mapped(self, document_at):
        reader = ResponseReader({
            "verified_claims": [{"claim": "A", "status": "Verified", "source_index": 2}, {"claim": ""}],
            "questionable_claims": [{"claim": "B", "issue": "wrong year", "suggestion": "use 2011"}],
        })
        report = map_fact_check_report(reader, document_at(Phase.FACT_CHECKING))
        assert [c.claim for c in report.verified_claims] == ["A"]
        assert report.verified_claims[0].status == "verified"
        assert report.verified_claims[0].source_index == 2
        assert report.questionable_claims[0].suggestion == "use 2011"
        assert report.issue_count() == 1

    def test_validation_needs_a_claim(self, document_at):
        document = document_at(Phase.FACT_CHECKING)
        document.attach(FactCheckReport())
        assert not validate_fact_check(document)


class TestEditor:
    def test_maps_response(self, document_at):
        article = map_final_article(parse_response(EDITOR_JSON), document_at(Phase.EDITING))
        assert article.metadata.title == "Apache Kafka"
        assert article.quality_score == 0.9
        assert article.added_links == ("EventStreaming",)

    @pytest.mark.parametrize("raw_score, expected", [(1.7, 1.0), (-0.2, 0.0), ("0.65", 0.65)])
    def test_score_clamped(self, document_at, raw_score, expected):
        reader = ResponseReader({"content": "Body", "quality_score": raw_score})
        assert map_final_article(reader, document_at(Phase.EDITING)).quality_score == expected

    def test_metadata_falls_back_to_document(self, document_at):
        document = document_at(Phase.EDITING)
        article = map_final_article(ResponseReader({"content": "Body"}), document)
        assert article.metadata.title == "apache kafka"
        assert article.metadata.summary == "Kafka summary"
        assert article.metadata.author == "AI Publisher"
        assert article.quality_score == 0.8

    def test_missing_content_is_malformed(self, document_at):
        with pytest.raises(MalformedResponseError):
            map_final_article(ResponseReader({"quality_score": 0.9}), document_at(Phase.EDITING))

    def test_prompt_includes_fact_check_feedback(self, document_at):
        prompt = build_editor_prompt(document_at(Phase.EDITING))
        assert "FACT-CHECK FEEDBACK" in prompt
        assert "Overall confidence: high" in prompt

    def test_validation(self, document_at, sample_outputs):
        document = document_at(Phase.EDITING)
        assert not validate_final_article(document)
        document.attach(sample_outputs[Phase.EDITING])
        assert validate_final_article(document)


class TestCritic:
    def test_maps_response(self, document_at):
        report = map_critic_report(parse_response(CRITIC_APPROVE_JSON), document_at(Phase.CRITIQUING))
        assert report.overall_score == 0.9
        assert report.recommended_action is RecommendedAction.APPROVE
        assert report.total_issues() == 0

    def test_missing_action_means_revise(self, document_at):
        report = map_critic_report(ResponseReader({"overall_score": 0.9}), document_at(Phase.CRITIQUING))
        assert report.recommended_action is RecommendedAction.REVISE

    def test_scores_clamped(self, document_at):
        reader = ResponseReader({"overall_score": 3, "syntax_score": -1, "factual_issues": ["wrong date"]})
        report = map_critic_report(reader, document_at(Phase.CRITIQUING))
        assert report.overall_score == 1.0
        assert report.syntax_score == 0.0
        assert report.issue_summary() == "1 factual"

    def test_missing_overall_score_is_malformed(self, document_at):
        with pytest.raises(MalformedResponseError):
            map_critic_report(ResponseReader({"recommended_action": "approve"}), document_at(Phase.CRITIQUING))

    def test_zero_score_fails_validation(self, document_at):
        document = document_at(Phase.CRITIQUING)
        document.attach(CriticReport(overall_score=0.0))
        assert not validate_critique(document)

    def test_prompt_includes_article(self, document_at):
        prompt = build_critic_prompt(document_at(Phase.CRITIQUING))
        assert "TITLE: Apache Kafka" in prompt
        assert "--- ARTICLE ---" in prompt
