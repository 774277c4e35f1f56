"""Fact checker agent: reviews the draft and issues a FactCheckReport."""

from __future__ import annotations

import logging

from ..document import Document
from ..errors import MalformedResponseError
from ..models import (
    AgentRole,
    ConfidenceLevel,
    FactCheckReport,
    Phase,
    ProjectConfig,
    QuestionableClaim,
    RecommendedAction,
    VerifiedClaim,
)
from ..recovery import ResponseReader
from .base import PhaseAgent, bullet_list, revision_context

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a fact-checker reviewing article content for accuracy.

Review the draft for significant factual issues. Catch genuinely incorrect or
misleading information, not minor imprecision or stylistic choices.

Output ONLY a valid JSON object with this structure:
{
  "verified_claims": [{"claim": "...", "status": "verified", "source_index": 0}],
  "questionable_claims": [{"claim": "...", "issue": "what is wrong", "suggestion": "how to fix"}],
  "consistency_issues": ["contradiction within the article"],
  "overall_confidence": "high|medium|low",
  "recommended_action": "approve|revise|reject"
}

Confidence: high = no significant concerns; medium = minor issues that do not
affect overall accuracy; low = material errors that could mislead readers.

Actions: approve unless there are clear factual errors; revise for specific,
fixable factual errors; reject only for fundamentally wrong information.
source_index refers to the research brief's sources (-1 if none).
"""

_REPORT_KEYS = ("verified_claims", "questionable_claims", "overall_confidence", "recommended_action")


def build_fact_check_prompt(document: Document) -> str:
    research = document.research_brief
    prompt = "Please fact-check the following article draft:\n\n"
    prompt += f"--- ARTICLE DRAFT ---\n\n{document.draft.content if document.draft else ''}\n\n"
    if research is not None:
        prompt += "--- RESEARCH BRIEF ---\n\nKEY FACTS:\n"
        prompt += bullet_list(f.fact for f in research.key_facts)
        if research.sources:
            prompt += "\nSOURCES:\n"
            prompt += "".join(
                f"{i}. {s.description} ({s.reliability.value})\n" for i, s in enumerate(research.sources)
            )
        if research.uncertain_areas:
            prompt += "\nAREAS NEEDING VERIFICATION:\n" + bullet_list(research.uncertain_areas)
    prompt += revision_context(document)
    return prompt


def _verified(reader: ResponseReader) -> list[VerifiedClaim]:
    claims = []
    for item in reader.get_list("verified_claims"):
        if isinstance(item, str) and item.strip():
            claims.append(VerifiedClaim(claim=item))
        elif isinstance(item, dict):
            r = ResponseReader(item)
            if not r.has_required("claim"):
                continue
            index = r.get_int("source_index", -1)
            claims.append(VerifiedClaim(
                claim=r.get_str("claim"),
                status=r.get_str("status", "verified").lower(),
                source_index=index if index >= 0 else None,
            ))
    return claims


def _questionable(reader: ResponseReader) -> list[QuestionableClaim]:
    claims = []
    for item in reader.get_list("questionable_claims"):
        if isinstance(item, str) and item.strip():
            claims.append(QuestionableClaim(claim=item))
        elif isinstance(item, dict):
            r = ResponseReader(item)
            if r.has_required("claim"):
                claims.append(QuestionableClaim(
                    claim=r.get_str("claim"),
                    issue=r.get_str("issue"),
                    suggestion=r.get_str("suggestion"),
                ))
    return claims


def map_fact_check_report(reader: ResponseReader, document: Document) -> FactCheckReport:
    if not any(reader.has(key) for key in _REPORT_KEYS):
        raise MalformedResponseError("fact-check response has none of the expected fields")
    return FactCheckReport(
        annotated_content=reader.get_str("annotated_content", document.draft.content if document.draft else ""),
        verified_claims=tuple(_verified(reader)),
        questionable_claims=tuple(_questionable(reader)),
        consistency_issues=tuple(reader.get_str_list("consistency_issues")),
        overall_confidence=ConfidenceLevel.from_text(reader.get_str("overall_confidence", "medium")),
        recommended_action=RecommendedAction.from_text(reader.get_str("recommended_action", "approve")),
    )


def validate_fact_check(document: Document) -> bool:
    report = document.fact_check_report
    if report is None:
        logger.warning("Validation failed: no fact-check report")
        return False
    if not report.verified_claims and not report.questionable_claims:
        logger.warning("Validation failed: fact-check report examined no claims")
        return False
    return True


def make_fact_checker_agent(config: ProjectConfig) -> PhaseAgent:
    """Create the fact checker agent."""
    return PhaseAgent(
        role=AgentRole.FACT_CHECKER,
        phase=Phase.FACT_CHECKING,
        system_prompt=SYSTEM_PROMPT,
        build_input=build_fact_check_prompt,
        map_output=map_fact_check_report,
        validate=validate_fact_check,
    )
