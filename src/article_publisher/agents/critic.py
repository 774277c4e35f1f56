"""Critic agent: final review before publication."""

from __future__ import annotations

import logging

from ..document import Document
from ..errors import MalformedResponseError
from ..models import AgentRole, CriticReport, Phase, ProjectConfig, RecommendedAction
from ..recovery import ResponseReader
from .base import PhaseAgent

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a reviewer doing a final check before an article is published.

Look for glaring issues only. Default to approve unless there are problems that
would embarrass the publication.

Output ONLY a valid JSON object with this structure:
{
  "overall_score": 0.85,
  "structure_score": 0.9,
  "syntax_score": 0.8,
  "readability_score": 0.85,
  "structure_issues": ["..."],
  "syntax_issues": ["..."],
  "style_issues": ["..."],
  "factual_issues": ["..."],
  "suggestions": ["..."],
  "recommended_action": "approve|revise|reject"
}

Check: clear title and reasonable structure; readable, coherent content;
broken Markdown formatting; statements that look factually wrong.
Scores are 0.0-1.0. 0.8+ approve; 0.6-0.8 minor problems; below 0.6 significant
problems. Reject almost never: only for incomprehensible content.
"""


def build_critic_prompt(document: Document) -> str:
    article = document.final_article
    prompt = "Please review the following article before publication:\n\n"
    prompt += f"TOPIC: {document.brief.topic}\n"
    if document.brief.target_audience.strip():
        prompt += f"TARGET AUDIENCE: {document.brief.target_audience}\n"
    if article is not None:
        prompt += f"TITLE: {article.metadata.title}\n"
        prompt += f"\n--- ARTICLE ---\n\n{article.content}\n"
        if article.edit_summary:
            prompt += f"\nEDITOR NOTES: {article.edit_summary}\n"
    return prompt


def _score(reader: ResponseReader, key: str, default: float = 0.0) -> float:
    return min(1.0, max(0.0, reader.get_float(key, default)))


def map_critic_report(reader: ResponseReader, document: Document) -> CriticReport:
    if not reader.has("overall_score"):
        raise MalformedResponseError("critic response needs overall_score")
    return CriticReport(
        overall_score=_score(reader, "overall_score"),
        structure_score=_score(reader, "structure_score"),
        syntax_score=_score(reader, "syntax_score"),
        readability_score=_score(reader, "readability_score"),
        structure_issues=tuple(reader.get_str_list("structure_issues")),
        syntax_issues=tuple(reader.get_str_list("syntax_issues")),
        style_issues=tuple(reader.get_str_list("style_issues")),
        factual_issues=tuple(reader.get_str_list("factual_issues")),
        suggestions=tuple(reader.get_str_list("suggestions")),
        recommended_action=RecommendedAction.from_text(reader.get_str("recommended_action")),
    )


def validate_critique(document: Document) -> bool:
    report = document.critic_report
    if report is None:
        logger.warning("Validation failed: no critic report")
        return False
    if report.overall_score <= 0:
        logger.warning("Validation failed: critic gave no overall score")
        return False
    return True


def make_critic_agent(config: ProjectConfig) -> PhaseAgent:
    """Create the critic agent."""
    return PhaseAgent(
        role=AgentRole.CRITIC,
        phase=Phase.CRITIQUING,
        system_prompt=SYSTEM_PROMPT,
        build_input=build_critic_prompt,
        map_output=map_critic_report,
        validate=validate_critique,
    )
