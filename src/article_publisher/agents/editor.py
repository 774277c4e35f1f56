"""Editor agent: polishes the checked draft into a FinalArticle."""

from __future__ import annotations

import logging

from ..document import Document
from ..errors import MalformedResponseError
from ..models import AgentRole, DocumentMetadata, FinalArticle, Phase, ProjectConfig
from ..recovery import ResponseReader
from .base import PhaseAgent, bullet_list, revision_context

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are an editor preparing an article for publication.

Polish the article: fix formatting problems, make light clarity improvements and
address the fact-check feedback. Add links to existing pages where natural.

Output ONLY a valid JSON object with this structure:
{
  "content": "# Title\\n\\nPolished content...",
  "metadata": {"title": "Article Title", "summary": "Metadata summary", "author": "AI Publisher"},
  "edit_summary": "Brief description of changes made",
  "quality_score": 0.85,
  "added_links": ["PageName1"]
}

Quality score: 0.85-1.0 ready to publish; 0.75-0.85 minor rough edges;
0.65-0.75 has issues but publishable; below 0.65 significant problems.

Constraints: do not change factual content except to fix flagged claims, do not
remove content, keep edits minimal.
"""


def build_editor_prompt(document: Document) -> str:
    draft = document.draft
    report = document.fact_check_report
    prompt = "Please edit and polish the following article for publication:\n\n"
    prompt += f"--- ARTICLE DRAFT ---\n\n{draft.content if draft else ''}\n\n"

    if report is not None:
        prompt += "--- FACT-CHECK FEEDBACK ---\n\n"
        prompt += f"Overall confidence: {report.overall_confidence.value}\n"
        prompt += f"Recommendation: {report.recommended_action.value}\n"
        if report.questionable_claims:
            prompt += "\nISSUES TO ADDRESS:\n"
            for claim in report.questionable_claims:
                prompt += f'- Claim: "{claim.claim}"\n  Issue: {claim.issue}\n'
                if claim.suggestion.strip():
                    prompt += f"  Suggestion: {claim.suggestion}\n"
        if report.consistency_issues:
            prompt += "\nCONSISTENCY ISSUES:\n" + bullet_list(report.consistency_issues)

    if document.brief.related_pages:
        prompt += "\nEXISTING PAGES:\n" + bullet_list(document.brief.related_pages)

    critic = document.critic_report
    if critic is not None and document.final_article is not None:
        prompt += f"\n--- PREVIOUS EDIT ---\n\n{document.final_article.content}\n"
        if critic.suggestions:
            prompt += "\nREVIEWER SUGGESTIONS:\n" + bullet_list(critic.suggestions)
    prompt += revision_context(document)
    return prompt


def map_final_article(reader: ResponseReader, document: Document) -> FinalArticle:
    if not reader.has_required("content"):
        raise MalformedResponseError("editor response needs non-empty content")

    draft_summary = document.draft.summary if document.draft else ""
    meta = reader.get_object("metadata") or ResponseReader({})
    metadata = DocumentMetadata(
        title=meta.get_str("title") or document.title,
        summary=meta.get_str("summary") or draft_summary,
        author=meta.get_str("author") or "AI Publisher",
    )

    score = reader.get_float("quality_score", 0.8)
    clamped = min(1.0, max(0.0, score))
    if clamped != score:
        logger.debug("Clamped editor quality score %s to %s", score, clamped)

    return FinalArticle(
        content=reader.get_str("content"),
        metadata=metadata,
        edit_summary=reader.get_str("edit_summary"),
        quality_score=clamped,
        added_links=tuple(reader.get_str_list("added_links")),
    )


def validate_final_article(document: Document) -> bool:
    article = document.final_article
    if article is None:
        logger.warning("Validation failed: no final article")
        return False
    if not article.content.strip() or not article.metadata.title.strip():
        logger.warning("Validation failed: final article is missing content or title")
        return False
    return True


def make_editor_agent(config: ProjectConfig) -> PhaseAgent:
    """Create the editor agent."""
    return PhaseAgent(
        role=AgentRole.EDITOR,
        phase=Phase.EDITING,
        system_prompt=SYSTEM_PROMPT,
        build_input=build_editor_prompt,
        map_output=map_final_article,
        validate=validate_final_article,
    )
