"""Writer agent: turns the research brief into an ArticleDraft."""

from __future__ import annotations

import logging
from functools import partial

from ..document import Document
from ..errors import MalformedResponseError
from ..models import AgentRole, ArticleDraft, Phase, ProjectConfig
from ..recovery import ResponseReader
from .base import PhaseAgent, bullet_list, revision_context

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a technical writer creating reference articles in Markdown.

Transform the provided research brief into a clear, well-structured article.

Output ONLY a valid JSON object with this structure:
{
  "content": "# Title\\n\\nArticle body in Markdown...",
  "summary": "One paragraph summary for metadata",
  "internal_links": ["PageName1", "PageName2"],
  "categories": ["Category1"]
}

Style:
- Encyclopedic, neutral tone; explain concepts before using them
- The first paragraph must work as a standalone summary
- Keep paragraphs focused (3-7 sentences) and use concrete examples where helpful
- End with a "See Also" section listing related pages
- Escape newlines as \\n inside the "content" string
"""


def build_writer_prompt(document: Document) -> str:
    brief = document.brief
    research = document.research_brief
    prompt = "Please write an article based on the following research:\n\n"
    prompt += f"TOPIC: {brief.topic}\n"
    prompt += f"PAGE NAME: {document.page_name}\n"
    if brief.target_audience.strip():
        prompt += f"TARGET AUDIENCE: {brief.target_audience}\n"
    if brief.target_word_count > 0:
        prompt += f"TARGET LENGTH: approximately {brief.target_word_count} words\n"
    if brief.domain_context:
        prompt += f"\nDOMAIN CONTEXT: {brief.domain_context}\n"
    if brief.specific_goal:
        prompt += f"SPECIFIC GOAL: {brief.specific_goal}\n"

    if research is not None:
        prompt += "\n--- RESEARCH BRIEF ---\n\nKEY FACTS:\n"
        prompt += bullet_list(f.fact for f in research.key_facts)
        if research.suggested_outline:
            prompt += "\nSUGGESTED OUTLINE:\n"
            prompt += "".join(f"{i}. {s}\n" for i, s in enumerate(research.suggested_outline, 1))
        related = list(brief.related_pages) + list(research.related_page_suggestions)
        if related:
            prompt += "\nRELATED PAGES (for internal links):\n" + bullet_list(related)
        if research.glossary:
            prompt += "\nGLOSSARY:\n" + bullet_list(f"{k}: {v}" for k, v in research.glossary.items())
        if research.sources:
            prompt += "\nSOURCES:\n"
            prompt += "".join(
                f"{i}. {s.description} ({s.reliability.value})\n" for i, s in enumerate(research.sources)
            )
        if research.uncertain_areas:
            prompt += "\nAREAS OF UNCERTAINTY (hedge or omit):\n" + bullet_list(research.uncertain_areas)

    if brief.required_sections:
        prompt += "\nREQUIRED SECTIONS:\n" + bullet_list(brief.required_sections)

    # On a revision pass the writer sees its previous draft and the feedback.
    if document.draft is not None and document.revision_notes:
        prompt += f"\n--- PREVIOUS DRAFT ---\n\n{document.draft.content}\n"
    prompt += revision_context(document)
    return prompt


def map_article_draft(reader: ResponseReader, document: Document) -> ArticleDraft:
    if not reader.has_required("content", "summary"):
        raise MalformedResponseError("writer response needs non-empty content and summary")
    return ArticleDraft(
        content=reader.get_str("content"),
        summary=reader.get_str("summary"),
        internal_links=tuple(reader.get_str_list("internal_links")),
        categories=tuple(reader.get_str_list("categories")),
        metadata=reader.get_str_map("metadata"),
    )


def validate_draft(document: Document, *, min_word_ratio: float = 0.5) -> bool:
    draft = document.draft
    if draft is None:
        logger.warning("Validation failed: no article draft")
        return False
    target = document.brief.target_word_count
    words = draft.word_count()
    if target > 0 and words < target * min_word_ratio:
        logger.warning(
            "Validation failed: word count %d is less than %.0f%% of target %d",
            words, min_word_ratio * 100, target,
        )
        return False
    return True


def make_writer_agent(config: ProjectConfig) -> PhaseAgent:
    """Create the writer agent."""
    return PhaseAgent(
        role=AgentRole.WRITER,
        phase=Phase.DRAFTING,
        system_prompt=SYSTEM_PROMPT,
        build_input=build_writer_prompt,
        map_output=map_article_draft,
        validate=partial(validate_draft, min_word_ratio=config.quality.min_word_ratio),
    )
