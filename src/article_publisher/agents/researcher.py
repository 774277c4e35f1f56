"""Research agent: turns a topic brief into a ResearchBrief."""

from __future__ import annotations

import logging
from functools import partial

from ..document import Document
from ..errors import MalformedResponseError
from ..models import AgentRole, ConfidenceLevel, KeyFact, Phase, ProjectConfig, ResearchBrief, SourceCitation
from ..recovery import ResponseReader
from .base import PhaseAgent, bullet_list, revision_context

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a meticulous research specialist preparing source material for informational articles.

Analyze the given topic and produce a research brief that lets a writer who is
unfamiliar with the topic produce an accurate, well-structured article.

Output ONLY a valid JSON object with this structure:
{
  "key_facts": [{"fact": "...", "source_index": 0}],
  "sources": [{"description": "...", "reliability": "high|medium|low"}],
  "suggested_outline": ["Section 1", "Section 2"],
  "related_pages": ["PageName"],
  "glossary": {"term": "definition"},
  "uncertain_areas": ["claim that needs verification"]
}

Guidelines:
- Include 5-10 key facts for a typical article; source_index points into "sources" (-1 if none)
- Separate well-established facts from areas of uncertainty
- Suggest related page names in CamelCase (e.g. "ApacheKafka")
- Reliability: high for official docs and academic sources, medium for reputable
  technical sites, low for blogs and forums
"""


def build_research_prompt(document: Document) -> str:
    brief = document.brief
    prompt = "Please research the following topic:\n\n"
    prompt += f"TOPIC: {brief.topic}\n"
    if brief.target_audience.strip():
        prompt += f"TARGET AUDIENCE: {brief.target_audience}\n"
    if brief.target_word_count > 0:
        prompt += f"TARGET ARTICLE LENGTH: approximately {brief.target_word_count} words\n"
    if brief.required_sections:
        prompt += f"REQUIRED SECTIONS: {', '.join(brief.required_sections)}\n"
    if brief.related_pages:
        prompt += f"RELATED PAGES (for linking): {', '.join(brief.related_pages)}\n"
    if brief.source_urls:
        prompt += "SOURCE URLS TO CONSIDER:\n" + bullet_list(brief.source_urls)
    if brief.domain_context:
        prompt += f"\nDOMAIN CONTEXT: {brief.domain_context}\n"
    if brief.specific_goal:
        prompt += f"SPECIFIC GOAL: {brief.specific_goal}\n"
    prompt += revision_context(document)
    return prompt


def _key_facts(reader: ResponseReader) -> list[KeyFact]:
    facts = []
    for item in reader.get_list("key_facts"):
        if isinstance(item, dict):
            fact_reader = ResponseReader(item)
            text = fact_reader.get_str("fact")
            index = fact_reader.get_int("source_index", -1)
            source_index = index if index >= 0 else None
        elif item is not None:
            text, source_index = str(item), None
        else:
            continue
        if text.strip():
            facts.append(KeyFact(fact=text.strip(), source_index=source_index))
    return facts


def _sources(reader: ResponseReader) -> list[SourceCitation]:
    sources = []
    for item in reader.get_list("sources"):
        if isinstance(item, dict):
            source_reader = ResponseReader(item)
            description = source_reader.get_str("description")
            reliability = ConfidenceLevel.from_text(source_reader.get_str("reliability", "medium"))
        elif isinstance(item, str):
            description, reliability = item, ConfidenceLevel.MEDIUM
        else:
            continue
        if description.strip():
            sources.append(SourceCitation(description=description, reliability=reliability))
    return sources


def map_research_brief(reader: ResponseReader, document: Document) -> ResearchBrief:
    if not reader.has("key_facts") or not reader.has("suggested_outline"):
        raise MalformedResponseError("research response needs key_facts and suggested_outline")

    facts = _key_facts(reader)
    if not facts:
        raise ValueError("research brief contains no key facts")

    return ResearchBrief(
        key_facts=tuple(facts),
        sources=tuple(_sources(reader)),
        suggested_outline=tuple(reader.get_str_list("suggested_outline")),
        related_page_suggestions=tuple(reader.get_str_list("related_pages")),
        glossary=reader.get_str_map("glossary"),
        uncertain_areas=tuple(reader.get_str_list("uncertain_areas")),
    )


def validate_research(document: Document, *, min_key_facts: int = 3, min_outline_sections: int = 2) -> bool:
    brief = document.research_brief
    if brief is None or not brief.is_valid():
        logger.warning("Validation failed: no usable research brief")
        return False
    if len(brief.key_facts) < min_key_facts:
        logger.warning("Validation failed: %d key facts, need %d", len(brief.key_facts), min_key_facts)
        return False
    if len(brief.suggested_outline) < min_outline_sections:
        logger.warning(
            "Validation failed: outline has %d sections, need %d",
            len(brief.suggested_outline), min_outline_sections,
        )
        return False
    return True


def make_research_agent(config: ProjectConfig) -> PhaseAgent:
    """Create the research agent."""
    return PhaseAgent(
        role=AgentRole.RESEARCHER,
        phase=Phase.RESEARCHING,
        system_prompt=SYSTEM_PROMPT,
        build_input=build_research_prompt,
        map_output=map_research_brief,
        validate=partial(
            validate_research,
            min_key_facts=config.quality.min_key_facts,
            min_outline_sections=config.quality.min_outline_sections,
        ),
    )
