"""Phase agents and the shared invocation contract."""

from __future__ import annotations

from ..models import Phase, ProjectConfig
from .base import PhaseAgent, call_with_retry, invoke_agent
from .critic import make_critic_agent
from .editor import make_editor_agent
from .fact_checker import make_fact_checker_agent
from .researcher import make_research_agent
from .writer import make_writer_agent

__all__ = [
    "PhaseAgent",
    "call_with_retry",
    "invoke_agent",
    "make_agents",
    "make_critic_agent",
    "make_editor_agent",
    "make_fact_checker_agent",
    "make_research_agent",
    "make_writer_agent",
]


def make_agents(config: ProjectConfig) -> dict[Phase, PhaseAgent]:
    """One agent per processing phase."""
    agents = (
        make_research_agent(config),
        make_writer_agent(config),
        make_fact_checker_agent(config),
        make_editor_agent(config),
        make_critic_agent(config),
    )
    return {agent.phase: agent for agent in agents}
