"""Document aggregate: the article moving through the pipeline.

All mutation goes through methods that re-check the phase table. Phase outputs
are kept as an append-only history per phase, so a revision adds a new version
instead of replacing the old one.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from .errors import StateError
from .models import (
    OUTPUT_PHASE,
    ArticleDraft,
    Contribution,
    CriticReport,
    FactCheckReport,
    FinalArticle,
    Phase,
    PhaseChange,
    PhaseOutput,
    ResearchBrief,
    TopicBrief,
    to_page_name,
    utcnow,
)
from .phases import PROCESSING_PHASES, flow_index, is_backward, is_processing, is_terminal, require_transition

logger = logging.getLogger(__name__)


class Document:
    """A single article, its phase, its outputs and its audit trail."""

    def __init__(self, brief: TopicBrief, *, document_id: str | None = None, title: str | None = None):
        self.id = document_id or uuid.uuid4().hex
        self.brief = brief
        self.page_name = to_page_name(brief.topic)
        self.title = title or brief.topic
        self.created_at = utcnow()
        self.updated_at = self.created_at
        self.rejection_reason: str | None = None

        self._phase = Phase.CREATED
        self._paused_from: Phase | None = None
        self._revision_cycles = 0
        self._attached_this_visit = False
        self._outputs: dict[Phase, list[PhaseOutput]] = {p: [] for p in PROCESSING_PHASES}
        self._contributions: list[Contribution] = []
        self._revision_notes: list[str] = []
        self._history: list[PhaseChange] = []

    def __repr__(self) -> str:
        return f"Document(page_name={self.page_name!r}, phase={self._phase.value}, revisions={self._revision_cycles})"

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def paused_from(self) -> Phase | None:
        """Phase the document was in when it last entered awaiting_approval."""
        return self._paused_from

    @property
    def revision_cycles(self) -> int:
        return self._revision_cycles

    @property
    def contributions(self) -> tuple[Contribution, ...]:
        return tuple(self._contributions)

    @property
    def revision_notes(self) -> tuple[str, ...]:
        return tuple(self._revision_notes)

    @property
    def history(self) -> tuple[PhaseChange, ...]:
        return tuple(self._history)

    def outputs(self, phase: Phase) -> tuple[PhaseOutput, ...]:
        """Every version produced for *phase*, oldest first."""
        return tuple(self._outputs.get(phase, ()))

    def _latest(self, phase: Phase) -> Any:
        versions = self._outputs[phase]
        return versions[-1] if versions else None

    @property
    def research_brief(self) -> ResearchBrief | None:
        return self._latest(Phase.RESEARCHING)

    @property
    def draft(self) -> ArticleDraft | None:
        return self._latest(Phase.DRAFTING)

    @property
    def fact_check_report(self) -> FactCheckReport | None:
        return self._latest(Phase.FACT_CHECKING)

    @property
    def final_article(self) -> FinalArticle | None:
        return self._latest(Phase.EDITING)

    @property
    def critic_report(self) -> CriticReport | None:
        return self._latest(Phase.CRITIQUING)

    def current_content(self) -> str:
        """Most polished text available: edited article, else the draft."""
        if self.final_article is not None:
            return self.final_article.content
        if self.draft is not None:
            return self.draft.content
        return ""

    def is_terminal(self) -> bool:
        return is_terminal(self._phase)

    def is_published(self) -> bool:
        return self._phase is Phase.PUBLISHED

    def is_rejected(self) -> bool:
        return self._phase is Phase.REJECTED

    def can_revise(self, max_cycles: int) -> bool:
        return self._revision_cycles < max_cycles

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def _check_mutable(self) -> None:
        if is_terminal(self._phase):
            raise StateError(self._phase, message=f"document is {self._phase.value} and can no longer change")

    def _touch(self) -> None:
        self.updated_at = utcnow()

    def is_revision(self, target: Phase) -> bool:
        """Whether moving to *target* now would count as a revision cycle."""
        source = self._phase
        if source is Phase.AWAITING_APPROVAL:
            base = self._paused_from
            return (
                base is not None
                and is_processing(target)
                and flow_index(target) <= flow_index(base)
            )
        return is_backward(source, target)

    def transition_to(self, target: Phase) -> None:
        """Move to *target*; raises ``StateError`` if the table forbids it."""
        self._check_mutable()
        source = self._phase
        require_transition(source, target)

        revision = self.is_revision(target)
        if revision:
            self._revision_cycles += 1

        if target is Phase.AWAITING_APPROVAL:
            self._paused_from = source

        self._phase = target
        self._attached_this_visit = False
        self._history.append(PhaseChange(source=source, target=target, revision=revision))
        self._touch()
        logger.debug("%s: %s -> %s", self.page_name, source.value, target.value)

    def revert_for_revision(self, target: Phase, note: str = "") -> None:
        """Go back to *target* for another pass, recording why."""
        self._check_mutable()
        require_transition(self._phase, target)
        if not self.is_revision(target):
            raise StateError(self._phase, target, f"{self._phase.value} -> {target.value} is not a revision")
        if note:
            self._revision_notes.append(note)
        self.transition_to(target)

    def retry_in_place(self, note: str = "") -> None:
        """Give the current phase another pass without leaving it.

        Counts as a revision cycle and is logged in the history as a change
        from the phase to itself. Only allowed once this visit's output is
        attached.
        """
        self._check_mutable()
        phase = self._phase
        if not is_processing(phase) or not self._attached_this_visit:
            raise StateError(phase, message=f"nothing to retry in {phase.value}")
        if note:
            self._revision_notes.append(note)
        self._revision_cycles += 1
        self._attached_this_visit = False
        self._history.append(PhaseChange(source=phase, target=phase, revision=True))
        self._touch()
        logger.debug("%s: another %s pass", self.page_name, phase.value)

    def pause_for_approval(self) -> None:
        self.transition_to(Phase.AWAITING_APPROVAL)

    def publish(self) -> None:
        self.transition_to(Phase.PUBLISHED)

    def reject(self, reason: str) -> None:
        self.transition_to(Phase.REJECTED)
        self.rejection_reason = reason

    def attach(self, output: PhaseOutput) -> None:
        """Attach a phase output; only while in its phase and once per visit."""
        self._check_mutable()
        expected = OUTPUT_PHASE.get(type(output))
        if expected is None:
            raise TypeError(f"not a phase output: {type(output).__name__}")
        if self._phase is not expected:
            raise StateError(
                self._phase,
                message=f"cannot attach {type(output).__name__} while {self._phase.value}",
            )
        if self._attached_this_visit:
            raise StateError(self._phase, message=f"{expected.value} output already attached for this pass")
        self._outputs[expected].append(output)
        self._attached_this_visit = True
        self._touch()

    def add_contribution(self, contribution: Contribution) -> None:
        self._check_mutable()
        self._contributions.append(contribution)
        self._touch()

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        """JSON-ready view of the whole document for callers that persist it."""
        return {
            "id": self.id,
            "page_name": self.page_name,
            "title": self.title,
            "phase": self._phase.value,
            "revision_cycles": self._revision_cycles,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "brief": self.brief.model_dump(mode="json"),
            "outputs": {
                phase.value: [o.model_dump(mode="json") for o in versions]
                for phase, versions in self._outputs.items()
                if versions
            },
            "contributions": [c.model_dump(mode="json") for c in self._contributions],
            "history": [h.model_dump(mode="json") for h in self._history],
            "revision_notes": list(self._revision_notes),
            "rejection_reason": self.rejection_reason,
        }
