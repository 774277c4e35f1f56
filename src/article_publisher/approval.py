"""Human approval checkpoints."""

from __future__ import annotations

import uuid
from typing import Protocol

from .document import Document
from .models import ApprovalAction, ApprovalConfig, ApprovalDecision, ApprovalRequest, Phase


class ApprovalChannel(Protocol):
    """Blocks until someone decides on *request*.

    A channel that sets ``retry_on_timeout = False`` is asked once; a timeout
    then fails the run instead of opening a second prompt.
    """

    retry_on_timeout: bool

    def request_approval(self, request: ApprovalRequest) -> ApprovalDecision: ...


class AutoApprovalChannel:
    """Approves everything; used for unattended runs."""

    retry_on_timeout = True

    def __init__(self, approver: str = "auto"):
        self.approver = approver
        self.requests: list[ApprovalRequest] = []

    def request_approval(self, request: ApprovalRequest) -> ApprovalDecision:
        self.requests.append(request)
        return ApprovalDecision(action=ApprovalAction.APPROVE, approver=self.approver)


def requires_approval(config: ApprovalConfig, completed: Phase) -> bool:
    """Whether a checkpoint follows the phase that just *completed*."""
    return {
        Phase.RESEARCHING: config.after_research,
        Phase.DRAFTING: config.after_draft,
        Phase.FACT_CHECKING: config.after_fact_check,
        Phase.EDITING: config.after_edit,
        Phase.CRITIQUING: config.before_publish,
    }.get(completed, False)


def summarize(document: Document, phase: Phase) -> str:
    topic = document.brief.topic
    if phase is Phase.RESEARCHING and document.research_brief is not None:
        return f"Research complete for '{topic}': {len(document.research_brief.key_facts)} key facts gathered"
    if phase is Phase.DRAFTING and document.draft is not None:
        return f"Draft ready for '{topic}': ~{document.draft.word_count()} words"
    if phase is Phase.FACT_CHECKING and document.fact_check_report is not None:
        report = document.fact_check_report
        return (
            f"Fact check complete for '{topic}': {report.overall_confidence.value} confidence, "
            f"{report.recommended_action.value}"
        )
    if phase is Phase.EDITING and document.final_article is not None:
        return f"Edit complete for '{topic}': quality score {document.final_article.quality_score:.2f}"
    if phase is Phase.CRITIQUING and document.critic_report is not None:
        report = document.critic_report
        return f"Ready to publish '{topic}': critic score {report.overall_score:.2f} ({report.issue_summary()})"
    return f"Approval required for '{topic}'"


def build_approval_request(document: Document, phase: Phase, next_phase: Phase) -> ApprovalRequest:
    return ApprovalRequest(
        id=uuid.uuid4().hex,
        document=document,
        phase=phase,
        next_phase=next_phase,
        summary=summarize(document, phase),
    )
