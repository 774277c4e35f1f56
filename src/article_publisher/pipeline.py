"""Pipeline: drives one document from topic brief to published article.

Phase 1: RESEARCHING    researcher gathers facts and an outline
Phase 2: DRAFTING       writer produces the article
Phase 3: FACT_CHECKING  fact checker verifies claims (may send back to drafting)
Phase 4: EDITING        editor polishes (may send back on a low quality score)
Phase 5: CRITIQUING     critic reviews (may send back by issue category)

Human checkpoints can follow any phase; every revision pass counts against
``max_revision_cycles`` and running out rejects the document.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, NamedTuple

from .agents import PhaseAgent, call_with_retry, invoke_agent, make_agents
from .approval import ApprovalChannel, AutoApprovalChannel, build_approval_request, requires_approval
from .document import Document
from .errors import (
    AgentError,
    InvocationCancelled,
    PipelineCancelled,
    PipelineError,
    RetryExhaustedError,
    StateError,
)
from .llm import TextGenerator, call_with_timeout
from .logging_config import PipelineCallbacks, RichCallbacks
from .models import (
    ApprovalAction,
    ApprovalDecision,
    ApprovalRequest,
    CriticReport,
    FactCheckReport,
    FinalArticle,
    IssueCategory,
    Phase,
    PhaseOutput,
    PipelineResult,
    ProjectConfig,
    RecommendedAction,
    RevisionPolicy,
    TopicBrief,
)
from .monitoring import EventType, PipelineEvent, PipelineMonitor
from .phases import flow_index, is_backward, next_in_flow, previous_for_revision, valid_transitions

logger = logging.getLogger(__name__)

MAX_REVISIONS_REASON = "maximum revision cycles exceeded"

_PHASE_DESCRIPTIONS: dict[Phase, str] = {
    Phase.RESEARCHING: "gathering facts and an outline",
    Phase.DRAFTING: "writing the article",
    Phase.FACT_CHECKING: "verifying claims",
    Phase.EDITING: "polishing for publication",
    Phase.CRITIQUING: "final review",
}

# Requested changes go to the phase that produced the content under review.
_CHANGES_TARGET: dict[Phase, Phase] = {Phase.CRITIQUING: Phase.EDITING}


# ---------------------------------------------------------------------------
# Revision routing
# ---------------------------------------------------------------------------

class Verdict(NamedTuple):
    action: RecommendedAction
    reason: str = ""
    target: Phase | None = None


def classify_critic_issues(report: CriticReport, policy: RevisionPolicy) -> IssueCategory:
    """Decide what kind of problem a critic's findings describe.

    Any factual issue wins. Structure or style issues above their thresholds
    mean the draft itself needs work. Other findings are light enough for
    another editing pass; a bare "revise" with no findings redrafts.
    """
    if report.factual_issues:
        return IssueCategory.FACTUAL
    if (
        len(report.structure_issues) > policy.structural_issue_threshold
        or len(report.style_issues) > policy.style_issue_threshold
    ):
        return IssueCategory.STRUCTURAL
    if report.total_issues() > 0:
        return IssueCategory.SYNTAX
    return IssueCategory.STRUCTURAL


def route_revision(source: Phase, category: IssueCategory, policy: RevisionPolicy) -> Phase:
    """Backward target for a revision of *category* requested from *source*.

    Goes to the configured phase when the table allows it, otherwise to the
    latest legal backward phase before it, so the configured phase still runs
    again on the way forward. A route naming *source* itself means another
    pass of that phase.
    """
    wanted = policy.routes.get(category)
    if wanted is source:
        return source
    if wanted is not None:
        candidates = [
            p for p in valid_transitions(source)
            if is_backward(source, p) and flow_index(p) <= flow_index(wanted)
        ]
        if candidates:
            return max(candidates, key=flow_index)
    fallback = previous_for_revision(source)
    if fallback is None:
        raise StateError(source, message=f"no revision target from {source.value}")
    return fallback


def _fact_check_note(report: FactCheckReport) -> str:
    lines = [f"{c.claim}: {c.issue}" + (f" (suggestion: {c.suggestion})" if c.suggestion else "")
             for c in report.questionable_claims]
    lines += list(report.consistency_issues)
    if not lines:
        return "fact checker requested a revision"
    return "fact-check issues:\n" + "\n".join(f"- {line}" for line in lines)


def _critic_note(report: CriticReport) -> str:
    lines = []
    for label, issues in (
        ("factual", report.factual_issues),
        ("structure", report.structure_issues),
        ("syntax", report.syntax_issues),
        ("style", report.style_issues),
    ):
        lines += [f"[{label}] {issue}" for issue in issues]
    lines += [f"[suggestion] {s}" for s in report.suggestions]
    header = f"critic score {report.overall_score:.2f} ({report.issue_summary()})"
    return header + ("\n" + "\n".join(f"- {line}" for line in lines) if lines else "")


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class Pipeline:
    """Runs documents through research, drafting, fact checking, editing and critique."""

    def __init__(
        self,
        config: ProjectConfig,
        generator: TextGenerator | None = None,
        *,
        approval: ApprovalChannel | None = None,
        callbacks: PipelineCallbacks | None = None,
        monitor: PipelineMonitor | None = None,
        agents: dict[Phase, PhaseAgent] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if generator is None:
            from .llm import AutogenTextGenerator

            generator = AutogenTextGenerator(config)
        self.config = config
        self.generator = generator
        self.approval = approval or AutoApprovalChannel()
        self.callbacks = callbacks or RichCallbacks()
        self.monitor = monitor or PipelineMonitor()
        self.agents = agents or make_agents(config)
        self._sleep = sleep
        self._cancel = threading.Event()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Stop the current run at the next phase boundary or provider wait."""
        self._cancel.set()

    def run(self, brief: TopicBrief | Document) -> PipelineResult:
        """Run the pipeline and report the outcome instead of raising."""
        document = brief if isinstance(brief, Document) else Document(brief)
        start = time.monotonic()
        try:
            self.run_document(document)
        except PipelineError as e:
            self.callbacks.on_error(str(e))
            return PipelineResult(
                success=False,
                document=document,
                failed_at=e.phase,
                error=str(e),
                total_time=time.monotonic() - start,
                phases_completed=self._phases_completed(document),
            )
        return PipelineResult(
            success=document.is_published(),
            document=document,
            rejection_reason=document.rejection_reason,
            total_time=time.monotonic() - start,
            phases_completed=self._phases_completed(document),
        )

    def run_document(self, document: Document) -> Document:
        """Drive *document* to published or rejected.

        Raises ``PipelineError`` (``PipelineCancelled`` on cancel) when a phase
        cannot complete; the document stays in its last committed phase.
        """
        if document.phase is not Phase.CREATED:
            raise StateError(document.phase, message="a pipeline run starts from a created document")
        self._cancel.clear()
        start = time.monotonic()
        self._emit(EventType.PIPELINE_STARTED, document, message=document.brief.topic)

        try:
            target: Phase | None = next_in_flow(Phase.CREATED)
            while target is not None:
                if self._cancel.is_set():
                    raise PipelineCancelled("pipeline cancelled", document.phase)
                if target is Phase.PUBLISHED:
                    document.publish()
                    break
                target = self._run_phase(document, target)
        except PipelineError as e:
            self._emit(EventType.PIPELINE_FAILED, document, phase=e.phase, message=str(e))
            raise

        elapsed = time.monotonic() - start
        if document.is_published():
            logger.info("Published %s after %d revision(s) in %.1fs", document.page_name, document.revision_cycles, elapsed)
            self._emit(EventType.PIPELINE_COMPLETED, document, phase=Phase.PUBLISHED, seconds=elapsed)
        else:
            self._emit(
                EventType.PIPELINE_FAILED, document, phase=document.phase,
                message=document.rejection_reason or "",
            )
        return document

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _run_phase(self, document: Document, phase: Phase) -> Phase | None:
        """Run one phase; return the next phase to run, or None when finished."""
        agent = self.agents[phase]
        self.callbacks.on_phase_start(phase, _PHASE_DESCRIPTIONS[phase])
        if document.phase is not phase:
            document.transition_to(phase)
        self._emit(EventType.PHASE_STARTED, document, phase=phase)

        try:
            output = invoke_agent(
                agent,
                document,
                self.generator,
                self.config.retry,
                timeout=self.config.phase_timeout,
                sleep=self._sleep,
                cancel=self._cancel,
            )
        except InvocationCancelled as e:
            self.callbacks.on_phase_end(phase, False)
            raise PipelineCancelled(f"cancelled during {phase.value}", document.phase, e) from e
        except AgentError as e:
            self.callbacks.on_phase_end(phase, False)
            raise PipelineError(f"{phase.display_name} failed: {e}", document.phase, e) from e

        if not agent.validate(document):
            self.callbacks.on_phase_end(phase, False)
            raise PipelineError(f"{agent.role.display_name} output failed validation", document.phase)

        self.callbacks.on_phase_end(phase, True)
        self._emit(
            EventType.PHASE_COMPLETED, document, phase=phase,
            role=agent.role.value, seconds=document.contributions[-1].duration,
        )

        verdict = self._verdict(phase, output)
        if verdict.action is RecommendedAction.REJECT:
            self._log_outstanding_issues(document)
            self._reject(document, verdict.reason)
            return None
        if verdict.action is RecommendedAction.REVISE:
            assert verdict.target is not None
            return self._revise(document, phase, verdict.target, verdict.reason)
        return self._checkpoint(document, phase, next_in_flow(phase))

    def _verdict(self, phase: Phase, output: PhaseOutput) -> Verdict:
        quality = self.config.quality
        policy = self.config.revision

        if isinstance(output, FactCheckReport):
            if output.recommended_action is RecommendedAction.REJECT:
                return Verdict(RecommendedAction.REJECT, f"fact check rejected the draft ({output.issue_count()} issues)")
            if output.recommended_action is RecommendedAction.REVISE:
                return Verdict(RecommendedAction.REVISE, _fact_check_note(output), Phase.DRAFTING)
            if not output.meets_confidence(quality.min_fact_check_confidence):
                reason = (
                    f"fact-check confidence {output.overall_confidence.value} is below "
                    f"{quality.min_fact_check_confidence.value}\n{_fact_check_note(output)}"
                )
                return Verdict(RecommendedAction.REVISE, reason, Phase.DRAFTING)

        elif isinstance(output, FinalArticle):
            if output.quality_score < quality.min_editor_score:
                target = route_revision(phase, policy.editor_issue_category, policy)
                reason = f"editor quality score {output.quality_score:.2f} is below {quality.min_editor_score:.2f}"
                return Verdict(RecommendedAction.REVISE, reason, target)

        elif isinstance(output, CriticReport):
            if output.recommended_action is RecommendedAction.REJECT:
                return Verdict(RecommendedAction.REJECT, f"critic rejected the article: {output.issue_summary()}")
            if (
                output.recommended_action is RecommendedAction.REVISE
                or output.overall_score < quality.min_critic_score
            ):
                category = classify_critic_issues(output, policy)
                target = route_revision(phase, category, policy)
                return Verdict(RecommendedAction.REVISE, _critic_note(output), target)

        return Verdict(RecommendedAction.APPROVE)

    def _revise(self, document: Document, source: Phase, target: Phase, reason: str) -> Phase | None:
        if not document.can_revise(self.config.max_revision_cycles):
            logger.warning(
                "%s: revision limit (%d) reached in %s",
                document.page_name, self.config.max_revision_cycles, source.value,
            )
            self._log_outstanding_issues(document)
            self._reject(document, MAX_REVISIONS_REASON)
            return None

        if target is document.phase:
            document.retry_in_place(note=reason)
        else:
            document.revert_for_revision(target, note=reason)
        cycle = document.revision_cycles
        first_line = reason.splitlines()[0] if reason else ""
        self.callbacks.on_revision(source, target, cycle, first_line)
        self._emit(
            EventType.REVISION_STARTED, document, phase=target,
            message=f"{source.value} -> {target.value}: {first_line}",
            cycle=cycle, max_cycles=self.config.max_revision_cycles,
        )
        return target

    def _reject(self, document: Document, reason: str) -> None:
        document.reject(reason)
        self.callbacks.on_warning(f"{document.page_name} rejected: {reason}")

    # ------------------------------------------------------------------
    # Approval checkpoints
    # ------------------------------------------------------------------

    def _checkpoint(self, document: Document, completed: Phase, next_phase: Phase | None) -> Phase | None:
        if next_phase is None or not requires_approval(self.config.approval, completed):
            return next_phase

        request = build_approval_request(document, completed, next_phase)
        document.pause_for_approval()
        self._emit(EventType.APPROVAL_REQUESTED, document, phase=completed, message=request.summary)

        decision = self._await_decision(document, request)
        self._emit(
            EventType.APPROVAL_RECEIVED, document, phase=completed,
            message=decision.feedback, action=decision.action.value, approver=decision.approver,
        )

        if decision.action is ApprovalAction.APPROVE:
            return next_phase
        if decision.action is ApprovalAction.REJECT:
            self._reject(document, f"rejected at approval: {decision.feedback or 'no reason given'}")
            return None

        target = _CHANGES_TARGET.get(completed, completed)
        reason = f"changes requested by {decision.approver}: {decision.feedback}".rstrip(": ")
        return self._revise(document, completed, target, reason)

    def _await_decision(self, document: Document, request: ApprovalRequest) -> ApprovalDecision:
        def _ask() -> ApprovalDecision:
            return call_with_timeout(
                lambda: self.approval.request_approval(request),
                self.config.phase_timeout,
                cancel=self._cancel,
            )

        retry = self.config.retry
        if not getattr(self.approval, "retry_on_timeout", True):
            retry = retry.model_copy(update={"max_attempts": 1})

        try:
            decision, _ = call_with_retry(
                _ask, retry, sleep=self._sleep, cancel=self._cancel, label="approval",
            )
        except InvocationCancelled as e:
            raise PipelineCancelled("cancelled while awaiting approval", document.phase, e) from e
        except RetryExhaustedError as e:
            raise PipelineError(f"no approval decision: {e}", document.phase, e.last_error) from e
        except Exception as e:
            raise PipelineError(f"approval channel failed: {e}", document.phase, e) from e
        return decision

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _log_outstanding_issues(self, document: Document) -> None:
        report = document.fact_check_report
        if report is not None and report.issue_count():
            logger.warning("%s: %d unresolved fact-check issue(s)", document.page_name, report.issue_count())
            for claim in report.questionable_claims:
                logger.warning("  claim %r: %s", claim.claim, claim.issue)
            for issue in report.consistency_issues:
                logger.warning("  consistency: %s", issue)
        critique = document.critic_report
        if critique is not None and critique.total_issues():
            logger.warning("%s: critic issues: %s", document.page_name, critique.issue_summary())
            for issue in critique.factual_issues + critique.structure_issues + critique.syntax_issues + critique.style_issues:
                logger.warning("  %s", issue)

    def _emit(
        self,
        event_type: EventType,
        document: Document,
        *,
        phase: Phase | None = None,
        message: str = "",
        **data,
    ) -> None:
        self.monitor.emit(PipelineEvent(
            type=event_type,
            document_id=document.id,
            page_name=document.page_name,
            phase=phase,
            message=message,
            data=data,
        ))

    @staticmethod
    def _phases_completed(document: Document) -> list[Phase]:
        seen: list[Phase] = []
        for contribution in document.contributions:
            if contribution.phase not in seen:
                seen.append(contribution.phase)
        return seen
