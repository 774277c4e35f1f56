"""Pipeline events, listeners and aggregate metrics."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, Field

from .models import AgentRole, Phase, utcnow

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    PIPELINE_STARTED = "pipeline_started"
    PHASE_STARTED = "phase_started"
    PHASE_COMPLETED = "phase_completed"
    APPROVAL_REQUESTED = "approval_requested"
    APPROVAL_RECEIVED = "approval_received"
    REVISION_STARTED = "revision_started"
    PIPELINE_COMPLETED = "pipeline_completed"
    PIPELINE_FAILED = "pipeline_failed"
    WARNING = "warning"


class PipelineEvent(BaseModel):
    type: EventType
    document_id: str
    page_name: str = ""
    phase: Phase | None = None
    message: str = ""
    timestamp: datetime = Field(default_factory=utcnow)
    data: dict[str, Any] = Field(default_factory=dict)


EventListener = Callable[[PipelineEvent], None]


class PipelineMetrics:
    """Counters across every run that reports to one monitor."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.started = 0
        self.completed = 0
        self.failed = 0
        self.revision_cycles = 0
        self.approvals_requested = 0
        self.approvals_granted = 0
        self.approvals_rejected = 0
        self.total_time = 0.0
        self.min_time: float | None = None
        self.max_time = 0.0
        self.failures_by_phase: dict[Phase, int] = {}
        self.agent_time: dict[AgentRole, float] = {}
        self.agent_calls: dict[AgentRole, int] = {}

    def record_started(self) -> None:
        with self._lock:
            self.started += 1

    def record_completed(self, seconds: float) -> None:
        with self._lock:
            self.completed += 1
            self.total_time += seconds
            self.min_time = seconds if self.min_time is None else min(self.min_time, seconds)
            self.max_time = max(self.max_time, seconds)

    def record_failed(self, phase: Phase | None) -> None:
        with self._lock:
            self.failed += 1
            if phase is not None:
                self.failures_by_phase[phase] = self.failures_by_phase.get(phase, 0) + 1

    def record_revision(self) -> None:
        with self._lock:
            self.revision_cycles += 1

    def record_approval(self, *, requested: bool = False, granted: bool | None = None) -> None:
        with self._lock:
            if requested:
                self.approvals_requested += 1
            if granted is True:
                self.approvals_granted += 1
            elif granted is False:
                self.approvals_rejected += 1

    def record_agent(self, role: AgentRole, seconds: float) -> None:
        with self._lock:
            self.agent_time[role] = self.agent_time.get(role, 0.0) + seconds
            self.agent_calls[role] = self.agent_calls.get(role, 0) + 1

    @property
    def average_time(self) -> float:
        return self.total_time / self.completed if self.completed else 0.0

    @property
    def success_rate(self) -> float:
        finished = self.completed + self.failed
        return self.completed / finished if finished else 0.0

    def agent_average_time(self, role: AgentRole) -> float:
        calls = self.agent_calls.get(role, 0)
        return self.agent_time.get(role, 0.0) / calls if calls else 0.0

    def summary(self) -> dict[str, Any]:
        return {
            "started": self.started,
            "completed": self.completed,
            "failed": self.failed,
            "revision_cycles": self.revision_cycles,
            "approvals_requested": self.approvals_requested,
            "approvals_granted": self.approvals_granted,
            "approvals_rejected": self.approvals_rejected,
            "average_time": round(self.average_time, 3),
            "success_rate": round(self.success_rate, 3),
            "failures_by_phase": {p.value: n for p, n in self.failures_by_phase.items()},
        }


class PipelineMonitor:
    """Fans events out to listeners and keeps metrics.

    A listener that raises is logged and skipped; it never stops the pipeline.
    """

    def __init__(self, metrics: PipelineMetrics | None = None):
        self.metrics = metrics or PipelineMetrics()
        self._listeners: list[EventListener] = []

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        self._listeners.remove(listener)

    def emit(self, event: PipelineEvent) -> None:
        self._record(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener %r failed on %s", listener, event.type.value)

    def _record(self, event: PipelineEvent) -> None:
        m = self.metrics
        if event.type is EventType.PIPELINE_STARTED:
            m.record_started()
        elif event.type is EventType.PIPELINE_COMPLETED:
            m.record_completed(float(event.data.get("seconds", 0.0)))
        elif event.type is EventType.PIPELINE_FAILED:
            m.record_failed(event.phase)
        elif event.type is EventType.REVISION_STARTED:
            m.record_revision()
        elif event.type is EventType.APPROVAL_REQUESTED:
            m.record_approval(requested=True)
        elif event.type is EventType.APPROVAL_RECEIVED:
            action = event.data.get("action")
            m.record_approval(granted={"approve": True, "reject": False}.get(action))
        elif event.type is EventType.PHASE_COMPLETED and "role" in event.data:
            m.record_agent(AgentRole(event.data["role"]), float(event.data.get("seconds", 0.0)))


def log_event(event: PipelineEvent) -> None:
    """Listener that writes every event to the module logger."""
    where = f" [{event.phase.value}]" if event.phase else ""
    level = logging.WARNING if event.type in (EventType.WARNING, EventType.PIPELINE_FAILED) else logging.INFO
    logger.log(level, "%s %s%s %s", event.type.value, event.page_name, where, event.message)
