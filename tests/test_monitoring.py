"""Tests for pipeline events, listeners and metrics."""

from __future__ import annotations

import logging

from article_publisher.models import AgentRole, Phase
from article_publisher.monitoring import EventType, PipelineEvent, PipelineMetrics, PipelineMonitor, log_event


def _event(event_type: EventType, phase: Phase | None = None, **data) -> PipelineEvent:
    return PipelineEvent(type=event_type, document_id="d1", page_name="ApacheKafka", phase=phase, data=data)


class TestPipelineMetrics:
    def test_empty(self):
        metrics = PipelineMetrics()
        assert metrics.average_time == 0.0
        assert metrics.success_rate == 0.0
        assert metrics.agent_average_time(AgentRole.WRITER) == 0.0

    def test_counts(self):
        metrics = PipelineMetrics()
        metrics.record_completed(2.0)
        metrics.record_completed(4.0)
        metrics.record_failed(Phase.DRAFTING)
        assert metrics.average_time == 3.0
        assert metrics.min_time == 2.0
        assert metrics.max_time == 4.0
        assert round(metrics.success_rate, 3) == 0.667
        assert metrics.summary()["failures_by_phase"] == {"drafting": 1}


class TestPipelineMonitor:
    def test_events_update_metrics(self):
        monitor = PipelineMonitor()
        monitor.emit(_event(EventType.PIPELINE_STARTED))
        monitor.emit(_event(EventType.PHASE_COMPLETED, Phase.DRAFTING, role="writer", seconds=1.5))
        monitor.emit(_event(EventType.PHASE_COMPLETED, Phase.DRAFTING, role="writer", seconds=0.5))
        monitor.emit(_event(EventType.REVISION_STARTED, Phase.DRAFTING))
        monitor.emit(_event(EventType.APPROVAL_REQUESTED, Phase.DRAFTING))
        monitor.emit(_event(EventType.APPROVAL_RECEIVED, Phase.DRAFTING, action="request_changes"))
        monitor.emit(_event(EventType.APPROVAL_RECEIVED, Phase.DRAFTING, action="reject"))
        monitor.emit(_event(EventType.PIPELINE_FAILED, Phase.REJECTED))

        m = monitor.metrics
        assert m.started == 1
        assert m.failed == 1
        assert m.revision_cycles == 1
        assert m.approvals_requested == 1
        assert m.approvals_granted == 0
        assert m.approvals_rejected == 1
        assert m.agent_calls[AgentRole.WRITER] == 2
        assert m.agent_average_time(AgentRole.WRITER) == 1.0

    def test_listeners(self):
        monitor = PipelineMonitor()
        received = []
        listener = received.append
        monitor.add_listener(listener)
        monitor.emit(_event(EventType.WARNING))
        monitor.remove_listener(listener)
        monitor.emit(_event(EventType.WARNING))
        assert len(received) == 1

    def test_failing_listener_is_isolated(self, caplog):
        monitor = PipelineMonitor()
        received = []

        def broken(event):
            raise RuntimeError("listener bug")

        monitor.add_listener(broken)
        monitor.add_listener(received.append)
        with caplog.at_level(logging.ERROR):
            monitor.emit(_event(EventType.PIPELINE_STARTED))
        assert len(received) == 1
        assert "listener" in caplog.text.lower()


class TestLogEvent:
    def test_failure_logged_as_warning(self, caplog):
        with caplog.at_level(logging.INFO):
            log_event(PipelineEvent(
                type=EventType.PIPELINE_FAILED, document_id="d1", page_name="ApacheKafka",
                phase=Phase.DRAFTING, message="boom",
            ))
        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert "[drafting] boom" in record.getMessage()
