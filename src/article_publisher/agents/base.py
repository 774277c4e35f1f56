"""Uniform agent contract and the shared retry wrapper.

An agent is four plain functions bundled in ``PhaseAgent``: build the prompt
from the document, call the provider, map the recovered response into a phase
output, and sanity-check the document afterwards. ``invoke_agent`` runs the
first three for every agent the same way.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from tenacity import RetryCallState, RetryError, Retrying, retry_if_exception, stop_after_attempt

from ..document import Document
from ..errors import (
    AgentError,
    InvocationCancelled,
    RetryExhaustedError,
    StateError,
)
from ..llm import TextGenerator, call_with_timeout, is_transient_error
from ..models import AgentRole, Contribution, Phase, PhaseOutput, RetryConfig
from ..recovery import ResponseReader, parse_response

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PhaseAgent:
    role: AgentRole
    phase: Phase
    system_prompt: str
    build_input: Callable[[Document], str]
    map_output: Callable[[ResponseReader, Document], PhaseOutput]
    validate: Callable[[Document], bool]


def revision_context(document: Document) -> str:
    """Prompt block telling an agent why it is being asked again, if it is."""
    if not document.revision_notes:
        return ""
    return (
        f"\n--- REVISION REQUESTED (cycle {document.revision_cycles}) ---\n"
        f"{document.revision_notes[-1]}\n"
        "Address these points in this pass.\n"
    )


def bullet_list(items) -> str:
    return "".join(f"- {item}\n" for item in items)


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------

def _backoff(retry: RetryConfig) -> Callable[[RetryCallState], float]:
    def wait(retry_state: RetryCallState) -> float:
        return retry.delay_for(retry_state.attempt_number)
    return wait


def call_with_retry(
    fn: Callable[[], T],
    retry: RetryConfig,
    *,
    sleep: Callable[[float], None] = time.sleep,
    cancel: threading.Event | None = None,
    label: str = "call",
) -> tuple[T, int]:
    """Call *fn* until it succeeds, retrying transient errors with backoff.

    Returns ``(result, attempts)``. Non-transient errors propagate on the
    first occurrence; running out of attempts raises ``RetryExhaustedError``
    chained to the last error.
    """

    def check_cancel(retry_state: RetryCallState) -> None:
        if cancel is not None and cancel.is_set():
            raise InvocationCancelled(f"{label} cancelled before attempt {retry_state.attempt_number}")

    def log_retry(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        logger.warning(
            "%s failed (attempt %d/%d): %s; retrying in %.1fs",
            label, retry_state.attempt_number, retry.max_attempts,
            str(error) or type(error).__name__, retry_state.next_action.sleep,
        )

    retrying = Retrying(
        stop=stop_after_attempt(retry.max_attempts),
        wait=_backoff(retry),
        retry=retry_if_exception(is_transient_error),
        sleep=sleep,
        before=check_cancel,
        before_sleep=log_retry,
    )
    try:
        for attempt in retrying:
            with attempt:
                result = fn()
    except RetryError as e:
        last = e.last_attempt
        last_error = last.exception()
        raise RetryExhaustedError(last.attempt_number, last_error) from last_error
    return result, attempt.retry_state.attempt_number


# ---------------------------------------------------------------------------
# Invocation
# ---------------------------------------------------------------------------

def invoke_agent(
    agent: PhaseAgent,
    document: Document,
    generator: TextGenerator,
    retry: RetryConfig,
    *,
    timeout: float = 300.0,
    sleep: Callable[[float], None] = time.sleep,
    cancel: threading.Event | None = None,
) -> PhaseOutput:
    """Run *agent* against *document* and attach what it produces.

    On success exactly one output is attached and one ``Contribution`` is
    recorded. On any failure nothing is attached and ``AgentError`` is raised
    (``InvocationCancelled`` passes through untouched).
    """
    if document.phase is not agent.phase:
        raise StateError(
            document.phase,
            message=f"{agent.role.display_name} works in {agent.phase.value}, document is {document.phase.value}",
        )

    prompt = agent.build_input(document)
    start = time.monotonic()

    def _generate() -> str:
        return call_with_timeout(
            lambda: generator.generate(agent.role, agent.system_prompt, prompt),
            timeout,
            cancel=cancel,
        )

    try:
        raw, attempts = call_with_retry(
            _generate, retry, sleep=sleep, cancel=cancel, label=agent.role.display_name,
        )
    except InvocationCancelled:
        raise
    except RetryExhaustedError as e:
        raise AgentError(agent.role, str(e), e.last_error) from e.last_error
    except Exception as e:
        raise AgentError(agent.role, f"provider call failed: {e}", e) from e

    try:
        reader = parse_response(raw)
        output = agent.map_output(reader, document)
    except InvocationCancelled:
        raise
    except Exception as e:
        raise AgentError(agent.role, f"unusable response: {e}", e) from e

    document.attach(output)
    duration = time.monotonic() - start
    document.add_contribution(Contribution(
        role=agent.role,
        phase=agent.phase,
        duration=duration,
        metrics={"response_length": len(raw or ""), "attempts": attempts},
    ))
    logger.info("%s finished in %.1fs (%d attempt(s))", agent.role.display_name, duration, attempts)
    return output
