"""Text generation: the provider protocol, error classification and the AG2 adapter."""

from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
from typing import Any, Callable, Protocol, TypeVar

import autogen

from .config import build_role_llm_config
from .errors import InvocationCancelled, MalformedResponseError, ProviderTimeoutError, StateError
from .models import AgentRole, ProjectConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

_POLL_INTERVAL = 0.1


class TextGenerator(Protocol):
    """Anything that turns a prompt into a completion string for a role."""

    def generate(self, role: AgentRole, system_prompt: str, prompt: str) -> str: ...


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

TRANSIENT_STATUS_CODES = frozenset({429, 503, 529})

_TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "rate limit",
    "rate_limit",
    "ratelimit",
    "429",
    "503",
    "529",
    "temporarily",
    "overloaded",
)


def _status_code(exc: BaseException) -> int | None:
    status = getattr(exc, "status_code", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def is_transient_error(exc: BaseException) -> bool:
    """Return True if *exc* is worth retrying.

    Timeouts, rate limits and overload responses are transient. So is an error
    with no message at all, since there is nothing to say it is permanent.
    Parse and state errors never are.
    """
    if isinstance(exc, (MalformedResponseError, StateError, InvocationCancelled)):
        return False
    if isinstance(exc, TimeoutError):
        return True
    if _status_code(exc) in TRANSIENT_STATUS_CODES:
        return True

    message = str(exc).strip()
    if not message:
        return True
    lowered = message.lower()
    if any(marker in lowered for marker in _TRANSIENT_MARKERS):
        return True

    name = type(exc).__name__
    return "RateLimit" in name or "Timeout" in name


# ---------------------------------------------------------------------------
# Timeout guard
# ---------------------------------------------------------------------------

def call_with_timeout(
    fn: Callable[[], T],
    timeout: float,
    *,
    cancel: threading.Event | None = None,
) -> T:
    """Run *fn* on a worker thread and wait at most *timeout* seconds.

    The call is abandoned (not interrupted) on timeout or cancellation; the
    worker is left to finish in the background.
    """
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="apub-llm")
    future = executor.submit(fn)
    deadline = time.monotonic() + timeout
    try:
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ProviderTimeoutError(f"provider call exceeded {timeout:g}s")
            done, _ = concurrent.futures.wait([future], timeout=min(remaining, _POLL_INTERVAL))
            if done:
                return future.result()
            if cancel is not None and cancel.is_set():
                raise InvocationCancelled("cancelled while waiting for the provider")
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


# ---------------------------------------------------------------------------
# AG2 adapter
# ---------------------------------------------------------------------------

_AGENT_NAMES: dict[AgentRole, str] = {
    AgentRole.RESEARCHER: "Researcher",
    AgentRole.WRITER: "Writer",
    AgentRole.FACT_CHECKER: "FactChecker",
    AgentRole.EDITOR: "Editor",
    AgentRole.CRITIC: "Critic",
}


def _extract_text(response: Any) -> str:
    """Extract text string from an AG2 chat response."""
    if hasattr(response, "summary") and response.summary:
        return str(response.summary)
    if hasattr(response, "chat_history") and response.chat_history:
        last = response.chat_history[-1]
        return last.get("content", "") if isinstance(last, dict) else str(last)
    return str(response)


class AutogenTextGenerator:
    """``TextGenerator`` backed by one AG2 assistant per call."""

    def __init__(self, config: ProjectConfig):
        self.config = config

    def generate(self, role: AgentRole, system_prompt: str, prompt: str) -> str:
        assistant = autogen.AssistantAgent(
            name=_AGENT_NAMES[role],
            system_message=system_prompt,
            llm_config=build_role_llm_config(role, self.config),
        )
        orchestrator = autogen.UserProxyAgent(
            name="Orchestrator",
            human_input_mode="NEVER",
            code_execution_config=False,
        )
        response = orchestrator.initiate_chat(
            assistant,
            message=prompt,
            max_turns=1,
        )
        text = _extract_text(response)
        logger.debug("%s returned %d chars", _AGENT_NAMES[role], len(text))
        return text
