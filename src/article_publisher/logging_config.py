"""Rich console setup, pipeline progress callbacks and the console approval prompt."""

from __future__ import annotations

import logging
from typing import Protocol

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .models import ApprovalAction, ApprovalDecision, ApprovalRequest, Phase

console = Console()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def setup_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Configure root logger with Rich handler."""
    level = logging.DEBUG if verbose else (logging.ERROR if quiet else logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


# ---------------------------------------------------------------------------
# Pipeline callbacks protocol
# ---------------------------------------------------------------------------


class PipelineCallbacks(Protocol):
    """Protocol for pipeline progress reporting."""

    def on_phase_start(self, phase: Phase, description: str) -> None: ...
    def on_phase_end(self, phase: Phase, success: bool) -> None: ...
    def on_revision(self, source: Phase, target: Phase, cycle: int, reason: str) -> None: ...
    def on_warning(self, message: str) -> None: ...
    def on_error(self, message: str) -> None: ...


class NullCallbacks:
    """Silent callbacks for library use and tests."""

    def on_phase_start(self, phase: Phase, description: str) -> None:
        pass

    def on_phase_end(self, phase: Phase, success: bool) -> None:
        pass

    def on_revision(self, source: Phase, target: Phase, cycle: int, reason: str) -> None:
        pass

    def on_warning(self, message: str) -> None:
        pass

    def on_error(self, message: str) -> None:
        pass


class RichCallbacks:
    """Rich-based implementation of PipelineCallbacks.

    Also works as an approval channel: with ``interactive=True`` it shows
    the checkpoint and asks on the console, otherwise it approves.
    """

    def __init__(self, *, interactive: bool = False) -> None:
        self.interactive = interactive

    @property
    def retry_on_timeout(self) -> bool:
        # an abandoned console prompt keeps reading stdin
        return not self.interactive

    def on_phase_start(self, phase: Phase, description: str) -> None:
        console.rule(f"[bold blue]{phase.display_name}[/]: {description}")

    def on_phase_end(self, phase: Phase, success: bool) -> None:
        status = "[green]OK[/]" if success else "[red]FAILED[/]"
        console.print(f"  Phase {phase.display_name}: {status}")

    def on_revision(self, source: Phase, target: Phase, cycle: int, reason: str) -> None:
        console.print(
            f"  [cyan]Revision {cycle}:[/] {source.display_name} -> {target.display_name}"
            + (f" [dim]({reason})[/]" if reason else "")
        )

    def on_warning(self, message: str) -> None:
        console.print(f"  [yellow]WARNING:[/] {message}")

    def on_error(self, message: str) -> None:
        console.print(f"  [red]ERROR:[/] {message}")

    def request_approval(self, request: ApprovalRequest) -> ApprovalDecision:
        if not self.interactive:
            return ApprovalDecision(action=ApprovalAction.APPROVE, approver="auto")

        document = request.document
        table = Table(title="Approval Required", show_lines=True)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("Topic", document.brief.topic)
        table.add_row("Phase", request.phase.display_name)
        table.add_row("Next", request.next_phase.display_name)
        table.add_row("Revisions", str(document.revision_cycles))
        table.add_row("Summary", request.summary)

        console.print()
        console.print(table)
        preview = document.current_content()
        if preview:
            console.print("\n[bold]Content preview:[/]")
            console.print(preview[:500] + ("..." if len(preview) > 500 else ""))
        console.print()

        while True:
            choice = console.input("[bold]\\[a]pprove / \\[c]hanges / \\[r]eject:[/] ").strip().lower()
            if choice in ("a", "approve"):
                return ApprovalDecision(action=ApprovalAction.APPROVE, approver="console")
            elif choice in ("r", "reject"):
                reason = console.input("Reason (optional): ").strip()
                return ApprovalDecision(action=ApprovalAction.REJECT, feedback=reason, approver="console")
            elif choice in ("c", "changes"):
                console.print("Describe the changes (empty line to finish):")
                lines: list[str] = []
                while True:
                    line = console.input("")
                    if not line:
                        break
                    lines.append(line)
                return ApprovalDecision(
                    action=ApprovalAction.REQUEST_CHANGES,
                    feedback="\n".join(lines),
                    approver="console",
                )
            else:
                console.print("[yellow]Please enter 'a', 'c', or 'r'.[/]")
