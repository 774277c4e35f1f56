"""CLI entry point using Hydra.

Usage examples:
  apub topic="Apache Kafka" audience="backend developers" word_count=1200
  apub topic="Raft consensus" no_approve=true output_file=raft.md
  apub --config-dir . --config-name config topic="CRDTs" approval.after_draft=true
  apub mode=transitions
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import hydra
from omegaconf import DictConfig, OmegaConf
from rich.table import Table

from ._hydra_conf import CLI_ONLY_KEYS, register_configs
from .config import apply_azure_fallbacks
from .logging_config import RichCallbacks, console, setup_logging
from .models import Phase, ProjectConfig, TopicBrief
from .phases import TRANSITIONS, is_terminal, next_in_flow, previous_for_revision

register_configs()

# ---------------------------------------------------------------------------
# Hydra DictConfig → Pydantic ProjectConfig bridge
# ---------------------------------------------------------------------------


def _to_project_config(cfg: DictConfig) -> ProjectConfig:
    """Convert a Hydra *DictConfig* to a Pydantic ``ProjectConfig``.

    CLI-only keys (``mode``, ``topic``, etc.) are stripped before validation.
    Azure credential env-var fallbacks are applied afterwards.
    """
    container: dict[str, Any] = OmegaConf.to_container(cfg, resolve=True)  # type: ignore[assignment]
    for key in CLI_ONLY_KEYS:
        container.pop(key, None)
    config = ProjectConfig.model_validate(container)
    return apply_azure_fallbacks(config)


def _to_topic_brief(cfg: DictConfig) -> TopicBrief:
    return TopicBrief(
        topic=cfg.topic,
        target_audience=cfg.get("audience", "general readers"),
        target_word_count=cfg.get("word_count", 800),
        required_sections=list(cfg.get("sections", [])),
        related_pages=list(cfg.get("related_pages", [])),
        domain_context=cfg.get("context", ""),
        specific_goal=cfg.get("goal", ""),
    )


# ---------------------------------------------------------------------------
# Mode handlers
# ---------------------------------------------------------------------------


def _run_mode(cfg: DictConfig) -> None:
    if not cfg.get("topic"):
        console.print("[red]topic is required for run mode, e.g. topic=\"Apache Kafka\"[/]")
        sys.exit(1)

    config = _to_project_config(cfg)
    brief = _to_topic_brief(cfg)

    from .monitoring import PipelineMonitor, log_event
    from .pipeline import Pipeline

    callbacks = RichCallbacks(interactive=not cfg.no_approve)
    monitor = PipelineMonitor()
    if cfg.get("verbose", False):
        monitor.add_listener(log_event)
    pipeline = Pipeline(config, approval=callbacks, callbacks=callbacks, monitor=monitor)

    console.print(f"[bold]Publishing '{brief.topic}'...[/]")
    result = pipeline.run(brief)
    document = result.document

    snapshot_file = cfg.get("snapshot_file")
    if snapshot_file and document is not None:
        Path(snapshot_file).write_text(json.dumps(document.snapshot(), indent=2), encoding="utf-8")
        console.print(f"  Snapshot: {snapshot_file}")

    if result.success:
        article = document.final_article
        console.print("\n[bold green]Article published![/]")
        console.print(f"  Page: {document.page_name}")
        console.print(f"  Title: {article.metadata.title}")
        console.print(f"  Words: {article.word_count()}")
        console.print(f"  Revisions: {document.revision_cycles}")
        console.print(f"  Time: {result.total_time:.1f}s")
        output_file = cfg.get("output_file")
        if output_file:
            Path(output_file).write_text(article.content, encoding="utf-8")
            console.print(f"  Written to {output_file}")
        return

    if result.rejection_reason:
        console.print(f"\n[bold yellow]Article rejected:[/] {result.rejection_reason}")
    else:
        console.print(f"\n[bold red]Pipeline failed at {result.failed_at.value if result.failed_at else '?'}.[/]")
        console.print(f"  [red]{result.error}[/]")
    sys.exit(1)


def _transitions_mode(cfg: DictConfig) -> None:
    table = Table(title="Phase transitions", show_lines=True)
    table.add_column("Phase", style="cyan")
    table.add_column("Next in flow")
    table.add_column("Revision target")
    table.add_column("Allowed targets")
    for phase in Phase:
        nxt = next_in_flow(phase)
        back = previous_for_revision(phase)
        targets = sorted(t.value for t in TRANSITIONS[phase])
        table.add_row(
            phase.value + (" (terminal)" if is_terminal(phase) else ""),
            nxt.value if nxt else "-",
            back.value if back else "-",
            ", ".join(targets) or "-",
        )
    console.print(table)


_MODE_DISPATCH: dict[str, Any] = {
    "run": _run_mode,
    "transitions": _transitions_mode,
}


# ---------------------------------------------------------------------------
# Hydra entry point
# ---------------------------------------------------------------------------


@hydra.main(config_path="conf", config_name="config", version_base=None)
def hydra_entry(cfg: DictConfig) -> None:
    """Hydra-managed CLI entry point."""
    setup_logging(verbose=cfg.get("verbose", False), quiet=cfg.get("quiet", False))

    mode = cfg.get("mode", "run")
    handler = _MODE_DISPATCH.get(mode)
    if handler is None:
        console.print(f"[red]Unknown mode: {mode!r}. Choose from: {', '.join(_MODE_DISPATCH)}[/]")
        sys.exit(1)

    handler(cfg)


def main() -> None:
    """Package entry point (``[project.scripts]`` target)."""
    hydra_entry()  # pylint: disable=no-value-for-parameter
