"""Rich console output and markdown file save for router results."""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from casechat.models import EvaluationResult, NormalizedResult, PositionInferenceResult

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _meta_line(result: NormalizedResult) -> str:
    meta = result.meta
    parts = [f"Provider: {meta.provider.value}"]
    if meta.temperature is not None:
        parts.append(f"Temperature: {meta.temperature}")
    if meta.reasoning_effort:
        parts.append(f"Reasoning effort: {meta.reasoning_effort}")
    if meta.cache_metrics:
        m = meta.cache_metrics
        parts.append(
            f"Tokens: {m.input_tokens} in / {m.cached_tokens} cached / {m.output_tokens} out"
            + (" (cache hit)" if m.cache_hit else "")
        )
    return " | ".join(parts)


def print_chat_reply(result: NormalizedResult, speaker: str = "Protagonist") -> None:
    console.print(Panel(Markdown(result.text), title=f"[bold]{speaker}[/bold]", border_style="cyan"))
    console.print(Text(_meta_line(result), style="dim"))


def print_evaluation(result: EvaluationResult) -> None:
    console.print(Rule("[bold green]Evaluation[/bold green]"))
    table = Table(show_lines=True)
    table.add_column("Criterion")
    table.add_column("Score", justify="right")
    table.add_column("Feedback")
    for criterion in result.criteria:
        table.add_row(criterion.question, f"{criterion.score:g}", criterion.feedback)
    console.print(table)
    console.print(
        Text(f"Total score: {result.total_score:g} | Hints used: {result.hints}", style="bold")
    )
    console.print(Markdown(result.summary))


def print_positions(results: dict[str, PositionInferenceResult], total: int) -> None:
    console.print(Rule("[bold cyan]Inferred Positions[/bold cyan]"))
    table = Table()
    table.add_column("Chat")
    table.add_column("Position")
    table.add_column("Confidence", justify="right")
    table.add_column("Reasoning")
    for chat_id, result in results.items():
        table.add_row(chat_id, result.position, f"{result.confidence:.2f}", result.reasoning)
    console.print(table)
    console.print(Text(f"{len(results)}/{total} chats classified", style="dim"))


def print_metrics_summary(summary: dict[str, Any], title: str = "Cache Metrics") -> None:
    console.print(Rule(f"[bold cyan]{title}[/bold cyan]"))
    hit_rate = summary.get("hit_rate_percent")
    console.print(
        Text(
            f"Last {summary['days_analyzed']} days | "
            f"Requests: {summary['total_requests']} | "
            f"Cache hits: {summary['cache_hits']} "
            f"({hit_rate if hit_rate is not None else 0}%) | "
            f"Tokens: {summary['total_input_tokens']} in / "
            f"{summary['total_cached_tokens']} cached / {summary['total_output_tokens']} out | "
            f"Est. savings: ${summary['estimated_savings_usd']:.4f}"
        )
    )


def print_breakdown(rows: list[dict[str, Any]]) -> None:
    if not rows:
        console.print("[dim]No requests in this window.[/dim]")
        return
    table = Table()
    for column in rows[0]:
        table.add_column(column, justify="right" if column.startswith(("total", "cache", "hit")) else "left")
    for row in rows:
        table.add_row(*("" if v is None else str(v) for v in row.values()))
    console.print(table)


def save_outline(text: str, output_dir: Path, title: str) -> Path:
    """Save a generated outline as a timestamped markdown file.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{_slug(title) or 'outline'}.md"
    filepath.write_text(text, encoding="utf-8")
    logger.info("Outline saved to: %s", filepath)
    return filepath
