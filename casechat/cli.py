"""Click CLI: loads config, builds the router, and runs chat, evaluation, outline,
position inference and metrics reports from the terminal."""

import asyncio
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from config.config_loader import AppConfig, load_config
from casechat.cases import load_case, load_messages, load_transcripts
from casechat.evaluation import EvaluationParseError, evaluate_conversation
from casechat.metrics import MetricsStore
from casechat.output import (
    print_breakdown,
    print_chat_reply,
    print_evaluation,
    print_metrics_summary,
    print_positions,
    save_outline,
)
from casechat.position import PositionInferrer, result_as_dict
from casechat.providers.base import ProviderError
from casechat.router import LLMRouter
from casechat.session import ChatSession

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_EXIT_WORDS = {"exit", "quit"}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _route_options(temperature: float | None, reasoning_effort: str | None, case_id: str | None) -> dict:
    return {"temperature": temperature, "reasoning_effort": reasoning_effort, "case_id": case_id}


async def _finish(router: LLMRouter) -> None:
    if router.metrics_sink is not None:
        await router.metrics_sink.drain()


def _fail(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {message}")
    sys.exit(1)


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--settings", "settings_path", default=None, type=click.Path(),
              help="Path to settings.yaml (default: bundled config)")
@click.pass_context
def main(ctx: click.Context, verbose: bool, settings_path: str | None) -> None:
    """Case Chat -- route case-study chats and evaluations to OpenAI, Anthropic or Gemini.

    \b
    Examples:
      casechat chat claude-3-5-sonnet-latest --system-file persona.md --case-id malawi
      casechat evaluate gpt-4o chat.json --case case.md --student "Ada Lovelace"
      casechat outline gemini-2.0-flash prompt.md --output ./outlines
      casechat infer-position gpt-4o case.md chats.json --options for,against
      casechat metrics --days 7 --group-by provider
    """
    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config(Path(settings_path)) if settings_path else load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    ctx.obj = config


@main.command()
@click.argument("model_id")
@click.option("--system-file", type=click.Path(exists=True), required=True,
              help="Protagonist system prompt (markdown)")
@click.option("--case-id", default=None, help="Record cache metrics under this case")
@click.option("--temperature", type=float, default=None)
@click.option("--reasoning-effort", default=None)
@click.pass_obj
def chat(
    config: AppConfig,
    model_id: str,
    system_file: str,
    case_id: str | None,
    temperature: float | None,
    reasoning_effort: str | None,
) -> None:
    """Talk to the case protagonist. Type 'exit' to stop."""
    system_prompt = Path(system_file).read_text(encoding="utf-8")

    async def _run() -> None:
        router = LLMRouter.from_config(config)
        session = ChatSession(
            router,
            model_id,
            system_prompt,
            config=_route_options(temperature, reasoning_effort, case_id),
        )
        try:
            while True:
                message = click.prompt("You", prompt_suffix="> ").strip()
                if message.lower() in _EXIT_WORDS:
                    break
                try:
                    result = await session.send_message(message)
                except ProviderError as exc:
                    console.print(f"[bold red]{exc}[/bold red]")
                    continue
                print_chat_reply(result)
        finally:
            await _finish(router)

    asyncio.run(_run())


@main.command()
@click.argument("model_id")
@click.argument("transcript_file", type=click.Path(exists=True))
@click.option("--case", "case_file", type=click.Path(exists=True), required=True,
              help="Case document with frontmatter")
@click.option("--student", "student_name", required=True, help="Student full name")
@click.option("--temperature", type=float, default=None)
@click.option("--reasoning-effort", default=None)
@click.option("--json", "as_json", is_flag=True, help="Print the normalized result as JSON")
@click.pass_obj
def evaluate(
    config: AppConfig,
    model_id: str,
    transcript_file: str,
    case_file: str,
    student_name: str,
    temperature: float | None,
    reasoning_effort: str | None,
    as_json: bool,
) -> None:
    """Score a finished chat (JSON list of {role, content}) with the coach rubric."""
    case = load_case(Path(case_file))
    messages = load_messages(Path(transcript_file))

    async def _run():
        router = LLMRouter.from_config(config)
        try:
            return await evaluate_conversation(
                router,
                model_id,
                messages,
                case,
                student_name,
                config.prompts,
                config.evaluation,
                _route_options(temperature, reasoning_effort, case.case_id),
            )
        finally:
            await _finish(router)

    try:
        result = asyncio.run(_run())
    except (ProviderError, EvaluationParseError) as exc:
        _fail(str(exc))
        return

    if as_json:
        click.echo(json.dumps({
            "criteria": [asdict(c) for c in result.criteria],
            "totalScore": result.total_score,
            "summary": result.summary,
            "hints": result.hints,
        }, indent=2))
    else:
        print_evaluation(result)


@main.command()
@click.argument("model_id")
@click.argument("prompt_file", type=click.Path(exists=True))
@click.option("--output", "output_dir", default="./outlines", help="Directory for the saved outline")
@click.option("--case-id", default=None, help="Record cache metrics under this case")
@click.option("--temperature", type=float, default=None)
@click.option("--reasoning-effort", default=None)
@click.pass_obj
def outline(
    config: AppConfig,
    model_id: str,
    prompt_file: str,
    output_dir: str,
    case_id: str | None,
    temperature: float | None,
    reasoning_effort: str | None,
) -> None:
    """Generate a case outline from a prompt file and save it as markdown."""
    prompt = Path(prompt_file).read_text(encoding="utf-8")

    async def _run():
        router = LLMRouter.from_config(config)
        try:
            return await router.generate_outline(
                model_id, prompt, _route_options(temperature, reasoning_effort, case_id)
            )
        finally:
            await _finish(router)

    try:
        result = asyncio.run(_run())
    except ProviderError as exc:
        _fail(str(exc))
        return

    saved = save_outline(result.text, Path(output_dir), Path(prompt_file).stem)
    console.print(f"\n[dim]Saved to: {saved}[/dim]")


@main.command(name="infer-position")
@click.argument("model_id")
@click.argument("case_file", type=click.Path(exists=True))
@click.argument("chats_file", type=click.Path(exists=True))
@click.option("--options", "options_arg", default=None,
              help="Comma-separated position options (default: from config)")
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON")
@click.pass_obj
def infer_position(
    config: AppConfig,
    model_id: str,
    case_file: str,
    chats_file: str,
    options_arg: str | None,
    as_json: bool,
) -> None:
    """Infer each chat's stance on the case question, one chat at a time."""
    case = load_case(Path(case_file))
    chats = load_transcripts(
        Path(chats_file), config.evaluation.student_label, config.evaluation.protagonist_label
    )
    options = [o.strip() for o in options_arg.split(",") if o.strip()] if options_arg else None

    async def _run():
        router = LLMRouter.from_config(config)
        inferrer = PositionInferrer(router, config.prompts.position_inference, config.inference)
        try:
            return await inferrer.infer_batch(chats, case, options, model_id)
        finally:
            await _finish(router)

    results = asyncio.run(_run())

    if as_json:
        click.echo(json.dumps({k: result_as_dict(v) for k, v in results.items()}, indent=2))
    else:
        print_positions(results, total=len(chats))


@main.command()
@click.option("--case-id", default=None, help="Restrict the report to one case")
@click.option("--days", default=30, show_default=True, type=int)
@click.option("--group-by", default="provider", show_default=True,
              type=click.Choice(["provider", "model", "case", "request_type", "day"]))
@click.option("--recent", default=0, type=int, help="Also list the N most recent requests of --case-id")
@click.pass_obj
def metrics(config: AppConfig, case_id: str | None, days: int, group_by: str, recent: int) -> None:
    """Report prompt-cache hit rates and token usage."""
    store = MetricsStore(
        config.metrics.db_path,
        regular_cost_per_1k=config.metrics.regular_cost_per_1k,
        cached_cost_per_1k=config.metrics.cached_cost_per_1k,
    )
    title = f"Cache Metrics: {case_id}" if case_id else "Cache Metrics"
    print_metrics_summary(store.summary(days=days, case_id=case_id), title=title)
    print_breakdown(store.breakdown(group_by, days=days, case_id=case_id))
    if recent and case_id:
        print_breakdown(store.recent(case_id, limit=recent))


if __name__ == "__main__":
    main()
