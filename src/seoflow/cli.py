"""Command line interface for the seoflow pipeline."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Sequence

from dotenv import load_dotenv

from .config import SeoflowConfig
from .content.generator import LangChainContentGenerator
from .content.metrics import DocumentStats
from .content.orchestrator import StageOrchestrator
from .errors import SeoflowError
from .io import export_document, export_keywords, load_input_resource
from .llm.cost import BudgetExceededError
from .llm.images import OpenAIImageBackend
from .llm.providers import ProviderError, build_provider
from .pipeline.schema import Keyword
from .pipeline.stages import Stage, describe
from .pipeline.workspace import Workspace

__all__ = ["main", "build_parser"]

logger = logging.getLogger(__name__)

GENERATABLE_STAGES = (
    Stage.PERSONA,
    Stage.KEYWORD_SET,
    Stage.ANALYSIS,
    Stage.OBJECTIVE_SET,
    Stage.TITLE_SET,
    Stage.META_DESCRIPTION_SET,
    Stage.SAPO_SET,
    Stage.CTA_SET,
    Stage.OUTLINE,
    Stage.IMAGE_SET,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="seoflow",
        description="Staged SEO article pipeline: generate, select and assemble article content.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        allow_abbrev=False,
    )
    parser.add_argument("--state", default=None, help="Path to the workspace state file.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("status", help="Show the active selection of every stage.")
    subparsers.add_parser("stages", help="Show each stage and the stages it invalidates.")

    history = subparsers.add_parser("history", help="List generated sets for a stage under the active context.")
    history.add_argument("stage")

    select = subparsers.add_parser("select", help="Select artifact id(s) for a stage (clears downstream stages).")
    select.add_argument("stage")
    select.add_argument("ids", nargs="*", help="Artifact id(s); omit to clear the stage.")

    toggle = subparsers.add_parser("toggle", help="Add or remove one id in a multi-select stage.")
    toggle.add_argument("stage")
    toggle.add_argument("id")

    product = subparsers.add_parser("add-product", help="Add a product and make it the active one.")
    product.add_argument("--name", required=True)
    product.add_argument("--price", default=None)
    product.add_argument("--desired-outcome", dest="desired_outcome", default=None)
    product.add_argument("--location", default=None)

    generate = subparsers.add_parser(
        "generate",
        help="Generate candidates for a stage from the active selections.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    generate.add_argument("stage", choices=[stage.value for stage in GENERATABLE_STAGES])
    generate.add_argument(
        "--persona-model",
        dest="persona_models",
        action="append",
        default=None,
        help="Persona framework to include (repeatable).",
    )
    generate.add_argument("--location", default=None, help="Target market for keyword research.")
    generate.add_argument("--content-file", dest="content_file", default=None, help="Source content to analyse.")
    generate.add_argument("--prompt", dest="prompts", action="append", default=None, help="Image prompt (repeatable).")
    _register_llm_arguments(generate)

    write = subparsers.add_parser(
        "write",
        help="Write the article in three parts and save it to the library.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    write.add_argument("--style", dest="writing_style", default=None, help="Writing style identifier.")
    write.add_argument("--include-faq", action="store_true")
    write.add_argument("--inverted-pyramid", dest="use_inverted_pyramid", action="store_true")
    write.add_argument("--ai-overview", dest="optimize_for_ai_overview", action="store_true")
    write.add_argument("--tables", dest="use_tables", action="store_true")
    write.add_argument("--quotes", dest="use_quotes", action="store_true")
    write.add_argument("--wikipedia-links", dest="add_wikipedia_links", action="store_true")
    write.add_argument("--internal-link", dest="internal_links", action="append", default=[])
    write.add_argument("--external-link", dest="external_links", action="append", default=[])
    write.add_argument("--no-save", dest="save", action="store_false", help="Print the body instead of saving.")
    _register_llm_arguments(write)

    export_kw = subparsers.add_parser("export-keywords", help="Export the active keyword set as CSV.")
    export_kw.add_argument("--output", required=True)

    export_article = subparsers.add_parser("export-article", help="Export a saved article as Markdown.")
    export_article.add_argument("id", nargs="?", default=None)
    export_article.add_argument("--output-dir", dest="output_dir", default=None)

    edit = subparsers.add_parser("edit-article", help="Replace the body of a saved article.")
    edit.add_argument("id")
    edit.add_argument("--body-file", dest="body_file", required=True)

    metrics = subparsers.add_parser("metrics", help="Word count and reading time of a saved article or file.")
    metrics.add_argument("target", nargs="?", default=None, help="Article id or text file; defaults to the active article.")

    subparsers.add_parser("library", help="List saved articles, newest first.")

    evaluate = subparsers.add_parser("evaluate", help="Run the SEO checklist against a saved article.")
    evaluate.add_argument("id", nargs="?", default=None)
    _register_llm_arguments(evaluate)

    prefs = subparsers.add_parser("prefs", help="Show or update preferences.")
    prefs.add_argument("--language", choices=["en", "vi"], default=None)
    prefs.add_argument("--theme", choices=["light", "dark"], default=None)
    prefs.add_argument("--user-name", dest="user_name", default=None)

    return parser


def _register_llm_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--model", default=None, help="Chat model name (defaults to SEOFLOW_MODEL).")
    parser.add_argument("--base-url", dest="base_url", default=None, help="Base URL for API-compatible providers.")
    parser.add_argument("--temperature", type=float, default=None, help="Sampling temperature.")
    parser.add_argument("--max-tokens", dest="max_tokens", type=int, default=None, help="Maximum response tokens.")
    parser.add_argument("--budget-usd", dest="budget_usd", type=float, default=None, help="Spend budget in USD.")


def _build_generator(config: SeoflowConfig, args: argparse.Namespace, language: str) -> LangChainContentGenerator:
    if getattr(args, "budget_usd", None) is not None:
        config.budget.limit_usd = args.budget_usd
    provider = build_provider(
        **config.as_provider_kwargs(
            model=args.model,
            base_url=args.base_url,
            temperature=args.temperature,
            max_tokens=args.max_tokens,
        )
    )
    image_backend = OpenAIImageBackend(
        model=config.images.model,
        size=config.images.size,
        quality=config.images.quality,
        api_key=config.llm.resolve_api_key(),
        base_url=config.llm.base_url,
    )
    return LangChainContentGenerator(
        provider,
        language=language,
        cost_tracker=config.cost_tracker(),
        image_backend=image_backend,
    )


def _orchestrator(config: SeoflowConfig, workspace: Workspace, args: argparse.Namespace) -> StageOrchestrator:
    generator = _build_generator(config, args, workspace.preferences.language)
    return StageOrchestrator(workspace, generator, words_per_minute=config.writing.words_per_minute)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _log_usage(orchestrator: StageOrchestrator) -> None:
    tracker = getattr(orchestrator.generator, "cost_tracker", None)
    if tracker is not None:
        logger.info("LLM usage:\n%s", tracker.summary())


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


def _cmd_status(config: SeoflowConfig, workspace: Workspace, args: argparse.Namespace) -> int:
    for stage, value in workspace.selection.snapshot().items():
        if isinstance(value, list):
            shown = ", ".join(value) if value else "-"
        else:
            shown = value or "-"
        print(f"{stage.value:<22} {shown}")
    return 0


def _cmd_stages(config: SeoflowConfig, workspace: Workspace, args: argparse.Namespace) -> int:
    for stage, downstream in describe(workspace.graph).items():
        print(f"{stage:<22} -> {', '.join(downstream) if downstream else '(none)'}")
    return 0


def _cmd_history(config: SeoflowConfig, workspace: Workspace, args: argparse.Namespace) -> int:
    sets = workspace.history(args.stage)
    if not sets:
        print("No generated sets for the active context.")
        return 0
    for artifact_set in sets:
        print(f"{artifact_set.id}  {artifact_set.created_at}  ({len(artifact_set.options)} options)")
        for option in artifact_set.options:
            print(f"  - {option.id}: {_summarise(option.payload)}")
    return 0


def _summarise(payload: dict[str, Any]) -> str:
    for key in ("title", "term", "description", "content", "summary", "name", "url"):
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value if len(value) <= 80 else value[:77] + "..."
    return ", ".join(sorted(payload))


def _cmd_select(config: SeoflowConfig, workspace: Workspace, args: argparse.Namespace) -> int:
    descriptor = workspace.graph.descriptor(args.stage)
    value: Any = list(args.ids) if descriptor.is_multi else (args.ids[0] if args.ids else None)
    if not descriptor.is_multi and len(args.ids) > 1:
        raise ValueError(f"Stage '{descriptor.stage.value}' accepts a single id")
    cleared = workspace.select(descriptor.stage, value)
    if cleared:
        print(f"Cleared: {', '.join(stage.value for stage in cleared)}")
    return 0


def _cmd_toggle(config: SeoflowConfig, workspace: Workspace, args: argparse.Namespace) -> int:
    selected = workspace.toggle(args.stage, args.id)
    print(", ".join(selected) if selected else "(none selected)")
    return 0


def _cmd_add_product(config: SeoflowConfig, workspace: Workspace, args: argparse.Namespace) -> int:
    artifact = workspace.add_product(
        {
            "name": args.name,
            "price": args.price,
            "desired_outcome": args.desired_outcome,
            "location": args.location,
        }
    )
    print(artifact.id)
    return 0


def _cmd_generate(config: SeoflowConfig, workspace: Workspace, args: argparse.Namespace) -> int:
    orchestrator = _orchestrator(config, workspace, args)
    stage = Stage(args.stage)
    runners: dict[Stage, Callable[[], Any]] = {
        Stage.PERSONA: lambda: orchestrator.generate_persona(args.persona_models or ("standard",)),
        Stage.KEYWORD_SET: lambda: orchestrator.generate_keywords(args.location),
        Stage.ANALYSIS: lambda: orchestrator.generate_analysis(_analysis_content(args)),
        Stage.OBJECTIVE_SET: orchestrator.generate_objectives,
        Stage.TITLE_SET: orchestrator.generate_titles,
        Stage.META_DESCRIPTION_SET: orchestrator.generate_meta_descriptions,
        Stage.SAPO_SET: orchestrator.generate_sapos,
        Stage.CTA_SET: orchestrator.generate_ctas,
        Stage.OUTLINE: orchestrator.generate_outline,
        Stage.IMAGE_SET: lambda: orchestrator.generate_images(args.prompts, prompt_limit=config.images.prompt_limit),
    }
    artifact_set = asyncio.run(runners[stage]())
    _log_usage(orchestrator)
    if artifact_set is None:
        print(f"Error: generation for '{stage.value}' returned no result", file=sys.stderr)
        return 1
    print(artifact_set.id)
    for option in artifact_set.options:
        print(f"  - {option.id}: {_summarise(option.payload)}")
    return 0


def _analysis_content(args: argparse.Namespace) -> str:
    if not args.content_file:
        raise ValueError("--content-file is required for the analysis stage")
    return load_input_resource(args.content_file).content


def _cmd_write(config: SeoflowConfig, workspace: Workspace, args: argparse.Namespace) -> int:
    orchestrator = _orchestrator(config, workspace, args)
    option_fields = (
        "include_faq",
        "use_inverted_pyramid",
        "optimize_for_ai_overview",
        "use_tables",
        "use_quotes",
        "add_wikipedia_links",
        "internal_links",
        "external_links",
    )
    overrides = {name: getattr(args, name) for name in option_fields}
    if args.writing_style:
        overrides["writing_style"] = args.writing_style
    options = config.writing.article_options(**overrides)

    assembler, state = asyncio.run(orchestrator.write_article(options=options))
    _log_usage(orchestrator)
    if state.get("failed"):
        print(f"Error: article parts failed: {', '.join(state['failed'])}", file=sys.stderr)
        return 1
    if not args.save:
        print(state.get("body", ""))
        return 0
    artifact = orchestrator.save_article(assembler)
    stats = state.get("stats") or {}
    print(artifact.id)
    print(f"{stats.get('word_count', 0)} words, {stats.get('reading_time_minutes', 0)} min read")
    return 0


def _cmd_export_keywords(config: SeoflowConfig, workspace: Workspace, args: argparse.Namespace) -> int:
    keyword_set = workspace.selection.selected_set(Stage.KEYWORD_SET)
    if keyword_set is None:
        raise ValueError("No keyword set is selected")
    payloads = (workspace.store.payload(keyword_set.collection, option.id) for option in keyword_set.options)
    keywords = [payload for payload in payloads if isinstance(payload, Keyword)]
    print(export_keywords(keywords, args.output))
    return 0


def _active_document(workspace: Workspace, article_id: str | None):
    article_id = article_id or workspace.selection.get(Stage.ARTICLE)  # type: ignore[assignment]
    document = workspace.document(article_id)
    if document is None:
        raise ValueError(f"No saved article '{article_id}'" if article_id else "No article is selected")
    return document


def _cmd_export_article(config: SeoflowConfig, workspace: Workspace, args: argparse.Namespace) -> int:
    document = _active_document(workspace, args.id)
    directory = Path(args.output_dir) if args.output_dir else config.export_root
    print(export_document(document, directory))
    return 0


def _cmd_edit_article(config: SeoflowConfig, workspace: Workspace, args: argparse.Namespace) -> int:
    body = load_input_resource(args.body_file).content
    try:
        workspace.edit_document_body(args.id, body)
    except KeyError as exc:
        raise ValueError(exc.args[0]) from exc
    return 0


def _cmd_metrics(config: SeoflowConfig, workspace: Workspace, args: argparse.Namespace) -> int:
    words_per_minute = config.writing.words_per_minute
    target = args.target
    if target and Path(target).exists():
        stats = DocumentStats.for_body(load_input_resource(target).content, words_per_minute=words_per_minute)
    else:
        document = _active_document(workspace, target)
        image_count = len(document.images) + (1 if document.feature_image else 0)
        stats = DocumentStats.for_body(document.body, image_count=image_count, words_per_minute=words_per_minute)
    _print_json(stats.to_dict())
    return 0


def _cmd_library(config: SeoflowConfig, workspace: Workspace, args: argparse.Namespace) -> int:
    documents = workspace.documents()
    if not documents:
        print("Library is empty.")
        return 0
    for artifact, document in documents:
        print(f"{artifact.id}  {artifact.created_at}  {document.title}")
    return 0


def _cmd_evaluate(config: SeoflowConfig, workspace: Workspace, args: argparse.Namespace) -> int:
    orchestrator = _orchestrator(config, workspace, args)
    result = asyncio.run(orchestrator.evaluate_article(args.id))
    if result is None:
        print("Error: SEO evaluation returned no result", file=sys.stderr)
        return 1
    passed, total = result.score()
    _print_json({"score": f"{passed}/{total}", **result.model_dump(mode="json", by_alias=True)})
    return 0


def _cmd_prefs(config: SeoflowConfig, workspace: Workspace, args: argparse.Namespace) -> int:
    changes = {
        name: value
        for name, value in (("language", args.language), ("theme", args.theme), ("user_name", args.user_name))
        if value is not None
    }
    preferences = workspace.update_preferences(**changes) if changes else workspace.preferences
    _print_json(preferences.to_dict())
    return 0


COMMANDS: dict[str, Callable[[SeoflowConfig, Workspace, argparse.Namespace], int]] = {
    "status": _cmd_status,
    "stages": _cmd_stages,
    "history": _cmd_history,
    "select": _cmd_select,
    "toggle": _cmd_toggle,
    "add-product": _cmd_add_product,
    "generate": _cmd_generate,
    "write": _cmd_write,
    "export-keywords": _cmd_export_keywords,
    "export-article": _cmd_export_article,
    "edit-article": _cmd_edit_article,
    "metrics": _cmd_metrics,
    "library": _cmd_library,
    "evaluate": _cmd_evaluate,
    "prefs": _cmd_prefs,
}


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    command = COMMANDS.get(args.command or "")
    if command is None:
        parser.print_help()
        return 0

    try:
        config = SeoflowConfig()
        if args.state:
            config = config.with_paths(state_path=args.state)
        workspace = Workspace.open(config.state_path, storage_key=config.storage_key)
        return command(config, workspace, args)
    except (SeoflowError, ProviderError, BudgetExceededError, FileNotFoundError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
