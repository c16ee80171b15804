"""CLI entry point - ``review-router review`` and ``review-router prune-cache``."""

from __future__ import annotations

import os

# Phase 1: Singleton logging - before any transitive litellm imports
from review_router.logging_config import setup_logging

setup_logging(os.environ.get("LOG_LEVEL", "INFO"))

import argparse  # noqa: E402
import asyncio  # noqa: E402
import json  # noqa: E402
import logging  # noqa: E402
import sys  # noqa: E402
from datetime import timedelta  # noqa: E402
from pathlib import Path  # noqa: E402

from review_router import __version__  # noqa: E402
from review_router.config import (  # noqa: E402
    ReviewConfig,
    Settings,
    load_review_config,
    parse_review_config,
)
from review_router.constants import RunStatus  # noqa: E402
from review_router.errors import (  # noqa: E402
    ReviewError,
    ValidationError,
    ValidationErrorCode,
)
from review_router.logging_config import (  # noqa: E402
    cleanup_third_party_handlers,
)
from review_router.report.summary import RunSummary  # noqa: E402
from review_router.results import Err, Ok, Result  # noqa: E402
from review_router.trust import (  # noqa: E402
    PullRequestContext,
    build_pr_context_ado,
    build_pr_context_github,
)
from review_router.validation import parse_git_ref  # noqa: E402

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = ".ai-review.yml"

EXIT_OK = 0
EXIT_GATE_FAILED = 1
EXIT_ERROR = 2

_EXIT_CODES = {
    RunStatus.SUCCESS: EXIT_OK,
    RunStatus.SKIPPED: EXIT_OK,
    RunStatus.FAILURE: EXIT_GATE_FAILED,
    RunStatus.ERROR: EXIT_ERROR,
}


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"review-router {__version__}")
        return

    if args.command == "review":
        sys.exit(_run_review(args))
    elif args.command == "prune-cache":
        sys.exit(_run_prune(args))
    else:
        parser.print_help()


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="review-router",
        description=(
            "Runs configured review agents over a pull-request diff "
            "and writes a findings summary."
        ),
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )

    sub = parser.add_subparsers(dest="command")

    review = sub.add_parser("review", help="Review a pull-request diff")
    review.add_argument(
        "--diff",
        required=True,
        help="Path to unified diff text (use - for stdin)",
    )
    review.add_argument(
        "--repo",
        default=".",
        help="Repository checkout root (default: .)",
    )
    review.add_argument(
        "--config",
        "-c",
        default=None,
        help=(
            f"Review config path (default: {DEFAULT_CONFIG_FILENAME} "
            "in the repo, or built-in defaults)"
        ),
    )
    source = review.add_mutually_exclusive_group()
    source.add_argument(
        "--event",
        default=None,
        help="GitHub pull_request event payload (JSON file)",
    )
    source.add_argument(
        "--ado",
        action="store_true",
        help="Read PR context from Azure Pipelines variables",
    )
    review.add_argument(
        "--pr",
        type=int,
        default=0,
        help="PR number when neither --event nor --ado is given",
    )
    review.add_argument(
        "--head-sha",
        default=None,
        help="Head commit when neither --event nor --ado is given",
    )
    review.add_argument(
        "--summary",
        "-o",
        default="review-summary.json",
        help="Summary output path (default: review-summary.json)",
    )
    review.add_argument(
        "--markdown",
        action="store_true",
        help="Also print a markdown digest to stdout",
    )

    sub.add_parser("prune-cache", help="Delete expired cache entries")

    return parser


def _load_config(args: argparse.Namespace, repo: Path) -> Result[ReviewConfig, ReviewError]:
    if args.config is not None:
        return load_review_config(Path(args.config))
    default_path = repo / DEFAULT_CONFIG_FILENAME
    if default_path.is_file():
        return load_review_config(default_path)
    logger.info("event=config_defaults reason=no_config_file")
    return parse_review_config({})


def _load_pr(args: argparse.Namespace) -> Result[PullRequestContext, ReviewError]:
    if args.event:
        try:
            payload = json.loads(Path(args.event).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            return Err(
                ValidationError(
                    f"Cannot read event payload: {exc}",
                    ValidationErrorCode.INVALID_INPUT,
                    {"path": args.event},
                    cause=exc,
                )
            )
        return build_pr_context_github(payload)

    if args.ado:
        match build_pr_context_ado(os.environ):
            case Ok(value=None):
                return Err(
                    ValidationError(
                        "Not a pull-request build",
                        ValidationErrorCode.INVALID_INPUT,
                        {"source": "ado"},
                    )
                )
            case Ok(value=ctx):
                return Ok(ctx)
            case Err() as err:
                return err

    head_sha = None
    if args.head_sha:
        match parse_git_ref(args.head_sha):
            case Ok(value=ref):
                head_sha = ref
            case Err() as err:
                return err
    return Ok(
        PullRequestContext(
            number=args.pr,
            head_repo="local",
            base_repo="local",
            author=os.environ.get("USER", "local"),
            is_fork=False,
            is_draft=False,
            head_sha=head_sha,
        )
    )


def _read_diff(source: str) -> Result[str, ReviewError]:
    try:
        if source == "-":
            return Ok(sys.stdin.read())
        return Ok(Path(source).read_text(encoding="utf-8", errors="replace"))
    except OSError as exc:
        return Err(
            ValidationError(
                f"Cannot read diff: {exc}",
                ValidationErrorCode.INVALID_PATH,
                {"path": source},
                cause=exc,
            )
        )


def _run_review(args: argparse.Namespace) -> int:
    """Execute the review command. Always writes a summary."""
    from review_router.agents import build_default_registry
    from review_router.observability import initialize_tracing
    from review_router.pipeline.review import run_review

    settings = Settings()
    repo = Path(args.repo).resolve()
    summary_path = Path(args.summary)
    pr_number: int | None = None

    try:
        pr = _load_pr(args)
        config = _load_config(args, repo)
        raw_diff = _read_diff(args.diff)
        outcome: Result[RunSummary, ReviewError]
        match (pr, config, raw_diff):
            case (Ok(value=pr_ctx), Ok(value=cfg), Ok(value=diff_text)):
                pr_number = pr_ctx.number
                registry = build_default_registry(settings)
                # Phase 2: litellm is loaded by now
                cleanup_third_party_handlers()
                outcome = asyncio.run(
                    run_review(
                        pr_ctx,
                        cfg,
                        diff_text,
                        registry,
                        settings=settings,
                        repo_path=repo,
                        dispatcher=initialize_tracing(settings),
                    )
                )
            case _:
                outcome = next(r for r in (pr, config, raw_diff) if isinstance(r, Err))
    except Exception as exc:  # noqa: BLE001
        logger.exception("event=review_crashed")
        outcome = Err(
            ReviewError(f"Unexpected failure: {exc}", "INTERNAL_ERROR", cause=exc)
        )

    match outcome:
        case Ok(value=summary):
            pass
        case Err(error=error):
            summary = RunSummary.from_error(error, pr=pr_number)

    summary.write_summary(summary_path)
    if args.markdown:
        print(summary.to_markdown())
    print(
        f"Review {summary.status}: {len(summary.findings)} findings, "
        f"{len(summary.partial_findings)} partial ({summary_path})",
        file=sys.stderr,
    )
    return _EXIT_CODES[summary.status]


def _run_prune(_args: argparse.Namespace) -> int:
    """Delete expired and stale cache files."""
    from review_router.cache.store import FileCacheStore

    settings = Settings()
    store = FileCacheStore(
        settings.review_cache_dir,
        ttl=timedelta(hours=settings.cache_ttl_hours),
    )
    removed = store.prune()
    print(f"Removed {removed} cache file(s) from {store.root}")
    return EXIT_OK


if __name__ == "__main__":
    main()
