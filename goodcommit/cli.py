"""Command line entry point: print a commit message for the staged changes."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Dict, Optional

from . import __version__
from .config import OPENAI_MODES, PROVIDERS, SUMMARY_MODES, load_config, save_config
from .exceptions import ConfigError, GitError
from .git import GitRepo
from .pipeline import generate_commit_message

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="goodcommit",
        description="Generate a commit message for the staged changes.",
        epilog="The message is printed on stdout; nothing is committed.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--repo", dest="repo_path", default=".", help="Repository path")

    llm = parser.add_argument_group("model")
    llm.add_argument("--provider", choices=PROVIDERS, help="Backend to use")
    llm.add_argument("--model", help="Model name")
    llm.add_argument("--openai-mode", choices=OPENAI_MODES, help="OpenAI API shape")
    llm.add_argument("--endpoint", help="Ollama chat endpoint URL")
    llm.add_argument("--timeout", type=float, help="Per-request timeout in seconds")
    llm.add_argument("--max-input-tokens", type=int, help="Prompt token budget")
    llm.add_argument("--summary-mode", choices=SUMMARY_MODES, help="How large diffs are summarized")

    style = parser.add_argument_group("message style")
    style.add_argument("--lang", help="Language of the message, e.g. 'de'")
    style.add_argument("--emoji", action="store_true", default=None, help="Allow one emoji")
    style.add_argument(
        "--no-conventional",
        dest="conventional",
        action="store_false",
        default=None,
        help="Do not enforce the conventional commit format",
    )
    style.add_argument(
        "--multi-line",
        dest="one_line",
        action="store_false",
        default=None,
        help="Allow a body below the subject line",
    )

    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Persist the effective settings to .goodcommit/config.json",
    )
    parser.add_argument("--debug", action="store_true", help="Log pipeline details")
    return parser


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "provider": args.provider,
        "model": args.model,
        "openai_mode": args.openai_mode,
        "ollama_endpoint": args.endpoint,
        "timeout_secs": args.timeout,
        "max_input_tokens": args.max_input_tokens,
        "summary_mode": args.summary_mode,
        "lang": args.lang,
        "emoji": args.emoji,
        "conventional": args.conventional,
        "one_line": args.one_line,
    }


def _progress(line: str) -> None:
    print(line, file=sys.stderr, flush=True)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        repo = GitRepo(args.repo_path)
        root = repo.root
        config = load_config(repo_root=root, overrides=_overrides(args))
        if args.save_config:
            path = save_config(config, root)
            print(f"Saved configuration to {path}", file=sys.stderr)
        records = repo.staged_records()
        result = generate_commit_message(
            records, config, on_progress=_progress, repo_root=root
        )
    except ConfigError as err:
        print(f"error: {err}", file=sys.stderr)
        return EXIT_CONFIG
    except GitError as err:
        print(f"error: {err}", file=sys.stderr)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED

    for warning in result.warnings:
        print(f"warning: {warning}", file=sys.stderr)
    message = result.message
    if message is None or result.error is not None:
        print(
            f"error [{result.stage or 'unknown'}]: {result.error_message}",
            file=sys.stderr,
        )
        if isinstance(result.error, ConfigError):
            return EXIT_CONFIG
        return EXIT_FAILURE

    if not message.validated and config.conventional:
        logger.warning("message did not pass conventional validation")
    print(message.text)
    return EXIT_OK
