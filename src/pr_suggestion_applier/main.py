# src/pr_suggestion_applier/main.py
import argparse
import os
import sys
import logging
import subprocess # For git commands
from typing import List, Optional, Sequence

from dotenv import load_dotenv # For local development using .env file

from . import __version__
from .ai_provider import AIProvider, get_ai_provider
from .app_config import AppConfig, load_app_config
from .applier import Applier
from .exceptions import ProviderError, SCMClientError
from .llm_auth_helper import setup_litellm_provider_env
from .models import ApplyStatus, ApplySummary, ReviewComment
from .scm_client import GitHubClient
from .suggestion_parser import strip_suggestion_block
from .utils.file_filter import filter_comments_by_patterns

# Global logger for the module
logger = logging.getLogger("pr_suggestion_applier") # Use a named logger


def setup_logging(log_level_str: str):
    """Configures basic logging for the CLI."""
    numeric_level = getattr(logging, log_level_str.upper(), None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
        logger.warning(f"Invalid log level '{log_level_str}'. Defaulting to INFO.")

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    # LiteLLM is chatty at INFO
    logging.getLogger("LiteLLM").setLevel(max(numeric_level, logging.WARNING))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pr-suggestion-applier",
        description="Apply GitHub pull request review suggestions to the local working copy.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--repo", metavar="OWNER/NAME", help="Repository (defaults to the origin remote)")
    common.add_argument("--debug", action="store_true", help="Enable debug logging")

    apply_p = subparsers.add_parser("apply", parents=[common], help="List or apply review suggestions of a PR")
    apply_p.add_argument("pr_number", nargs="?", type=int,
                         help="Pull request number (defaults to the PR of the current branch)")
    mode = apply_p.add_mutually_exclusive_group()
    mode.add_argument("--all", action="store_true", help="Apply all suggestions directly")
    mode.add_argument("--ai-auto", action="store_true", help="Apply all suggestions through the AI provider")
    apply_p.add_argument("--ai-fallback", action="store_true",
                         help="Delegate to the AI provider when direct application fails")
    apply_p.add_argument("--file", action="append", default=[], metavar="PATTERN",
                         help="Only suggestions on paths matching PATTERN (repeatable, gitignore syntax)")
    apply_p.add_argument("--include-resolved", action="store_true", help="Include suggestions on resolved threads")
    apply_p.add_argument("--resolve", action="store_true", help="Resolve the review thread after applying")
    apply_p.add_argument("--allow-dirty", action="store_true", help="Run even if the working tree has changes")
    apply_p.add_argument("--ai-model", metavar="MODEL", help="LiteLLM model name, e.g. openai/gpt-4o")
    apply_p.add_argument("--ai-template", metavar="PATH", help="Custom prompt template file")
    apply_p.add_argument("--ai-token", metavar="TOKEN", help="API key for the AI provider")

    resolve_p = subparsers.add_parser("resolve", parents=[common], help="Resolve or unresolve review threads")
    resolve_p.add_argument("comment_id", nargs="?", type=int,
                           help="ID of any comment in the thread (required unless --all)")
    resolve_p.add_argument("--pr", type=int, dest="pr_number", metavar="PR_NUMBER",
                           help="Pull request number (defaults to the PR of the current branch)")
    resolve_p.add_argument("--all", action="store_true",
                           help="Act on every thread of the PR that is not already in the target state")
    resolve_p.add_argument("--unresolve", action="store_true", help="Mark threads as unresolved instead")
    resolve_p.add_argument("-c", "--comment", metavar="TEXT",
                           help="Reply with TEXT before resolving (@path reads the text from a file)")

    comment_p = subparsers.add_parser("comment", parents=[common], help="Reply to a review comment")
    comment_p.add_argument("comment_id", type=int, help="ID of the review comment to reply to")
    comment_p.add_argument("--pr", type=int, dest="pr_number", metavar="PR_NUMBER",
                           help="Pull request number (defaults to the PR of the current branch)")
    body = comment_p.add_mutually_exclusive_group(required=True)
    body.add_argument("--body", help="Reply text")
    body.add_argument("--body-file", metavar="PATH", help="Read the reply text from a file")
    body.add_argument("--stdin", action="store_true", help="Read the reply text from standard input")
    comment_p.add_argument("--resolve", action="store_true", help="Resolve the thread after replying")
    return parser


def apply_cli_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Command line flags win over environment configuration."""
    if args.repo:
        config.repo = args.repo
    if getattr(args, "ai_model", None):
        config.ai_model = args.ai_model
    if getattr(args, "ai_template", None):
        config.ai_template_path = args.ai_template
    if getattr(args, "ai_token", None):
        config.ai_api_key = args.ai_token
    if args.debug:
        config.log_level = "DEBUG"
    if getattr(args, "file", None):
        config.include_patterns = list(args.file)
    return config


def working_tree_is_dirty(repo_root: Optional[str] = None) -> bool:
    """True if `git status --porcelain` reports any change."""
    try:
        result = subprocess.run(["git", "status", "--porcelain"], capture_output=True, text=True,
                                check=False, cwd=repo_root)
    except FileNotFoundError:
        logger.error("'git' command not found. Ensure Git is installed and in PATH.")
        return True
    if result.returncode != 0:
        logger.error(f"git status failed: {result.stderr.strip()}")
        return True
    return bool(result.stdout.strip())


def select_suggestions(comments: Sequence[ReviewComment], config: AppConfig,
                       include_resolved: bool = False) -> List[ReviewComment]:
    """Keeps comments with a suggestion, optionally dropping resolved threads, then path-filters them."""
    selected = [c for c in comments if c.has_suggestion]
    if not include_resolved:
        selected = [c for c in selected if not c.is_resolved]
    return filter_comments_by_patterns(selected, config.include_patterns, config.exclude_patterns)


def print_suggestions(comments: Sequence[ReviewComment]) -> None:
    for comment in comments:
        flags = []
        if comment.is_resolved:
            flags.append("resolved")
        if comment.is_outdated:
            flags.append("outdated")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        author = f" by @{comment.author}" if comment.author else ""
        print(f"{comment.location}{author}{suffix}")
        prose = strip_suggestion_block(comment.body)
        if prose:
            print(f"  {prose.splitlines()[0]}")
        for code_line in comment.suggested_code.split("\n"):
            print(f"    {code_line}")
    print(f"{len(comments)} suggestion(s). Use --all or --ai-auto to apply them.")


def print_summary(summary: ApplySummary, total: int) -> None:
    for result in summary.results:
        if result.status == ApplyStatus.APPLIED:
            print(f"applied  {result.comment.location}")
        elif result.status == ApplyStatus.DELEGATED_TO_AI:
            print(f"applied  {result.comment.location} (via AI)")
        else:
            print(f"failed   {result.comment.location}: {result.reason}")
    if summary.aborted:
        print(f"Stopped after a write failure; {total - summary.total} suggestion(s) not attempted.")
    print(f"Applied {summary.applied}/{total} suggestions ({summary.failed} failed)")


def run_apply(args: argparse.Namespace, config: AppConfig) -> int:
    client = GitHubClient(config)
    pr_number = args.pr_number or client.get_current_branch_pr()
    logger.info(f"Fetching review comments for PR #{pr_number} in {client.resolve_repo()}...")

    suggestions = select_suggestions(client.fetch_review_comments(pr_number), config, args.include_resolved)
    if not suggestions:
        print(f"No suggestions found in PR #{pr_number}.")
        return 0

    if not (args.all or args.ai_auto):
        print_suggestions(suggestions)
        return 0

    if not args.allow_dirty and working_tree_is_dirty():
        logger.error("Working tree has uncommitted changes. Commit or stash them first, or pass --allow-dirty.")
        return 1

    ai_provider: Optional[AIProvider] = None
    if args.ai_auto or args.ai_fallback:
        if not config.ai_configured:
            logger.error("AI mode needs a model. Set PRSUGGEST_AI_MODEL or pass --ai-model.")
            return 1
        setup_litellm_provider_env(config)
        ai_provider = get_ai_provider(config)

    applier = Applier(
        ai_provider=ai_provider,
        thread_resolver=client,
        diagnostic_dir=config.diagnostic_dir,
        auto_resolve=args.resolve,
        ai_fallback=args.ai_fallback,
        ai_timeout=config.ai_timeout,
    )
    summary = applier.apply_all_with_ai(suggestions) if args.ai_auto else applier.apply_all(suggestions)
    print_summary(summary, len(suggestions))
    return 1 if summary.failed else 0


def find_thread_comment(comments: Sequence[ReviewComment], comment_id: int) -> Optional[ReviewComment]:
    """Returns the top-level comment of the thread holding `comment_id`, which may be a reply."""
    for comment in comments:
        if comment.id == comment_id or any(reply.id == comment_id for reply in comment.thread_comments):
            return comment
    return None


def read_comment_text(value: str) -> str:
    """`@path` reads the text from a file, anything else is taken literally."""
    if value.startswith("@"):
        with open(value[1:], encoding="utf-8") as f:
            return f.read()
    return value


def run_resolve(args: argparse.Namespace, config: AppConfig) -> int:
    if not args.all and args.comment_id is None:
        logger.error("Pass a COMMENT_ID or --all.")
        return 1

    client = GitHubClient(config)
    pr_number = args.pr_number or client.get_current_branch_pr()
    comments = client.fetch_review_comments(pr_number)
    verb = "unresolve" if args.unresolve else "resolve"

    if args.all:
        targets = [c for c in comments if c.thread_id and c.is_resolved == args.unresolve]
        if not targets:
            print(f"No threads to {verb} in PR #{pr_number}.")
            return 0
    else:
        target = find_thread_comment(comments, args.comment_id)
        if target is None:
            logger.error(f"Comment {args.comment_id} not found in PR #{pr_number}.")
            return 1
        if not target.thread_id:
            logger.error(f"No review thread found for comment {args.comment_id}.")
            return 1
        targets = [target]

    reply = read_comment_text(args.comment) if args.comment else ""
    failed = 0
    for comment in targets:
        try:
            if reply:
                client.reply_to_review_comment(pr_number, comment.id, reply)
            if args.unresolve:
                client.unresolve_thread(comment.thread_id)
            else:
                client.resolve_thread(comment.thread_id)
        except SCMClientError as e:
            logger.error(f"{comment.location}: {e}")
            failed += 1
            continue
        print(f"{verb.capitalize()}d thread of comment {comment.id} ({comment.location})")
    return 1 if failed else 0


def run_comment(args: argparse.Namespace, config: AppConfig) -> int:
    if args.stdin:
        body = sys.stdin.read()
    elif args.body_file:
        with open(args.body_file, encoding="utf-8") as f:
            body = f.read()
    else:
        body = args.body

    client = GitHubClient(config)
    pr_number = args.pr_number or client.get_current_branch_pr()
    reply = client.reply_to_review_comment(pr_number, args.comment_id, body)
    print(f"Replied to comment {args.comment_id}: {reply.html_url or reply.id}")

    if args.resolve:
        target = find_thread_comment(client.fetch_review_comments(pr_number), args.comment_id)
        if target is None or not target.thread_id:
            logger.error(f"No review thread found for comment {args.comment_id}; not resolved.")
            return 1
        client.resolve_thread(target.thread_id)
        print(f"Resolved thread of comment {target.id}")
    return 0


COMMANDS = {
    "apply": run_apply,
    "resolve": run_resolve,
    "comment": run_comment,
}


def main_cli(argv: Optional[Sequence[str]] = None) -> int:
    """
    CLI entry point. Loads .env for local dev.
    """
    # Load .env file if it exists (for local development)
    if os.path.exists(".env"):
        load_dotenv()
    elif os.path.exists("../.env"): # Check one level up for monorepo structure
        load_dotenv(dotenv_path="../.env")

    args = _build_parser().parse_args(argv)
    config = apply_cli_overrides(load_app_config(), args)
    setup_logging(config.log_level)
    logger.debug(f"pr-suggestion-applier {__version__}")

    try:
        return COMMANDS[args.command](args, config)
    except KeyboardInterrupt:
        logger.info("Interrupted by user (KeyboardInterrupt).")
        return 130 # Standard exit code for Ctrl+C
    except (SCMClientError, ProviderError) as e:
        logger.error(str(e))
        return 1
    except OSError as e:
        logger.error(f"File error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main_cli())
