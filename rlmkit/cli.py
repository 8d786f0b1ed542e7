"""
Command line entry point.

    rlmkit run "What is this about?" -i document.txt
    rlmkit recall list|clear|export [--db PATH]
    rlmkit logs list|cleanup [--dir DIR] [--max-age-days N]
    rlmkit providers
    rlmkit serve

Exit code 0 means an answer was printed; 1 means the run ran out of
iterations, failed, or the arguments were wrong.
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from typing import List, Optional

from .config import RunOptions, settings
from .llm import LLMError, available_providers
from .recall import RecallStore, RecallStoreError
from .rlm import Answer, RLMEngine, TrajectoryLogger


def _parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="rlmkit", description="Recursive code-generation engine.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log engine progress to stderr.")
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Answer a question about an input.")
    run.add_argument("question")
    run.add_argument("-i", "--input", required=True, help="Input file path, or '-' for stdin.")
    run.add_argument("-p", "--provider", choices=["anthropic", "openai", "openrouter", "ollama"])
    run.add_argument("-m", "--model")
    run.add_argument("--api-key")
    run.add_argument("--max-iterations", type=int)
    run.add_argument("--temperature", type=float)
    run.add_argument("--max-tokens", type=int)
    run.add_argument("--recall", action="store_true", help="Use and update the recall cache.")
    run.add_argument("--recall-db", help=f"Recall cache path (default: {settings.recall.db_path}).")
    run.add_argument("--retry", action="store_true", help="Retry transient generator failures.")
    run.add_argument("--no-log", action="store_true", help="Do not write a trajectory file.")
    run.add_argument("--json", action="store_true", help="Print the result as JSON.")
    run.add_argument("-q", "--quiet", action="store_true", help="Print only the answer.")

    recall = commands.add_parser("recall", help="Inspect the recall cache.")
    recall.add_argument("action", choices=["list", "clear", "export"])
    recall.add_argument("--db", default=settings.recall.db_path)

    logs = commands.add_parser("logs", help="Inspect trajectory logs.")
    logs.add_argument("action", choices=["list", "cleanup"])
    logs.add_argument("--dir", default=settings.trajectory.log_dir)
    logs.add_argument("--max-age-days", type=int, default=settings.trajectory.max_age_days)

    commands.add_parser("providers", help="Show providers with a usable credential.")

    serve = commands.add_parser("serve", help="Start the HTTP API.")
    serve.add_argument("--host", default=settings.api_host)
    serve.add_argument("--port", type=int, default=settings.api_port)

    return parser.parse_args(argv)


def _read_input(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    with open(path, encoding="utf-8") as f:
        return f.read()


def _stringify(value) -> str:
    return value if isinstance(value, str) else repr(value)


def cmd_run(args: argparse.Namespace) -> int:
    try:
        text = _read_input(args.input)
    except OSError as e:
        print(f"Cannot read input: {e}", file=sys.stderr)
        return 1

    def progress(iteration: int) -> None:
        print(f"iteration {iteration}", file=sys.stderr)

    options = RunOptions.from_settings(
        provider=args.provider,
        model=args.model,
        api_key=args.api_key,
        max_iterations=args.max_iterations,
        temperature=args.temperature,
        max_tokens=args.max_tokens,
        recall=args.recall or None,
        recall_db_path=args.recall_db,
        retry_with_backoff=args.retry or None,
        log_trajectory=False if args.no_log else None,
        return_meta=True,
        on_iteration=None if args.quiet or args.json else progress,
    )

    try:
        result = asyncio.run(RLMEngine().run(args.question, text, options))
    except LLMError as e:
        print(f"Code generation failed: {e}", file=sys.stderr)
        return 1

    if not isinstance(result, Answer):
        print(f"No answer after {result.iterations} iterations.", file=sys.stderr)
        if result.partial is not None:
            print(f"last code:\n{result.partial.code}", file=sys.stderr)
            print(f"last result: {_stringify(result.partial.result)}", file=sys.stderr)
        if result.trajectory:
            print(f"trajectory: {result.trajectory}", file=sys.stderr)
        return 1

    answer = _stringify(result.value)
    if args.json:
        print(json.dumps({
            "answer": answer,
            "iterations": result.iterations,
            "trajectory": result.trajectory,
        }))
        return 0

    if not args.quiet:
        print(f"iterations: {result.iterations}", file=sys.stderr)
    print(answer)
    if not args.quiet and result.trajectory:
        print(f"trajectory: {result.trajectory}", file=sys.stderr)
    return 0


def cmd_recall(args: argparse.Namespace) -> int:
    store = RecallStore(db_path=args.db)
    try:
        if args.action == "clear":
            print(f"deleted: {store.clear()}")
            return 0

        entries = store.list()
    except RecallStoreError as e:
        print(f"Recall cache error: {e}", file=sys.stderr)
        return 1

    if args.action == "export":
        print(json.dumps([e.to_dict() for e in entries]))
        return 0

    for e in entries:
        inserted = datetime.fromtimestamp(e.inserted_at).isoformat(timespec="seconds")
        preview = e.snippet.replace("\n", " ")[:60]
        print(f"{inserted}\t{preview}\t{e.question}")
    return 0


def cmd_logs(args: argparse.Namespace) -> int:
    trajectories = TrajectoryLogger(log_dir=args.dir, max_age_days=args.max_age_days)
    if args.action == "cleanup":
        print(f"deleted: {trajectories.cleanup()}")
        return 0

    for path in trajectories.list_sessions():
        print(path)
    return 0


def cmd_providers() -> int:
    providers = available_providers(RunOptions.from_settings())
    if not providers:
        print("No provider credentials found (ollama can still be selected with -p ollama).")
        return 1
    for name in providers:
        print(name)
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("rlmkit.main:app", host=args.host, port=args.port)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    if args.command == "run":
        return cmd_run(args)
    if args.command == "recall":
        return cmd_recall(args)
    if args.command == "logs":
        return cmd_logs(args)
    if args.command == "providers":
        return cmd_providers()
    return cmd_serve(args)


if __name__ == "__main__":
    raise SystemExit(main())
