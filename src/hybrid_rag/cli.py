"""
Command-line interface.

    python -m hybrid_rag ingest src/ docs/ --output chunks.jsonl
    python -m hybrid_rag query "why does load_config fail?" --chunks chunks.jsonl
    python -m hybrid_rag profiles
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from loguru import logger

from .config import Config
from .errors import HybridRAGError
from .ingestion.pipeline import ChunkIngestor
from .models import Chunk
from .profiles.registry import ProfileRegistry
from .service import RetrievalService
from .store.chunk_store import ChunkStore


def configure_logging(level: str | None = None) -> None:
    """Route loguru output to stderr (and LOG_FILE when set)."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> | <level>{message}</level>",
        level=level or Config.LOG_LEVEL,
    )
    if Config.LOG_FILE:
        logger.add(Config.LOG_FILE, rotation="10 MB", retention="7 days", level="DEBUG")


def load_chunks(path: Path) -> list[Chunk]:
    chunks = []
    with open(path, encoding="utf-8") as f:
        for line_number, line in enumerate(f, 1):
            if not line.strip():
                continue
            try:
                chunks.append(Chunk.from_dict(json.loads(line)))
            except (ValueError, KeyError) as e:
                raise ValueError(f"{path}:{line_number}: invalid chunk record: {e}") from e
    return chunks


def cmd_ingest(args: argparse.Namespace) -> int:
    ingestor = ChunkIngestor()
    chunks = ingestor.ingest_paths(args.paths)

    args.output.parent.mkdir(parents=True, exist_ok=True)
    with open(args.output, "w", encoding="utf-8") as f:
        for chunk in chunks:
            f.write(json.dumps(chunk.to_dict(), ensure_ascii=False) + "\n")

    logger.info(f"Wrote {len(chunks)} chunks to {args.output}")
    print(json.dumps({"chunks": len(chunks), "output": str(args.output)}))
    return 0


async def _run_query(args: argparse.Namespace) -> dict:
    registry = ProfileRegistry.from_yaml(args.profiles) if args.profiles else ProfileRegistry()
    service = RetrievalService(ChunkStore(load_chunks(args.chunks)), registry=registry)

    work_context = {}
    if args.active_file:
        work_context["active_file"] = args.active_file
    if args.git_branch:
        work_context["git_branch"] = args.git_branch
    if args.ticket:
        work_context["open_tickets"] = args.ticket

    response = await service.query(args.text, agent_hint=args.agent, work_context=work_context)
    return response.to_dict(include_text=not args.no_text)


def cmd_query(args: argparse.Namespace) -> int:
    try:
        result = asyncio.run(_run_query(args))
    except HybridRAGError as e:
        logger.error(str(e))
        print(json.dumps({"error": type(e).__name__, "message": str(e)}))
        return 1
    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


def cmd_profiles(args: argparse.Namespace) -> int:
    registry = ProfileRegistry.from_yaml(args.profiles) if args.profiles else ProfileRegistry()
    print(json.dumps([p.to_dict() for p in registry.list_profiles()], indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hybrid_rag", description="Agent-aware hybrid retrieval over local files"
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL (e.g. DEBUG)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Chunk and embed files into a JSONL chunk file")
    ingest.add_argument("paths", nargs="+", type=Path, help="Files or directories to ingest")
    ingest.add_argument(
        "--output",
        type=Path,
        default=Path("chunks.jsonl"),
        help="Output JSONL path (default: chunks.jsonl)",
    )
    ingest.set_defaults(handler=cmd_ingest)

    query = subparsers.add_parser("query", help="Retrieve ranked chunks for a query")
    query.add_argument("text", help="Query text")
    query.add_argument("--chunks", type=Path, required=True, help="JSONL chunk file from ingest")
    query.add_argument("--agent", default=None, help="Agent profile hint (e.g. debugging)")
    query.add_argument("--active-file", default=None, help="Caller's active file")
    query.add_argument("--git-branch", default=None, help="Caller's git branch")
    query.add_argument("--ticket", action="append", default=[], help="Open ticket id (repeatable)")
    query.add_argument("--profiles", default=None, help="Profiles YAML file")
    query.add_argument("--no-text", action="store_true", help="Omit chunk text from output")
    query.set_defaults(handler=cmd_query)

    profiles = subparsers.add_parser("profiles", help="List registered agent profiles")
    profiles.add_argument("--profiles", default=None, help="Profiles YAML file")
    profiles.set_defaults(handler=cmd_profiles)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        return args.handler(args)
    except (OSError, ValueError) as e:
        logger.error(str(e))
        return 1
