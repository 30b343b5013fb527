#!/usr/bin/env python3
"""
cli.py — Command line access to the Skald API

  skald chat "What are our Q1 goals?" [--stream]
  skald generate "Write a status update" [--rules "Formal tone"] [--stream]
  skald search "quarterly goals" [--limit 5]
  skald status <memo-id> [--id-type reference_id]
  skald delete <memo-id> [--id-type reference_id]

Configuration comes from --config, SKALD_API_KEY and SKALD_BASE_URL (see config.py).

Exit codes:
  0 = success
  1 = API returned an error (4xx/5xx) or an undecodable response
  2 = network/transport error
  4 = invalid usage or configuration
"""

import argparse
import json
import logging
import sys
from typing import List, Optional, TextIO

from .client import Skald
from .config import redact_string
from .errors import (
    ConfigError,
    SkaldError,
    TransportInitError,
    TransportReadError,
)
from .models import ChatRequest, GenerateDocRequest, IdType, SearchRequest

logger = logging.getLogger("skald.cli")

EXIT_OK = 0
EXIT_API_ERROR = 1
EXIT_NETWORK_ERROR = 2
EXIT_USAGE = 4


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="skald", description="Skald knowledge-base client")
    parser.add_argument("--config", help="YAML config file (default: SKALD_CONFIG)")
    parser.add_argument("--base-url", help="API base URL (default: SKALD_BASE_URL or hosted API)")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    chat = sub.add_parser("chat", help="ask a question about the knowledge base")
    chat.add_argument("query")
    chat.add_argument("--stream", action="store_true", help="print tokens as they arrive")

    generate = sub.add_parser("generate", help="generate a document")
    generate.add_argument("prompt")
    generate.add_argument("--rules")
    generate.add_argument("--stream", action="store_true", help="print tokens as they arrive")

    search = sub.add_parser("search", help="semantic search over memos")
    search.add_argument("query")
    search.add_argument("--limit", type=int)

    for name, help_text in (("status", "check memo processing status"), ("delete", "delete a memo")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("memo_id")
        cmd.add_argument(
            "--id-type",
            default=IdType.MEMO_UUID.value,
            help="memo_uuid (default) or reference_id",
        )

    return parser


def _print_stream(stream, out: TextIO) -> None:
    with stream:
        for event in stream:
            if event.is_token() and event.content:
                out.write(event.content)
                out.flush()
    out.write("\n")


def _dispatch(args: argparse.Namespace, client: Skald, out: TextIO) -> None:
    if args.command == "chat":
        request = ChatRequest(query=args.query)
        if args.stream:
            _print_stream(client.streamed_chat(request), out)
        else:
            out.write(client.chat(request).response + "\n")

    elif args.command == "generate":
        request = GenerateDocRequest(prompt=args.prompt, rules=args.rules)
        if args.stream:
            _print_stream(client.streamed_generate_doc(request), out)
        else:
            out.write(client.generate_doc(request).response + "\n")

    elif args.command == "search":
        response = client.search(SearchRequest(query=args.query, limit=args.limit))
        for result in response.results:
            distance = "" if result.distance is None else f" ({result.distance:.3f})"
            out.write(f"{result.uuid}  {result.title}{distance}\n")
            if result.content_snippet:
                out.write(f"    {result.content_snippet}\n")

    elif args.command == "status":
        status = client.check_memo_status(args.memo_id, args.id_type)
        line = f"{status.memo_uuid}: {status.status}"
        if status.is_error() and status.error_reason:
            line += f" ({status.error_reason})"
        out.write(line + "\n")

    elif args.command == "delete":
        client.delete_memo(args.memo_id, args.id_type)
        out.write(f"Deleted {args.memo_id}\n")


def run(
    argv: Optional[List[str]] = None,
    client: Optional[Skald] = None,
    out: Optional[TextIO] = None,
    err: Optional[TextIO] = None,
) -> int:
    """Run the CLI and return its exit code."""
    out = sys.stdout if out is None else out
    err = sys.stderr if err is None else err
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return EXIT_OK if e.code == 0 else EXIT_USAGE

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, stream=err)

    secrets: List[str] = []
    try:
        if client is None:
            with Skald(base_url=args.base_url, config_path=args.config) as owned:
                secrets.append(owned.config.api_key)
                _dispatch(args, owned, out)
        else:
            secrets.append(client.config.api_key)
            _dispatch(args, client, out)
    except ConfigError as e:
        err.write(f"ERROR: {e}\n")
        return EXIT_USAGE
    except (TransportInitError, TransportReadError) as e:
        err.write(f"ERROR: {redact_string(str(e), secrets=secrets)}\n")
        return EXIT_NETWORK_ERROR
    except SkaldError as e:
        logger.debug("API error: %s", json.dumps(e.to_dict()))
        err.write(f"ERROR: {redact_string(str(e), secrets=secrets)}\n")
        return EXIT_API_ERROR
    return EXIT_OK


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
