from __future__ import annotations

import argparse
import asyncio
import json
import sys

from dataclerk.agent.data_gateway import DataProxyClient
from dataclerk.agent.llm import GeminiClient
from dataclerk.agent.models import ChartBlock, ContentBlock, TableBlock, TextBlock
from dataclerk.agent.service import QueryOrchestrator
from dataclerk.core.config import get_settings
from dataclerk.core.errors import DataClerkError
from dataclerk.core.logging import configure_logging, get_logger

logger = get_logger(__name__)


def render_block(block: ContentBlock) -> str:
    if isinstance(block, TextBlock):
        return block.content
    if isinstance(block, TableBlock):
        lines = [block.description] if block.description else []
        lines.append(" | ".join(block.headers))
        lines.extend(" | ".join(row) for row in block.rows)
        return "\n".join(lines)
    if isinstance(block, ChartBlock):
        pairs = ", ".join(f"{label}={value:g}" for label, value in zip(block.labels, block.values))
        header = f"[{block.kind.name} chart] {block.description}".rstrip()
        return f"{header}\n{pairs}" if pairs else header
    raise TypeError(f"Unsupported block {block!r}")


async def _run(args: argparse.Namespace) -> int:
    settings = get_settings()
    data_client = DataProxyClient(settings.data_proxy)
    llm_client = GeminiClient(settings.gemini)
    try:
        if args.list:
            for name in await data_client.list_databases():
                print(name)
        if args.info:
            info = await data_client.database_info(args.info)
            print(json.dumps(info.to_dict(), indent=2))
        if args.schema:
            tables = await data_client.schema(args.schema)
            print(json.dumps([table.to_dict() for table in tables], indent=2))
        if args.ask:
            database, question = args.ask
            api_key = args.api_key or settings.gemini.api_key
            if not api_key:
                logger.error("No API key; pass --api-key or set GEMINI_API_KEY.")
                return 2
            orchestrator = QueryOrchestrator(llm_client, data_client, log_sql_text=settings.log_sql_text)
            result = await orchestrator.process_query(database, question, api_key)
            print(f"SQL: {result.sql_query}\n")
            for block in result.content_blocks:
                print(render_block(block))
                print()
    except DataClerkError as exc:
        logger.error("%s: %s", exc.reason.name, exc.message)
        return 1
    finally:
        await llm_client.aclose()
        await data_client.aclose()
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Browse databases and ask questions through the query pipeline.")
    parser.add_argument("--list", action="store_true", help="List databases exposed by the proxy.")
    parser.add_argument("--info", metavar="NAME", help="Show health and table count for a database.")
    parser.add_argument("--schema", metavar="NAME", help="Print the grouped schema of a database.")
    parser.add_argument("--ask", nargs=2, metavar=("NAME", "QUESTION"), help="Ask a question about a database.")
    parser.add_argument("--api-key", help="Completion API key (defaults to GEMINI_API_KEY).")
    args = parser.parse_args(argv)

    if not any([args.list, args.info, args.schema, args.ask]):
        parser.print_help()
        return 0

    configure_logging(get_settings().log_level)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
