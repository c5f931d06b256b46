"""
Run Chatbot Gateway - launch script

Starts the HTTP API and, when a token is configured, the Discord bot in the
same process, both sharing one Chatbot orchestrator.

    python run_bot.py
    python run_bot.py --provider hosted --search --rag --port 9000
    python run_bot.py --no-search --no-rag --no-discord
"""
import argparse
import asyncio
import logging
import sys

import uvicorn

from config.settings import get_settings

logger = logging.getLogger("run_bot")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chatbot gateway (HTTP + Discord)")
    parser.add_argument(
        "--provider",
        choices=["auto", "local", "hosted", "ollama", "openai", "chatgpt"],
        help="LLM backend; 'auto' prefers local, then hosted (default: LLM_PROVIDER)",
    )
    parser.add_argument(
        "--search", action=argparse.BooleanOptionalAction, default=None,
        help="Enable or disable web search for recent-events questions (default: ENABLE_SEARCH)",
    )
    parser.add_argument(
        "--rag", action=argparse.BooleanOptionalAction, default=None,
        help="Enable or disable document retrieval (default: ENABLE_RAG)",
    )
    parser.add_argument("--data-path", help="Folder of documents to index (default: RAG_DATA_PATH)")
    parser.add_argument("--no-discord", action="store_true", help="Do not start the Discord bot")
    parser.add_argument("--host", help="HTTP bind address (default: HOST)")
    parser.add_argument("--port", type=int, help="HTTP port (default: PORT)")
    parser.add_argument("--log-level", help="Logging level (default: LOG_LEVEL)")
    return parser.parse_args(argv)


def apply_overrides(settings, args: argparse.Namespace):
    """Fold command-line flags into the settings singleton."""
    if args.provider:
        settings.llm.provider = args.provider
    if args.search is not None:
        settings.search.enabled = args.search
    if args.rag is not None:
        settings.retrieval.enabled = args.rag
    if args.data_path:
        settings.retrieval.data_path = args.data_path
    if args.no_discord:
        settings.discord.token = None
    if args.host:
        settings.server.host = args.host
    if args.port:
        settings.server.port = args.port
    if args.log_level:
        settings.log_level = args.log_level
    return settings


async def serve(server: uvicorn.Server, bot, token: str):
    """Run the HTTP server and the Discord bot until the server stops."""
    bot_task = asyncio.create_task(bot.start(token))
    try:
        await server.serve()
    finally:
        await bot.close()
        results = await asyncio.gather(bot_task, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Discord bot stopped with error: {result}")


def main(argv=None) -> int:
    args = parse_args(argv)
    settings = apply_overrides(get_settings(), args)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    from src.api import create_app
    from src.chatbot import Chatbot
    from src.discord_bot import create_bot

    chatbot = Chatbot(settings=settings)
    if chatbot.retrieval is not None:
        stats = chatbot.index_documents()
        logger.info(f"Document index: {stats}")

    token = (settings.discord.token or "").strip('"').strip("'")
    bot = create_bot(chatbot=chatbot) if token else None
    if bot is None:
        logger.info("DISCORD_BOT_TOKEN not set, Discord bot disabled")

    app = create_app(chatbot, discord_bot=bot)
    server = uvicorn.Server(
        uvicorn.Config(app, host=settings.server.host, port=settings.server.port, log_level="info")
    )
    logger.info(f"HTTP API listening on {settings.server.host}:{settings.server.port}")

    if bot is None:
        server.run()
    else:
        asyncio.run(serve(server, bot, token))
    return 0


if __name__ == "__main__":
    sys.exit(main())
