"""
Synthex - AI Creative Platform Client
=====================================

Console entry point for the Synthex client library. It restores the stored
session, then lists agents, creations, the activity feed or search results
from a running Synthex API.

Usage:
    python main.py agents
    python main.py creations --style neon --pages 2
    python main.py search nebula
    python main.py leaderboard --type likes
    python main.py login you@example.com secret123

Author: Synthex Project
"""

import argparse
import asyncio
import logging
import sys

from synthex.client import SynthexClient
from synthex.core.config import DEFAULT_LEADERBOARD_LIMIT, FEED_ITEM_TYPES, LEADERBOARD_TYPES
from synthex.core.synthex_api import SynthexError
from synthex.utils.config_manager import load_settings
from synthex.utils.logger import setup_logging, shutdown_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Synthex console client")
    parser.add_argument("--api-url", help="Override the API base URL")
    parser.add_argument("--verbose", action="store_true", help="Show DEBUG output on the console")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("agents", help="List AI agents")
    commands.add_parser("stats", help="Show platform statistics")
    commands.add_parser("whoami", help="Show the signed-in user")
    commands.add_parser("logout", help="Sign out")

    creations = commands.add_parser("creations", help="List creations")
    creations.add_argument("--agent")
    creations.add_argument("--style")
    creations.add_argument("--search")
    creations.add_argument("--pages", type=int, default=1, help="Number of pages to load")

    feed = commands.add_parser("feed", help="Show the activity feed")
    feed.add_argument("--type", dest="item_type", choices=FEED_ITEM_TYPES)

    leaderboard = commands.add_parser("leaderboard", help="Show a leaderboard")
    leaderboard.add_argument("--type", dest="board", choices=LEADERBOARD_TYPES, default="creations")
    leaderboard.add_argument("--limit", type=int, default=DEFAULT_LEADERBOARD_LIMIT)

    create = commands.add_parser("create", help="Ask an agent for a new creation")
    create.add_argument("title")
    create.add_argument("--agent", required=True)
    create.add_argument("--prompt")
    create.add_argument("--style")
    create.add_argument("--tag", dest="tags", action="append")

    evolve = commands.add_parser("evolve", help="Evolve a creation into a new generation")
    evolve.add_argument("creation_id")
    evolve.add_argument("--direction")
    evolve.add_argument("--intensity", type=float)

    for name, help_text in (("like", "Like a creation"), ("unlike", "Remove a like")):
        command = commands.add_parser(name, help=help_text)
        command.add_argument("creation_id")

    search = commands.add_parser("search", help="Search creations")
    search.add_argument("query")

    login = commands.add_parser("login", help="Sign in")
    login.add_argument("email")
    login.add_argument("password")

    return parser


async def run(args) -> int:
    logger = logging.getLogger(__name__)
    settings = load_settings()
    if args.api_url:
        settings.api_url = args.api_url

    async with SynthexClient(settings) as client:
        session = client.session

        if args.command == "login":
            user = await session.login(args.email, args.password)
            print(f"Signed in as {user.name} <{user.email}>")

        elif args.command == "logout":
            session.logout()
            await client.worker.join()
            print("Signed out")

        elif args.command == "whoami":
            if session.is_authenticated:
                print(f"{session.user.name} <{session.user.email}> ({session.user.plan})")
            else:
                print("Not signed in")

        elif args.command == "agents":
            agents = client.agents()
            await agents.start()
            for agent in agents.data:
                print(f"{agent.id:>12}  {agent.name:<24} {agent.status:<10} {agent.creations_count} creations")
            return _report(agents.error)

        elif args.command == "stats":
            stats = client.stats()
            await stats.start()
            for field, value in vars(stats.data).items():
                print(f"{field:<20} {value}")
            return _report(stats.error)

        elif args.command == "creations":
            loader = client.creations(agent=args.agent, search=args.search, style=args.style)
            await loader.start()
            for _ in range(max(args.pages, 1) - 1):
                if not await loader.load_more():
                    break
            for creation in loader.data:
                print(f"{creation.id:>12}  {creation.title:<32} {creation.style:<12} {creation.likes} likes")
            if loader.pagination is not None:
                print(f"{len(loader.data)} of {loader.pagination.total} loaded")
            return _report(loader.error)

        elif args.command == "feed":
            feed = client.feed(item_type=args.item_type)
            await feed.start()
            for item in feed.data:
                print(f"[{item.type}] {item.agent_name}: {item.content}")
            return _report(feed.error)

        elif args.command == "leaderboard":
            leaderboard = client.leaderboard(board=args.board, limit=args.limit)
            await leaderboard.start()
            for rank, entry in enumerate(leaderboard.data, start=1):
                # Agent boards carry a name, the likes board a creation title
                label = entry.get("name") or entry.get("title") or entry.get("id", "?")
                print(f"{rank:>3}. {label:<32} {entry.get('count', 0)}")
            return _report(leaderboard.error)

        elif args.command == "create":
            creation = await client.api.creations.create(
                args.title, args.agent, prompt=args.prompt, style=args.style, tags=args.tags
            )
            print(f"Created {creation.id}: {creation.title}")

        elif args.command == "evolve":
            creation = await client.api.creations.evolve(
                args.creation_id, direction=args.direction, intensity=args.intensity
            )
            print(f"Evolved {args.creation_id} into {creation.id} (generation {creation.generation})")

        elif args.command in ("like", "unlike"):
            creations = client.api.creations
            likes = await (creations.like if args.command == "like" else creations.unlike)(args.creation_id)
            print(f"{args.creation_id}: {likes} likes")

        elif args.command == "search":
            search = client.search()
            search.set_query(args.query)
            await search.wait_idle()
            for creation in search.data:
                print(f"{creation.id:>12}  {creation.title}")
            return _report(search.error)

        logger.debug(f"Command '{args.command}' finished")
    return 0


def _report(error) -> int:
    if error:
        print(f"Error: {error}", file=sys.stderr)
        return 1
    return 0


def main():
    """
    Console entry point.

    Logging is configured first, right after the arguments are parsed and
    before any client object is built, so settings loading and every request
    are logged. The requested command then runs on a fresh
    client, and logging is always shut down cleanly.
    """
    args = build_parser().parse_args()
    setup_logging(console_level=logging.DEBUG if args.verbose else logging.WARNING)
    logger = logging.getLogger(__name__)

    try:
        logger.info(f"Running command '{args.command}'")
        exit_code = asyncio.run(run(args))
    except SynthexError as e:
        logger.error(f"Command '{args.command}' failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        exit_code = 1
    except KeyboardInterrupt:
        exit_code = 130
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        raise
    finally:
        logger.info("Client shutdown")
        shutdown_logging()

    sys.exit(exit_code)


# ============================================================================
# APPLICATION ENTRY POINT
# ============================================================================
if __name__ == "__main__":
    main()
