# app/cli/articles.py
"""
CLI commands for news cache housekeeping.

Usage:
    python -m app.cli.articles stats
    python -m app.cli.articles schedule
    python -m app.cli.articles soft-delete newsdata_abc123
    python -m app.cli.articles restore newsdata_abc123
    python -m app.cli.articles run-slot MORNING
"""

import argparse
import asyncio
import sys

from dotenv import load_dotenv

load_dotenv()


def get_store():
    """Get an article store bound to the configured database."""
    from app.database import SessionLocal, init_db
    from app.services.article_store import ArticleStore

    init_db()
    return ArticleStore(SessionLocal)


def cmd_stats(args):
    """Show cache totals."""
    store = get_store()
    totals = store.get_totals()

    print("\n=== News Cache ===\n")
    print(f"Total articles: {totals['total']}")
    print("\nBy provider:")
    for provider, count in totals["by_provider"].items():
        print(f"  {provider}: {count}")
    print(f"\nFetched in last 24h: {totals['recent_articles']}")

    if args.sources:
        print("\nTop sources:")
        for stat in store.aggregate_source_stats()[: args.sources]:
            print(f"  {stat.name}: {stat.article_count}")
    print()


def cmd_schedule(args):
    """Show the fetch timetable and the daily credit estimate."""
    from app.config import get_settings
    from app.fetch_schedule import get_estimated_daily_credits, get_schedule_times
    from app.models import ProviderTag

    settings = get_settings()

    print(f"\n=== Fetch Schedule ({settings.SCHEDULER_TIMEZONE}) ===\n")
    for slot in get_schedule_times():
        print(f"  {slot['name']:<14} {slot['time']:<12} {slot['description']}")

    credits = get_estimated_daily_credits(
        limits={
            ProviderTag.NEWSDATA: settings.NEWSDATA_DAILY_LIMIT,
            ProviderTag.NEWSAPI: settings.NEWSAPI_ORG_DAILY_LIMIT,
        }
    )
    print("\nEstimated daily credits:")
    for provider, usage in credits.items():
        print(f"  {provider}: {usage['estimated']}/{usage['limit']} ({usage['remaining']} remaining)")
    print()


def cmd_soft_delete(args):
    """Hide an article from every read."""
    store = get_store()
    if not store.soft_delete(args.article_id):
        print(f"Error: Article '{args.article_id}' not found")
        sys.exit(1)
    print(f"Soft deleted {args.article_id}")


def cmd_restore(args):
    """Undo a soft delete."""
    store = get_store()
    if not store.restore(args.article_id):
        print(f"Error: Article '{args.article_id}' not found")
        sys.exit(1)
    print(f"Restored {args.article_id}")


def cmd_run_slot(args):
    """Execute one slot in the foreground (for external cron)."""
    from app.config import get_settings
    from app.fetch_schedule import ScheduleConfigError
    from app.logging_config import configure_logging
    from app.main import build_services

    settings = get_settings()
    configure_logging(json_format=settings.LOG_JSON, level=settings.LOG_LEVEL)

    async def run():
        from app.database import SessionLocal, init_db

        init_db()
        services = build_services(settings, session_factory=SessionLocal)
        try:
            return await services["scheduler"].execute_slot(args.name)
        finally:
            await services["ingestion"].close()

    try:
        result = asyncio.run(run())
    except ScheduleConfigError as e:
        print(f"Error: {e}")
        sys.exit(2)

    print(f"\n{result.slot}: {result.status.value}")
    print(f"  Saved: {result.articles_saved} ({result.inserted} new, {result.updated} updated)")
    print(f"  Rejected: {result.rejected}")
    print(f"  Failed parameter sets: {len(result.failed_param_sets)}/{result.param_sets_attempted}")
    if result.error:
        print(f"  Error: {result.error}")
    print()
    if result.status.value == "failed":
        sys.exit(1)


def main():
    parser = argparse.ArgumentParser(
        description="News cache housekeeping CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Cache totals with the 10 biggest sources
  python -m app.cli.articles stats --sources 10

  # Hide a bad article, then bring it back
  python -m app.cli.articles soft-delete newsapi_https://example.com/story
  python -m app.cli.articles restore newsapi_https://example.com/story

  # Run the MORNING slot now
  python -m app.cli.articles run-slot MORNING
        """,
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    stats_parser = subparsers.add_parser("stats", help="Show cache totals")
    stats_parser.add_argument("--sources", type=int, default=0, help="Also list the top N sources")
    stats_parser.set_defaults(func=cmd_stats)

    schedule_parser = subparsers.add_parser("schedule", help="Show fetch timetable and credit estimate")
    schedule_parser.set_defaults(func=cmd_schedule)

    delete_parser = subparsers.add_parser("soft-delete", help="Soft delete an article")
    delete_parser.add_argument("article_id", help="Article id, e.g. newsdata_abc123")
    delete_parser.set_defaults(func=cmd_soft_delete)

    restore_parser = subparsers.add_parser("restore", help="Restore a soft-deleted article")
    restore_parser.add_argument("article_id", help="Article id, e.g. newsdata_abc123")
    restore_parser.set_defaults(func=cmd_restore)

    run_parser = subparsers.add_parser("run-slot", help="Execute one fetch slot now")
    run_parser.add_argument("name", help="Slot name, e.g. MORNING")
    run_parser.set_defaults(func=cmd_run_slot)

    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
