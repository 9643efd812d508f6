"""CLI entry point for the profile search engine."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

from profile_search.core.config import Settings
from profile_search.core.db import SearchStore, init_db
from profile_search.core.errors import ProviderError, StoreError
from profile_search.core.schemas import TERMINAL_STATUSES, OperationConfig
from profile_search.locations.manager import LocationRotationManager
from profile_search.pipeline.export import export_profiles_csv, export_profiles_json
from profile_search.pipeline.orchestrator import SearchOrchestrator
from profile_search.providers.gateway import ProviderGateway


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    common.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    parser = argparse.ArgumentParser(
        description="Profile search engine - find professional profiles across locations",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- search ---
    search_parser = subparsers.add_parser(
        "search", parents=[common], help="Search a single location",
    )
    search_parser.add_argument("query", help="What to search for")
    search_parser.add_argument("--location", help="Location to pin the search to")
    _add_operation_flags(search_parser)
    search_parser.add_argument(
        "--export",
        choices=["json", "csv"],
        help="Print the stored profiles in this format",
    )

    # --- global-search ---
    global_parser = subparsers.add_parser(
        "global-search", parents=[common], help="Search across rotating locations",
    )
    global_parser.add_argument("query", help="What to search for")
    global_parser.add_argument("--max-locations", type=int, help="Locations to search")
    global_parser.add_argument(
        "--delay-ms", type=int, help="Delay between locations in milliseconds",
    )
    global_parser.add_argument(
        "--enrich", action="store_true", help="Enrich profiles with contact data",
    )
    global_parser.add_argument(
        "--poll-s", type=float, default=5.0, help="Progress poll interval (default: 5)",
    )
    _add_operation_flags(global_parser)

    # --- export ---
    export_parser = subparsers.add_parser(
        "export", parents=[common], help="Export stored profiles",
    )
    export_parser.add_argument("--format", choices=["json", "csv"], default="json")
    export_parser.add_argument("--operation-id", help="Only profiles from this operation")
    export_parser.add_argument("--query", help="Only profiles whose query matches")
    export_parser.add_argument("--location", help="Only profiles from this location")
    export_parser.add_argument("--company", help="Only profiles at this company")
    export_parser.add_argument("--limit", type=int, help="Maximum profiles to export")
    export_parser.add_argument("--output", help="Write to this file instead of stdout")

    # --- locations ---
    locations_parser = subparsers.add_parser(
        "locations", parents=[common], help="List search locations",
    )
    locations_parser.add_argument("--max", type=int, help="Show at most this many")

    subparsers.add_parser(
        "reset-blacklist", parents=[common], help="Clear the location blacklist",
    )

    # --- contact ---
    contact_parser = subparsers.add_parser(
        "contact", parents=[common], help="Look up contact details for a person",
    )
    contact_parser.add_argument("name", help="Full name")
    contact_parser.add_argument("--company")
    contact_parser.add_argument("--email")
    contact_parser.add_argument("--linkedin-url")

    subparsers.add_parser("stats", parents=[common], help="Show database statistics")

    return parser.parse_args(argv)


def _add_operation_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--no-expansion", action="store_true", help="Disable AI query expansion",
    )
    parser.add_argument(
        "--no-filter", action="store_true", help="Disable AI result filtering",
    )
    parser.add_argument("--provider", help="AI provider for expansion and filtering")


def setup_logging(verbose: bool, level: str = "INFO") -> None:
    log_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def operation_config(settings: Settings, args: argparse.Namespace) -> OperationConfig:
    """Apply CLI overrides to the configured operation defaults."""
    overrides: dict[str, Any] = {}
    if getattr(args, "no_expansion", False):
        overrides["enable_query_expansion"] = False
    if getattr(args, "no_filter", False):
        overrides["enable_result_filtering"] = False
    if getattr(args, "provider", None):
        overrides["ai_provider"] = args.provider
    if getattr(args, "max_locations", None) is not None:
        overrides["max_locations"] = args.max_locations
    if getattr(args, "delay_ms", None) is not None:
        overrides["delay_between_searches_ms"] = args.delay_ms
    if getattr(args, "enrich", False):
        overrides["enable_contact_enrichment"] = True
    data = settings.operation.model_dump()
    data.update(overrides)
    return OperationConfig.model_validate(data)


class Services:
    """Store, gateway, location manager and orchestrator wired from settings."""

    def __init__(self, settings: Settings) -> None:
        self.store = SearchStore(init_db(settings.database.path))
        self.gateway = ProviderGateway.from_settings(settings)
        self.locations = LocationRotationManager(self.store)
        self.orchestrator = SearchOrchestrator(
            self.store,
            self.gateway,
            self.locations,
            default_config=settings.operation,
            max_results=settings.search.max_results,
        )

    async def close(self) -> None:
        await self.orchestrator.shutdown()
        await self.gateway.close()
        self.store.close()


async def cmd_search(services: Services, settings: Settings, args: argparse.Namespace) -> None:
    config = operation_config(settings, args)
    operation_id, results = await services.orchestrator.search_profiles(
        args.query, config, args.location,
    )
    print(f"\nOperation {operation_id}: {len(results)} results")
    for r in results:
        score = f"{r.relevance_score:.2f}" if r.relevance_score is not None else " -- "
        print(f"  [{score}] {r.title}\n         {r.url}")

    if args.export:
        profiles = services.store.get_profiles(operation_id=operation_id)
        if args.export == "csv":
            print(export_profiles_csv(profiles))
        else:
            print(export_profiles_json(profiles))


async def cmd_global_search(
    services: Services, settings: Settings, args: argparse.Namespace,
) -> None:
    orchestrator = services.orchestrator
    services.locations.initialize()
    config = operation_config(settings, args)
    operation_id = await orchestrator.global_search_profiles(args.query, config)
    print(f"Started operation {operation_id}")

    try:
        while True:
            progress = await orchestrator.get_progress(operation_id)
            if progress is None:
                break
            eta = progress.estimated_time_remaining_s
            eta_text = f", ~{eta:.0f}s left" if eta else ""
            print(
                f"  [{progress.status.value}] {progress.progress:.0%} "
                f"{progress.searched_locations}/{progress.total_locations} locations, "
                f"{progress.results_found} results"
                f"{f' ({progress.current_location})' if progress.current_location else ''}"
                f"{eta_text}",
            )
            if progress.status in TERMINAL_STATUSES:
                break
            await asyncio.sleep(args.poll_s)
    except asyncio.CancelledError:
        await orchestrator.cancel(operation_id)
        raise

    operation = await orchestrator.wait(operation_id)
    if operation is not None:
        print(
            f"\nOperation {operation.id} {operation.status.value}: "
            f"{operation.total_results} results from "
            f"{operation.searched_locations}/{operation.total_locations} locations",
        )
        if operation.error:
            print(f"  Error: {operation.error}")


def cmd_export(services: Services, args: argparse.Namespace) -> None:
    profiles = services.store.get_profiles(
        search_query=args.query,
        location=args.location,
        company=args.company,
        operation_id=args.operation_id,
        limit=args.limit,
    )
    output = export_profiles_csv(profiles) if args.format == "csv" else export_profiles_json(profiles)
    if args.output:
        Path(args.output).write_text(output)
        print(f"Exported {len(profiles)} profiles to {args.output}")
    else:
        print(output)


def cmd_locations(services: Services, args: argparse.Namespace) -> None:
    locations = services.locations
    locations.initialize()
    for loc in locations.list_locations(args.max):
        print(
            f"  {loc.priority:>2}  {loc.name:<16} {loc.search_code:<24} "
            f"success {loc.success_rate:.0%} ({loc.successful_searches}/{loc.total_searches})",
        )
    stats = locations.stats()
    print(
        f"\n{stats['active']} active of {stats['total']} locations, "
        f"{stats['blacklisted']} blacklisted, "
        f"average success {stats['avg_success_rate']:.0%}",
    )


def cmd_reset_blacklist(services: Services) -> None:
    services.locations.initialize()
    services.locations.reset()
    print("Location blacklist cleared and rotation reset.")


async def cmd_contact(services: Services, args: argparse.Namespace) -> None:
    contact = await services.gateway.enrich_contact(
        args.name, args.company, args.email, args.linkedin_url,
    )
    if contact is None:
        print(f"No confident match for {args.name}")
        return
    print(contact.model_dump_json(indent=2, exclude_none=True))


def cmd_stats(services: Services) -> None:
    stats = services.store.get_stats()
    print(f"Profiles:          {stats['total_profiles']}")
    print(f"Operations:        {stats['total_operations']} ({stats['active_operations']} active)")
    print(f"Search runs:       {stats['total_search_runs']}")
    print(f"Search success:    {stats['avg_success_rate']:.0%}")


async def run(settings: Settings, args: argparse.Namespace) -> None:
    services = Services(settings)
    try:
        services.orchestrator.reconcile_orphans()
        if args.command == "search":
            await cmd_search(services, settings, args)
        elif args.command == "global-search":
            await cmd_global_search(services, settings, args)
        elif args.command == "export":
            cmd_export(services, args)
        elif args.command == "locations":
            cmd_locations(services, args)
        elif args.command == "reset-blacklist":
            cmd_reset_blacklist(services)
        elif args.command == "contact":
            await cmd_contact(services, args)
        elif args.command == "stats":
            cmd_stats(services)
    finally:
        await services.close()


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    try:
        settings = Settings.from_yaml(args.config)
    except (FileNotFoundError, ValueError) as e:
        setup_logging(args.verbose)
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(args.verbose, settings.logging.level)

    try:
        asyncio.run(run(settings, args))
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    except (ProviderError, StoreError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
