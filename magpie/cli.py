"""CLI for downloading set data and searching it."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import httpx

from magpie.data_manager import DataManager
from magpie.search import SearchMode, SearchResult, search
from magpie.set_loader import SetLoadError


def format_size(bytes_size: float) -> str:
    """Format bytes as human-readable size."""
    for unit in ["B", "KB", "MB", "GB"]:
        if bytes_size < 1024:
            return f"{bytes_size:.1f} {unit}"
        bytes_size /= 1024
    return f"{bytes_size:.1f} TB"


def print_progress_bar(downloaded: int, total: int) -> None:
    """Print a progress bar to stdout.

    Matches the progress_callback signature of DataManager.download_set.
    Sheet exports are often sent without a length, so an unknown total
    only shows the byte count.
    """
    if total == 0:
        sys.stdout.write(f"\r  {format_size(downloaded)}")
        sys.stdout.flush()
        return

    bar_length = 40
    percent = min(downloaded / total, 1.0)
    filled = int(bar_length * percent)
    bar = "█" * filled + "░" * (bar_length - filled)

    sys.stdout.write(
        f"\r  [{bar}] {percent*100:.1f}% ({format_size(downloaded)} / {format_size(total)})"
    )
    sys.stdout.flush()


async def download_data(data_dir: Path, set_code: str | None = None, force: bool = False) -> int:
    """Download set data with progress bar, then load it to count cards.

    Returns:
        Process exit code
    """
    manager = DataManager(data_dir)

    try:
        codes = [set_code] if set_code else list(manager.sources)
        for code in codes:
            source = manager.get_source(code)
            if not force and not manager.is_cache_stale(code):
                print(f"{source.name} ({source.code}) is already up to date.")
                continue

            print(f"Downloading {source.name} ({source.code})...")
            await manager.download_set(code, progress_callback=print_progress_bar)
            print()

        print()
        print("Loading sets...")
        sets = manager.load_sets(codes)
        for code, card_set in sets.items():
            print(f"  {code}: {len(card_set):,} cards, {len(card_set.sigils_description):,} sigils")

        missing = [code for code in codes if code not in sets]
        if missing:
            print(f"Failed to load: {', '.join(missing)}")
            return 1

        print()
        print("Done! You can now use the MCP server.")
        return 0

    except (ValueError, httpx.HTTPError, SetLoadError) as e:
        print()
        print(f"Error: {e}")
        return 1
    finally:
        await manager.close()


def show_status(data_dir: Path) -> int:
    """Show current data status."""
    status = DataManager(data_dir).get_status()

    print("Magpie Data Status")
    print("-" * 40)

    for set_status in status.sets:
        print(f"  {set_status.name} ({set_status.code})")
        if set_status.last_updated:
            print(f"    Last updated: {set_status.last_updated}")
        else:
            print("    Last updated: Never")
        print(f"    Card count:   {set_status.card_count:,}")
        print(f"    Stale:        {'Yes' if set_status.is_stale else 'No'}")

    if status.is_stale:
        print()
        print("Run 'python -m magpie.cli download' to update.")
    return 0


def print_result(result: SearchResult) -> None:
    """Print one search result in a readable form."""
    if result.error is not None:
        print(f"Error: {result.error}")
        return

    if result.request.debug:
        print(json.dumps(result.to_dict(), indent=2, default=str))
        return

    if result.mode is SearchMode.QUERY:
        print(f"Query: {result.description}")
        print(f"  {result.total} card(s) in {', '.join(result.set_codes) or 'no sets'}")
        for card in result.cards:
            print(f"  - {card.name} [{card.set_code}]")
        if result.truncated:
            print(f"  ... and {result.total - len(result.cards)} more")
        return

    for card, rank in zip(result.cards, result.ranks):
        print(f"{card.name} [{card.set_code}] ({rank:.0%} match)")
        print(f"  {card.rarity} | {card.attack}/{card.health}")
        if card.sigils:
            print(f"  Sigils: {', '.join(card.sigils)}")
        if card.description:
            print(f"  {card.description}")
    for code in result.missing:
        print(f"No card matching '{result.request.term}' in {code}")


def run_search(data_dir: Path, text: str, query: bool = False) -> int:
    """Run search requests against the downloaded sets.

    Text without any ``[...]`` request is searched as a single term.
    """
    sets = DataManager(data_dir).load_sets()
    if not sets:
        print("No set data found. Run 'python -m magpie.cli download' first.")
        return 1

    if "[" not in text:
        text = f"{'q' if query else ''}[{text}]"

    results = search(text, sets)
    for result in results:
        print_result(result)
    return 1 if any(result.error is not None for result in results) else 0


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Magpie - Search Inscryption fan format card sets",
    )

    parser.add_argument(
        "--data-dir",
        type=Path,
        default=Path("./data"),
        help="Directory for storing data (default: ./data)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Download command
    download_parser = subparsers.add_parser(
        "download",
        help="Download or update set data",
    )
    download_parser.add_argument(
        "--set",
        dest="set_code",
        help="Only download this set (default: every set)",
    )
    download_parser.add_argument(
        "--force",
        action="store_true",
        help="Force re-download even if data is current",
    )

    # Status command
    subparsers.add_parser(
        "status",
        help="Show current data status",
    )

    # Search command
    search_parser = subparsers.add_parser(
        "search",
        help="Search cards by name, e.g. 'stoat' or 'com|cti[stoat]'",
    )
    search_parser.add_argument("text", help="Card name or search requests")

    # Query command
    query_parser = subparsers.add_parser(
        "query",
        help="Search cards with a query, e.g. 'rarity:rare attack>2'",
    )
    query_parser.add_argument("text", help="Query or search requests")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Create data directory
    args.data_dir.mkdir(parents=True, exist_ok=True)

    if args.command == "download":
        return asyncio.run(download_data(args.data_dir, args.set_code, args.force))
    elif args.command == "status":
        return show_status(args.data_dir)
    elif args.command == "search":
        return run_search(args.data_dir, args.text)
    elif args.command == "query":
        return run_search(args.data_dir, args.text, query=True)
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
