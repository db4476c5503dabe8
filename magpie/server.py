"""MCP server for local card set data.

Exposes fuzzy card lookup, the card query language and sigil lookup as MCP
tools over stdio, backed by set data cached by ``DataManager``.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import mcp.server.stdio
import mcp.types as types
from mcp.server.lowlevel import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from magpie import __version__
from magpie.data_manager import DataManager
from magpie.errors import SYNTAX_SUMMARY, QueryError
from magpie.filters import evaluate
from magpie.fuzzy import fuzzy_best
from magpie.models import MagpieSet
from magpie.query_compiler import compile_query
from magpie.search import (
    DEFAULT_SET,
    SearchRequest,
    card_to_dict,
    fuzzy_search,
    suggest_names,
)

logger = logging.getLogger(__name__)

SERVER_NAME = "magpie"


@dataclass
class Tool:
    """Tool definition for MCP."""

    name: str
    description: str
    inputSchema: dict[str, Any]


SETS_PROPERTY = {
    "type": "array",
    "items": {"type": "string"},
    "description": f"Set codes to search (e.g. ['com', 'cti']). Defaults to '{DEFAULT_SET}'; use ['*'] for every set.",
}


class MagpieServer:
    """Magpie MCP server.

    Sets are loaded from the data directory on first use and replaced as a
    whole after a refresh.
    """

    name = SERVER_NAME
    version = __version__

    def __init__(self, data_dir: Path):
        self.data_dir = data_dir

        self._sets: dict[str, MagpieSet] | None = None
        self._data_manager = DataManager(data_dir)
        self._refresh_task: asyncio.Task | None = None
        self._refresh_status: str = "idle"
        self._sets_lock = asyncio.Lock()  # Guards loading and swapping sets

    async def cleanup(self) -> None:
        """Cancel background refresh and release the HTTP client."""
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None

        await self._data_manager.close()

    async def __aenter__(self) -> "MagpieServer":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.cleanup()

    def _init_sets(self, sets: dict[str, MagpieSet]) -> None:
        """Use the given sets instead of loading from disk (for testing)."""
        self._sets = dict(sets)

    async def _get_sets(self) -> dict[str, MagpieSet]:
        async with self._sets_lock:
            if self._sets is None:
                self._sets = await asyncio.to_thread(self._data_manager.load_sets)
                logger.info("Loaded %d set(s): %s", len(self._sets), ", ".join(self._sets))
            return self._sets

    async def _select_sets(self, codes: list[str] | None) -> list[MagpieSet]:
        sets = await self._get_sets()
        if not codes:
            codes = [DEFAULT_SET]
        if "*" in codes:
            return list(sets.values())
        return [sets[code.lower()] for code in codes if code.lower() in sets]

    def list_tools(self) -> list[Tool]:
        """List available tools."""
        return [
            Tool(
                name="search_card",
                description="Find the card whose name best matches the given text in each selected set. "
                "Tolerates typos and partial names. When nothing matches, close names are suggested.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "name": {
                            "type": "string",
                            "description": "Card name, possibly misspelled (e.g. 'stoat', 'rivr snaper')",
                        },
                        "sets": SETS_PROPERTY,
                    },
                    "required": ["name"],
                },
            ),
            Tool(
                name="query_cards",
                description=f"Search cards with the card query language. {SYNTAX_SUMMARY}",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "query": {
                            "type": "string",
                            "description": "Query (e.g. 'rarity:rare attack>=2 !trait:hard')",
                        },
                        "sets": SETS_PROPERTY,
                        "limit": {
                            "type": "integer",
                            "description": "Maximum results to return (default 20, max 100)",
                            "default": 20,
                            "minimum": 1,
                            "maximum": 100,
                        },
                        "offset": {
                            "type": "integer",
                            "description": "Number of results to skip for pagination (default 0)",
                            "default": 0,
                            "minimum": 0,
                        },
                    },
                    "required": ["query"],
                },
            ),
            Tool(
                name="get_sigil",
                description="Look up the description of a sigil by (approximate) name.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "name": {
                            "type": "string",
                            "description": "Sigil name (e.g. 'Airborne')",
                        },
                        "sets": SETS_PROPERTY,
                    },
                    "required": ["name"],
                },
            ),
            Tool(
                name="list_sets",
                description="List the loaded card sets with their codes and card counts.",
                inputSchema={
                    "type": "object",
                    "properties": {},
                },
            ),
            Tool(
                name="data_status",
                description="Check the status of the local set data cache. "
                "Returns card counts, last download times, and whether data is stale.",
                inputSchema={
                    "type": "object",
                    "properties": {},
                },
            ),
            Tool(
                name="refresh_data",
                description="Download the latest set data for every stale set and reload it.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "force": {
                            "type": "boolean",
                            "description": "Download every set even when it is current",
                            "default": False,
                        },
                    },
                },
            ),
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Execute a tool.

        Args:
            name: Tool name
            arguments: Tool arguments

        Returns:
            Tool result dictionary
        """
        if name == "search_card":
            return await self._search_card(arguments)
        elif name == "query_cards":
            return await self._query_cards(arguments)
        elif name == "get_sigil":
            return await self._get_sigil(arguments)
        elif name == "list_sets":
            return await self._list_sets(arguments)
        elif name == "data_status":
            return await self._data_status(arguments)
        elif name == "refresh_data":
            return await self._refresh_data(arguments)
        else:
            return {"error": f"Unknown tool: {name}"}

    async def _search_card(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Fuzzy card lookup.

        Returns:
            {"cards": [...], "missing": [...]} with one card per matched set
        """
        name = arguments.get("name", "").strip()
        if not name:
            return {"error": "'name' must be provided"}

        card_sets = await self._select_sets(arguments.get("sets"))
        if not card_sets:
            return {
                "error": "No matching sets are loaded",
                "hint": "Use list_sets to see loaded sets or refresh_data to download them",
            }

        result = fuzzy_search(SearchRequest(term=name), card_sets)
        if not result.cards:
            return {
                "error": "Card not found",
                "hint": f"Try query_cards with query=\"name:{name}\"",
                "missing": result.missing,
                "suggestions": suggest_names(name, card_sets),
            }
        return result.to_dict()

    async def _query_cards(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Run a query.

        Returns:
            {"cards": [...], "total_count": int, "query_time_ms": int, "offset": int}
        """
        query = arguments.get("query", "")
        limit = max(1, min(arguments.get("limit", 20), 100))
        offset = max(0, arguments.get("offset", 0))

        start_time = time.time()

        try:
            filters = compile_query(query)
        except QueryError as e:
            return {
                "error": e.message,
                "hint": e.hint,
                "supported_syntax": e.supported_syntax,
            }

        card_sets = await self._select_sets(arguments.get("sets"))
        result = evaluate(card_sets, filters)

        elapsed_ms = int((time.time() - start_time) * 1000)

        return {
            "cards": [card_to_dict(card) for card in result.cards[offset : offset + limit]],
            "total_count": len(result),
            "filters": result.describe(),
            "query_time_ms": elapsed_ms,
            "offset": offset,
        }

    async def _get_sigil(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Sigil description lookup.

        Returns:
            {"name": str, "description": str, "set": str}
        """
        name = arguments.get("name", "").strip()
        if not name:
            return {"error": "'name' must be provided"}

        candidates = [
            (str(card_set.code), sigil, text)
            for card_set in await self._select_sets(arguments.get("sets"))
            for sigil, text in card_set.sigils_description.items()
        ]
        best = fuzzy_best(name, candidates, key=lambda entry: entry[1])
        if best is None:
            return {"error": "Sigil not found", "hint": "Check the spelling of the sigil name"}

        code, sigil, text = best.item
        return {"name": sigil, "description": text, "set": code, "rank": round(best.rank, 3)}

    async def _list_sets(self, arguments: dict[str, Any]) -> dict[str, Any]:
        sets = await self._get_sets()
        return {
            "sets": [
                {"code": code, "name": card_set.name, "card_count": len(card_set)}
                for code, card_set in sets.items()
            ],
            "default": DEFAULT_SET,
        }

    async def _data_status(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Get data cache status.

        Returns:
            {"card_count": int, "stale": bool, "sets": [...], "refresh_status": str}
        """
        result = self._data_manager.get_status().to_dict()

        # Include refresh status if not idle
        if self._refresh_status != "idle":
            result["refresh_status"] = self._refresh_status

        return result

    async def _do_refresh(self, force: bool) -> None:
        """Download stale sets and swap in the reloaded data (runs in background)."""
        try:
            self._refresh_status = "downloading"
            downloaded = await self._data_manager.download_stale(force=force)

            self._refresh_status = "loading"
            sets = await asyncio.to_thread(self._data_manager.load_sets)

            async with self._sets_lock:
                self._sets = sets

            logger.info("Refreshed set(s): %s", ", ".join(downloaded) or "none")
            self._refresh_status = "completed"

        except Exception as e:
            logger.exception("Data refresh failed")
            self._refresh_status = f"error: {str(e)}"

        finally:
            self._refresh_task = None

    async def _refresh_data(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Refresh data cache.

        Returns:
            {"status": str, "message": str}
        """
        force = bool(arguments.get("force", False))

        # Check if already refreshing
        if self._refresh_task is not None and not self._refresh_task.done():
            return {
                "status": "in_progress",
                "message": f"Data refresh already in progress: {self._refresh_status}",
            }

        # Check if refresh completed recently
        if self._refresh_status == "completed":
            self._refresh_status = "idle"
            return {
                "status": "completed",
                "message": "Data refresh completed successfully",
            }

        # Check if last refresh had an error
        if self._refresh_status.startswith("error:"):
            error_msg = self._refresh_status
            self._refresh_status = "idle"
            return {
                "status": "error",
                "message": error_msg,
            }

        if not force and not self._data_manager.get_status().is_stale:
            return {
                "status": "already_current",
                "message": "Data is already up to date",
            }

        # Start download in background
        self._refresh_task = asyncio.create_task(self._do_refresh(force))

        return {
            "status": "downloading",
            "message": "Data refresh started. Use data_status to check progress.",
        }


def create_server(data_dir: Path) -> tuple[Server, MagpieServer]:
    """Create MCP server instance.

    Args:
        data_dir: Directory for storing set data

    Returns:
        Tuple of (MCP Server, MagpieServer instance for cleanup)
    """
    magpie = MagpieServer(data_dir)

    # Create low-level MCP server
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def handle_list_tools() -> list[types.Tool]:
        """Return available tools."""
        return [
            types.Tool(
                name=t.name,
                description=t.description,
                inputSchema=t.inputSchema,
            )
            for t in magpie.list_tools()
        ]

    @server.call_tool()
    async def handle_call_tool(
        name: str, arguments: dict[str, Any]
    ) -> list[types.TextContent]:
        """Handle tool execution."""
        result = await magpie.call_tool(name, arguments or {})
        return [
            types.TextContent(
                type="text",
                text=json.dumps(result, default=str),
            )
        ]

    return server, magpie


async def run_server(data_dir: Path | None = None) -> None:
    """Run the MCP server over stdio.

    Args:
        data_dir: Optional data directory (defaults to ./data relative to project root)
    """
    if data_dir is None:
        project_root = Path(__file__).parent.parent
        data_dir = project_root / "data"

    data_dir.mkdir(parents=True, exist_ok=True)

    server, magpie = create_server(data_dir)

    try:
        async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                InitializationOptions(
                    server_name=SERVER_NAME,
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                ),
            )
    finally:
        await magpie.cleanup()


if __name__ == "__main__":
    asyncio.run(run_server())
