"""Data manager for downloading and caching card set sources.

Each set is fetched from one or more JSON sources (see ``SET_SOURCES``) into
the data directory. Downloads only go to allow-listed HTTPS hosts, redirects
included, and metadata is written atomically so an interrupted run never
leaves a half written state behind.
"""

import json
import logging
import re
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Callable
from urllib.parse import urlparse

import httpx
import ijson

from magpie.models import MagpieSet, SetCode
from magpie.set_loader import SetLoadError, load_set

logger = logging.getLogger(__name__)


# Allowed domains for downloading set data
ALLOWED_DOMAINS = [
    "raw.githubusercontent.com",
    "opensheet.elk.sh",
]

# A downloaded set older than this is stale
CACHE_MAX_AGE = timedelta(hours=24)

CTI_SHEET = "https://opensheet.elk.sh/152SuTx1fVc4zsqL4_zVDPx69sd9vYWikc2Ce9Y5vhJE"


@dataclass(frozen=True)
class SetSource:
    """Where a set comes from and how to read it."""

    code: str
    name: str
    format: str
    urls: dict[str, str] = field(default_factory=dict)


SET_SOURCES: dict[str, SetSource] = {
    "com": SetSource(
        code="com",
        name="IMF Competitive",
        format="imf",
        urls={
            "cards": "https://raw.githubusercontent.com/107zxz/inscr-onln-ruleset/main/competitive.json",
        },
    ),
    "cti": SetSource(
        code="cti",
        name="Custom TCG Inscryption",
        format="cti",
        urls={
            "cards": f"{CTI_SHEET}/1",
            "sigils": f"{CTI_SHEET}/2",
        },
    ),
}


@dataclass
class SetStatus:
    """Cache status of one set."""

    code: str
    name: str
    last_updated: datetime | None
    card_count: int
    is_stale: bool

    @property
    def downloaded(self) -> bool:
        return self.last_updated is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "name": self.name,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "card_count": self.card_count,
            "downloaded": self.downloaded,
            "stale": self.is_stale,
        }


@dataclass
class DataStatus:
    """Status of the local data cache."""

    sets: list[SetStatus]

    @property
    def card_count(self) -> int:
        return sum(s.card_count for s in self.sets)

    @property
    def is_stale(self) -> bool:
        return any(s.is_stale for s in self.sets)

    def to_dict(self) -> dict[str, Any]:
        return {
            "card_count": self.card_count,
            "stale": self.is_stale,
            "sets": [s.to_dict() for s in self.sets],
        }


class DataManager:
    """Manages downloading and caching of card set sources."""

    def __init__(self, data_dir: Path, sources: dict[str, SetSource] | None = None):
        """Initialize data manager.

        Args:
            data_dir: Directory for storing downloaded data
            sources: Set sources to manage (default ``SET_SOURCES``)
        """
        self.data_dir = data_dir
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.sources = sources if sources is not None else SET_SOURCES

        self._metadata_path = data_dir / "metadata.json"
        # Serializes metadata read-modify-write between the event loop and
        # the worker thread that loads sets
        self._metadata_lock = Lock()
        self._http_client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, read=120.0),
                # Redirects are followed by hand so each hop can be validated
                follow_redirects=False,
            )
        return self._http_client

    async def _validated_get(self, url: str) -> httpx.Response:
        """Open a streamed GET request, validating every redirect.

        The caller must close the returned response.

        Raises:
            ValueError: If a redirect goes to a non-allowed domain
        """
        client = await self._get_client()
        max_redirects = 5

        for _ in range(max_redirects):
            response = await client.send(client.build_request("GET", url), stream=True)

            if response.is_redirect:
                redirect_url = response.headers.get("location")
                await response.aclose()
                if not redirect_url:
                    raise ValueError("Redirect response missing location header")

                # Handle relative URLs
                if redirect_url.startswith("/"):
                    parsed = urlparse(url)
                    redirect_url = f"{parsed.scheme}://{parsed.netloc}{redirect_url}"

                if not self.is_valid_download_url(redirect_url):
                    raise ValueError(f"Redirect to non-allowed domain: {redirect_url}")

                url = redirect_url
                continue

            return response

        raise ValueError(f"Too many redirects (max {max_redirects})")

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def __aenter__(self) -> "DataManager":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def is_valid_download_url(self, url: str) -> bool:
        """Validate that URL is HTTPS on an allowed domain."""
        if not url:
            return False

        try:
            parsed = urlparse(url)
        except ValueError:
            return False

        if parsed.scheme != "https":
            return False

        return parsed.netloc in ALLOWED_DOMAINS

    def is_safe_filename(self, filename: str) -> bool:
        """Check if filename is safe (no path traversal)."""
        if not filename:
            return False

        if ".." in filename:
            return False

        if filename.startswith("/") or filename.startswith("\\"):
            return False

        # Only allow alphanumeric, dash, underscore, dot
        return re.match(r"^[a-zA-Z0-9_.-]+$", filename) is not None

    def get_source(self, code: str) -> SetSource:
        """Look up a set source.

        Raises:
            ValueError: If no source is configured for ``code``
        """
        source = self.sources.get(code.lower())
        if source is None:
            known = ", ".join(sorted(self.sources))
            raise ValueError(f"Unknown set code: {code} (known: {known})")
        return source

    def set_paths(self, code: str) -> dict[str, Path]:
        """Local file of every source part of a set.

        Raises:
            ValueError: If the set is unknown or a file name is unsafe
        """
        source = self.get_source(code)
        paths = {}
        for part in source.urls:
            filename = f"{source.code}_{part}.json"
            if not self.is_safe_filename(filename):
                raise ValueError(f"Unsafe filename: {filename}")
            paths[part] = self.data_dir / filename
        return paths

    async def _download_file(
        self,
        url: str,
        output_path: Path,
        progress_callback: Callable[[int, int], None] | None = None,
    ) -> int:
        """Stream ``url`` into ``output_path``, replacing it only on success."""
        if not self.is_valid_download_url(url):
            raise ValueError(f"Invalid download URL: {url}")

        temp_path = output_path.with_name(f".{output_path.name}.part")
        downloaded = 0
        try:
            response = await self._validated_get(url)
            try:
                response.raise_for_status()
                total_size = int(response.headers.get("Content-Length", 0))

                with open(temp_path, "wb") as f:
                    async for chunk in response.aiter_bytes(chunk_size=8192):
                        f.write(chunk)
                        downloaded += len(chunk)
                        if progress_callback:
                            progress_callback(downloaded, total_size)
            finally:
                await response.aclose()

            temp_path.replace(output_path)
        except (httpx.HTTPError, OSError, ValueError):
            # Remove partial download on error
            temp_path.unlink(missing_ok=True)
            raise

        return downloaded

    async def download_set(
        self,
        code: str,
        progress_callback: Callable[[int, int], None] | None = None,
    ) -> dict[str, Path]:
        """Download every source part of a set.

        Args:
            code: Set code, e.g. ``com``
            progress_callback: Optional callback for progress updates (downloaded, total)

        Returns:
            Local path of every downloaded part

        Raises:
            ValueError: If the set is unknown or a URL is not allowed
            httpx.HTTPError: If a download fails
        """
        source = self.get_source(code)
        paths = self.set_paths(code)

        for part, url in source.urls.items():
            logger.info("Downloading %s %s from %s", source.code, part, url)
            size = await self._download_file(url, paths[part], progress_callback)
            logger.debug("Downloaded %d bytes to %s", size, paths[part])

        def record_download(sets: dict[str, Any]) -> None:
            sets[source.code] = {
                "downloaded_at": datetime.now(timezone.utc).isoformat(),
                "card_count": 0,  # Updated after loading
                "files": {part: path.name for part, path in paths.items()},
            }

        self._update_metadata(record_download)
        return paths

    async def download_stale(
        self,
        force: bool = False,
        progress_callback: Callable[[int, int], None] | None = None,
    ) -> list[str]:
        """Download every set that is stale (or all of them with ``force``).

        Returns:
            Codes of the downloaded sets
        """
        downloaded = []
        for code in self.sources:
            if force or self.is_cache_stale(code):
                await self.download_set(code, progress_callback)
                downloaded.append(code)
            else:
                logger.info("Set %s is up to date", code)
        return downloaded

    def _load_metadata(self) -> dict[str, Any] | None:
        """Load metadata from file."""
        if not self._metadata_path.exists():
            return None

        try:
            with open(self._metadata_path) as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError):
            logger.warning("Ignoring unreadable metadata file %s", self._metadata_path)
            return None

    def _write_metadata_atomic(self, metadata: dict[str, Any]) -> None:
        """Write metadata with write-to-temp-then-rename."""
        # Same directory so the rename stays on one filesystem
        temp_fd, temp_path = tempfile.mkstemp(
            dir=self.data_dir, prefix=".metadata_", suffix=".tmp"
        )
        try:
            with open(temp_fd, "w") as f:
                json.dump(metadata, f)
            Path(temp_path).replace(self._metadata_path)
        except Exception:
            Path(temp_path).unlink(missing_ok=True)
            raise

    def _update_metadata(self, update: Callable[[dict[str, Any]], None]) -> None:
        """Apply ``update`` to the per-set metadata and write it back.

        The whole read-modify-write runs under ``_metadata_lock``, so a
        download on the event loop and a load on a worker thread cannot
        overwrite each other's entries.
        """
        with self._metadata_lock:
            metadata = self._load_metadata() or {}
            update(metadata.setdefault("sets", {}))
            self._write_metadata_atomic(metadata)

    def _set_metadata(self, code: str) -> dict[str, Any] | None:
        metadata = self._load_metadata() or {}
        return metadata.get("sets", {}).get(code)

    def _downloaded_at(self, code: str) -> datetime | None:
        entry = self._set_metadata(code)
        if not entry or not entry.get("downloaded_at"):
            return None
        try:
            return datetime.fromisoformat(entry["downloaded_at"])
        except ValueError:
            return None

    def is_cache_stale(self, code: str, now: datetime | None = None) -> bool:
        """Check if a set is missing or older than ``CACHE_MAX_AGE``."""
        downloaded_at = self._downloaded_at(code)
        if downloaded_at is None:
            return True

        if any(not path.exists() for path in self.set_paths(code).values()):
            return True

        now = now or datetime.now(timezone.utc)
        return now - downloaded_at > CACHE_MAX_AGE

    def get_status(self) -> DataStatus:
        """Get status of every managed set."""
        statuses = []
        for code, source in self.sources.items():
            entry = self._set_metadata(code) or {}
            statuses.append(
                SetStatus(
                    code=code,
                    name=source.name,
                    last_updated=self._downloaded_at(code),
                    card_count=entry.get("card_count", 0),
                    is_stale=self.is_cache_stale(code),
                )
            )
        return DataStatus(sets=statuses)

    def update_card_count(self, code: str, count: int) -> None:
        """Record the number of cards loaded for a set."""
        def record_count(sets: dict[str, Any]) -> None:
            sets.setdefault(code, {})["card_count"] = count

        self._update_metadata(record_count)

    def is_downloaded(self, code: str) -> bool:
        return all(path.exists() for path in self.set_paths(code).values())

    def load_sets(self, codes: list[str] | None = None) -> dict[str, MagpieSet]:
        """Load every downloaded set from disk.

        Sets that are not downloaded are skipped. A set whose data cannot be
        loaded is logged and skipped so the other sets stay available.

        Returns:
            Loaded sets by code
        """
        sets: dict[str, MagpieSet] = {}
        for code in codes or list(self.sources):
            source = self.get_source(code)
            if not self.is_downloaded(code):
                logger.info("Set %s is not downloaded, skipping", code)
                continue

            try:
                card_set = load_set(source.format, self.set_paths(code), SetCode(source.code))
            except (SetLoadError, ijson.JSONError, KeyError, ValueError) as e:
                logger.error("Failed to load set %s: %s", code, e)
                continue

            sets[source.code] = card_set
            self.update_card_count(source.code, len(card_set))
        return sets
