"""
Release metadata client for the GitHub REST API.

Every lookup goes through the ReleaseCache first. Network and decoding failures
never reach the caller: a missing release (404) and a failed request both come
back as None, the latter logged as an error.
"""

import asyncio
import json
import logging
import time
from typing import Any, List, Optional

import aiohttp
from pydantic import TypeAdapter, ValidationError

from artifact_updater.artifact_models.release import ReleaseMetadata
from artifact_updater.release_source.release_cache import ReleaseCache
from artifact_updater.updater_exceptions import ParseError, ReleaseNotFound, TransportError
from artifact_updater.updater_logger import UpdaterLogger

API_BASE = "https://api.github.com"
RAW_BASE = "https://raw.githubusercontent.com"
DEFAULT_TIMEOUT_SECONDS = 10.0
USER_AGENT = "artifact-updater/1.0"

_RELEASE_LIST = TypeAdapter(List[ReleaseMetadata])


class ReleaseSource:
    """
    Fetches release metadata for source repositories.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        cache: ReleaseCache,
        logger: UpdaterLogger,
        api_base: str = API_BASE,
        raw_base: str = RAW_BASE,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """
        Initialize the release source.

        Args:
            session: Shared HTTP session
            cache: Cache consulted before, and filled after, every lookup
            logger: Logger for fetch results and failures
            api_base: Base URL of the release API
            raw_base: Base URL raw repository files are served from
            timeout_seconds: Bound on each request
        """
        self.session = session
        self.cache = cache
        self.logger = logger
        self.api_base = api_base.rstrip("/")
        self.raw_base = raw_base.rstrip("/")
        self.timeout_seconds = timeout_seconds

    async def latest_release(
        self, source_id: str, include_prerelease: bool = False
    ) -> Optional[ReleaseMetadata]:
        """
        Get the latest release of a repository.

        Args:
            source_id: Repository in "owner/repo" form
            include_prerelease: Consider pre-releases (lists all releases and
                takes the first) instead of asking for the latest stable one

        Returns:
            The release, or None if there is none or the lookup failed
        """
        cached = self.cache.get(source_id)
        if cached is not None:
            self.logger.log(
                f"Using cached release for {source_id}: {cached.tag_name}",
                logging.DEBUG,
            )
            return cached

        if include_prerelease:
            endpoint = f"{self.api_base}/repos/{source_id}/releases"
        else:
            endpoint = f"{self.api_base}/repos/{source_id}/releases/latest"

        try:
            payload = await self._get_json(endpoint)
            release = self._parse_release(payload, include_prerelease)
        except ReleaseNotFound:
            self.logger.log(f"No releases found at: {endpoint}", logging.WARNING)
            return None
        except (TransportError, ParseError) as e:
            self.logger.log(
                f"Failed to fetch release for {source_id}: {e.message}",
                logging.ERROR,
            )
            return None

        if release is None:
            self.logger.log(f"No releases found at: {endpoint}", logging.WARNING)
            return None

        self.cache.put(source_id, release)
        self.logger.log(
            f"Fetched latest release for {source_id}: {release.tag_name}",
            logging.INFO,
        )
        return release

    async def release_for_tag(self, source_id: str, version: str) -> Optional[ReleaseMetadata]:
        """
        Get the release of a specific version.

        Tries the tag ``v{version}`` first, then the bare version.

        Args:
            source_id: Repository in "owner/repo" form
            version: Version the release is tagged with

        Returns:
            The release, or None if neither tag exists or the lookup failed
        """
        tags = [version] if version.lower().startswith("v") else [f"v{version}", version]
        for tag in tags:
            endpoint = f"{self.api_base}/repos/{source_id}/releases/tags/{tag}"
            try:
                payload = await self._get_json(endpoint)
                return self._parse_release(payload, include_prerelease=False)
            except ReleaseNotFound:
                continue
            except (TransportError, ParseError) as e:
                self.logger.log(
                    f"Failed to fetch release {tag} for {source_id}: {e.message}",
                    logging.ERROR,
                )
                return None

        self.logger.log(
            f"No release tagged {version} found for {source_id}",
            logging.WARNING,
        )
        return None

    async def fetch_raw_file(self, repo: str, path: str, branch: str = "main") -> Optional[str]:
        """
        Fetch a raw text file from a repository.

        Args:
            repo: Repository in "owner/repo" form
            path: Path of the file inside the repository
            branch: Branch to read from

        Returns:
            The file content, or None if it is missing or the fetch failed
        """
        # The query parameter defeats intermediate caches
        url = f"{self.raw_base}/{repo}/{branch}/{path.lstrip('/')}"
        params = {"cb": str(int(time.time() * 1000))}
        self.logger.log(f"Fetching raw file: {url}", logging.INFO)

        try:
            async with self.session.get(
                url,
                params=params,
                headers={"User-Agent": USER_AGENT},
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                if response.status == 404:
                    self.logger.log(f"File not found at: {url}", logging.WARNING)
                    return None
                if response.status != 200:
                    self.logger.log(f"Server returned {response.status}: {url}", logging.ERROR)
                    return None
                text = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.log(f"Failed to fetch raw file {url}: {e!r}", logging.ERROR)
            return None

        self.logger.log(f"Fetched raw file ({len(text)} characters)", logging.INFO)
        return text

    async def _get_json(self, url: str) -> Any:
        """
        GET ``url`` and decode its JSON body.

        Raises:
            ReleaseNotFound: On a 404 response
            TransportError: On timeouts, connection failures and other non-2xx statuses
            ParseError: If the body is not valid JSON
        """
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": USER_AGENT,
        }
        try:
            async with self.session.get(
                url,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                if response.status == 404:
                    raise ReleaseNotFound(f"No release at {url}")
                if not 200 <= response.status < 300:
                    raise TransportError(
                        f"Release API returned {response.status}: {url}",
                        status=response.status,
                    )
                body = await response.text()
        except asyncio.TimeoutError as e:
            raise TransportError(f"Timed out after {self.timeout_seconds}s: {url}") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"Request failed: {url}: {e!r}") from e

        try:
            return json.loads(body)
        except ValueError as e:
            raise ParseError(f"Malformed response body from {url}: {e}") from e

    def _parse_release(self, payload: Any, include_prerelease: bool) -> Optional[ReleaseMetadata]:
        try:
            if include_prerelease and isinstance(payload, list):
                releases = _RELEASE_LIST.validate_python(payload)
                return releases[0] if releases else None
            if not isinstance(payload, dict):
                raise ParseError(f"Unexpected release payload type: {type(payload).__name__}")
            return ReleaseMetadata.model_validate(payload)
        except ValidationError as e:
            raise ParseError(f"Malformed release metadata: {e.error_count()} error(s)") from e
