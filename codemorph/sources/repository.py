"""Hosted-git ingestion: turn a GitHub repository URL into project files."""

from __future__ import annotations

import base64
import binascii
import json
import re
from http.client import HTTPException
from typing import Any, Dict, List, Tuple
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlparse
from urllib.request import Request, urlopen

from ..config import RepositoryConfig
from ..errors import InvalidReference, MigrationError, RepositoryUnavailable
from ..events import EventLog
from ..logging import get_logger
from ..models import AgentRole, ProjectFile
from .filters import is_source_path

_NOT_FOUND = "Not Found"
_GITHUB_HOSTS = ("github.com/", "www.github.com/")
_WHITESPACE_RE = re.compile(r"\s")


def parse_repository_url(url: str) -> Tuple[str, str]:
    """Return ``(owner, repo)`` for a GitHub URL or ``owner/repo`` shorthand."""
    clean = url.strip().rstrip("/")
    parsed = urlparse(clean)
    if parsed.scheme and parsed.netloc:
        path = parsed.path
    else:
        path = clean
        for host in _GITHUB_HOSTS:
            if path.startswith(host):
                path = path[len(host):]
                break

    parts = [part for part in path.split("/") if part]
    if len(parts) < 2:
        raise InvalidReference(f"Invalid GitHub URL: {url!r}")
    owner, repo = parts[0], parts[1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not repo:
        raise InvalidReference(f"Invalid GitHub URL: {url!r}")
    return owner, repo


class RepositorySource:
    """Fetches source files from the GitHub trees and blobs API.

    ``fetch`` never raises for ingestion problems: it logs one error entry and
    returns an empty list so callers can fall back to uploaded files.
    """

    def __init__(
        self,
        config: RepositoryConfig | None = None,
        *,
        event_log: EventLog | None = None,
    ) -> None:
        self.config = config or RepositoryConfig()
        self.event_log = event_log if event_log is not None else EventLog()
        self.logger = get_logger("sources.repository")

    def fetch(self, url: str) -> List[ProjectFile]:
        """Return pending project files for ``url``, or ``[]`` on any failure."""
        try:
            return self._fetch(url)
        except (MigrationError, HTTPException, OSError, ValueError) as exc:
            self.logger.debug("Repository ingestion failed for %s", url, exc_info=True)
            self.event_log.error(AgentRole.EXPLORER, f"GitHub Fetch Error: {exc}")
            return []

    def _fetch(self, url: str) -> List[ProjectFile]:
        owner, repo = parse_repository_url(url)
        self.event_log.info(AgentRole.EXPLORER, f"Connecting to GitHub API for {owner}/{repo}...")

        data = self._get_json(self._tree_url(owner, repo, self.config.default_branch), allow_not_found=True)
        if data.get("message") == _NOT_FOUND:
            self.event_log.warning(
                AgentRole.EXPLORER,
                f"Primary branch '{self.config.default_branch}' not found, "
                f"trying '{self.config.fallback_branch}'...",
            )
            data = self._get_json(
                self._tree_url(owner, repo, self.config.fallback_branch), allow_not_found=True
            )

        tree = data.get("tree")
        if not isinstance(tree, list):
            raise RepositoryUnavailable("Could not retrieve repository tree.")

        entries = self._select_entries(tree)
        self.event_log.info(
            AgentRole.EXPLORER, f"Found {len(entries)} source files. Fetching contents..."
        )

        # Any failure below propagates and discards the files fetched so far.
        files: List[ProjectFile] = []
        for entry in entries:
            blob_url = entry.get("url") or self._blob_url(owner, repo, str(entry.get("sha", "")))
            blob = self._get_json(str(blob_url))
            files.append(ProjectFile.create(str(entry["path"]), self._decode_blob(blob)))
        self.logger.debug("Fetched %d blobs from %s/%s", len(files), owner, repo)
        return files

    def _select_entries(self, tree: List[Any]) -> List[Dict[str, Any]]:
        selected: List[Dict[str, Any]] = []
        for item in tree:
            if not isinstance(item, dict) or item.get("type") != "blob":
                continue
            path = item.get("path")
            if not isinstance(path, str):
                continue
            if not is_source_path(
                path,
                extensions=self.config.extensions,
                excluded_dirs=self.config.excluded_dirs,
            ):
                continue
            selected.append(item)
            if len(selected) >= self.config.max_files:
                break
        return selected

    @staticmethod
    def _decode_blob(blob: Dict[str, Any]) -> str:
        content = blob.get("content")
        if not isinstance(content, str):
            raise RepositoryUnavailable("Blob response did not include content")
        if blob.get("encoding") != "base64":
            return content
        try:
            decoded = base64.b64decode(_WHITESPACE_RE.sub("", content), validate=True)
        except binascii.Error as exc:
            raise RepositoryUnavailable("Blob content is not valid base64") from exc
        return decoded.decode("utf-8", errors="replace")

    def _tree_url(self, owner: str, repo: str, branch: str) -> str:
        return (
            f"{self.config.api_base}/repos/{quote(owner)}/{quote(repo)}"
            f"/git/trees/{quote(branch, safe='')}?recursive=1"
        )

    def _blob_url(self, owner: str, repo: str, sha: str) -> str:
        return f"{self.config.api_base}/repos/{quote(owner)}/{quote(repo)}/git/blobs/{sha}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    def _get_json(self, url: str, *, allow_not_found: bool = False) -> Dict[str, Any]:
        request = Request(url, headers=self._headers(), method="GET")
        try:
            with urlopen(request, timeout=self.config.request_timeout) as response:  # type: ignore[arg-type]
                raw = response.read()
        except HTTPError as exc:
            if exc.code == 404 and allow_not_found:
                return {"message": _NOT_FOUND}
            raise RepositoryUnavailable(
                f"GitHub request failed with status {exc.code}: {exc.reason}"
            ) from exc
        except URLError as exc:
            raise RepositoryUnavailable(f"GitHub request failed: {exc.reason}") from exc
        except HTTPException as exc:
            raise RepositoryUnavailable(f"GitHub response was cut short: {exc!r}") from exc

        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise RepositoryUnavailable("GitHub returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise RepositoryUnavailable("GitHub returned an unexpected payload")
        return payload


__all__ = ["RepositorySource", "parse_repository_url"]
