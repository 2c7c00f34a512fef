"""GitHub REST client for plugin releases.

Releases act as the store of published plugin archives: each release
carries one archive as an asset, and documentation is later rebuilt
from those assets.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from colaplug.__version__ import __version__
from colaplug.utils.exceptions import RepositoryError

logger = structlog.get_logger(__name__)

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_UPLOADS_URL = "https://uploads.github.com"
API_VERSION = "2022-11-28"


@dataclass
class ReleaseAsset:
    """A file attached to a release."""

    id: int
    name: str
    size: int = 0
    url: str = ""
    browser_download_url: str = ""
    content_type: str = "application/octet-stream"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ReleaseAsset:
        return cls(
            id=data["id"],
            name=data["name"],
            size=data.get("size", 0),
            url=data.get("url", ""),
            browser_download_url=data.get("browser_download_url", ""),
            content_type=data.get("content_type") or "application/octet-stream",
        )


@dataclass
class GitHubRelease:
    """A GitHub release and its assets."""

    id: int
    tag_name: str
    name: str = ""
    body: str = ""
    html_url: str = ""
    draft: bool = False
    prerelease: bool = False
    published_at: Optional[str] = None
    assets: List[ReleaseAsset] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> GitHubRelease:
        return cls(
            id=data["id"],
            tag_name=data.get("tag_name", ""),
            name=data.get("name") or "",
            body=data.get("body") or "",
            html_url=data.get("html_url", ""),
            draft=data.get("draft", False),
            prerelease=data.get("prerelease", False),
            published_at=data.get("published_at"),
            assets=[ReleaseAsset.from_dict(a) for a in data.get("assets", [])],
        )


def split_repository(repository: str) -> Tuple[str, str]:
    """Split ``owner/repo``.

    Raises:
        RepositoryError: If the value is not in ``owner/repo`` form
    """
    parts = (repository or "").split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise RepositoryError(f"Invalid repository format: {repository}. Expected: owner/repo")
    return parts[0], parts[1]


class GitHubClient:
    """Client for the parts of the GitHub REST API used for releases.

    Attributes:
        owner: Repository owner
        repo: Repository name
        api_url: REST API base URL
        uploads_url: Release asset upload base URL
    """

    def __init__(
            self,
            token: Optional[str],
            repository: str,
            api_url: str = DEFAULT_API_URL,
            uploads_url: Optional[str] = None,
            timeout: float = 30.0,
            transport: Optional[httpx.BaseTransport] = None
    ) -> None:
        """Initialize the client.

        Args:
            token: GitHub token, anonymous access when empty
            repository: Repository in ``owner/repo`` form
            api_url: REST API base URL
            uploads_url: Upload base URL, derived from api_url when omitted
            timeout: Request timeout in seconds
            transport: Custom httpx transport
        """
        self.owner, self.repo = split_repository(repository)
        self.api_url = api_url.rstrip("/")
        if uploads_url is None:
            uploads_url = DEFAULT_UPLOADS_URL if self.api_url == DEFAULT_API_URL else self.api_url
        self.uploads_url = uploads_url.rstrip("/")
        self._client = httpx.Client(
            headers=self._get_headers(token),
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
        )

    @property
    def repository(self) -> str:
        return f"{self.owner}/{self.repo}"

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @staticmethod
    def _get_headers(token: Optional[str]) -> Dict[str, str]:
        headers = {
            "User-Agent": f"colaplug/{__version__}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _repo_url(self, path: str) -> str:
        return f"{self.api_url}/repos/{self.owner}/{self.repo}/{path.lstrip('/')}"

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True
    )
    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        return self._client.request(method, url, **kwargs)

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._send(method, url, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            raise RepositoryError(
                f"GitHub API returned error: {e.response.status_code} - {e.response.text}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise RepositoryError(f"Failed to connect to GitHub API: {e}") from e

    def tag_exists(self, tag: str) -> bool:
        """Whether ``refs/tags/<tag>`` exists on the remote."""
        try:
            self._request("GET", self._repo_url(f"git/ref/tags/{tag}"))
            return True
        except RepositoryError as e:
            if e.status_code == 404:
                return False
            raise

    def list_releases(self, per_page: int = 100) -> List[GitHubRelease]:
        """All releases of the repository, following pagination."""
        releases: List[GitHubRelease] = []
        page = 1
        while True:
            response = self._request(
                "GET", self._repo_url("releases"), params={"per_page": per_page, "page": page}
            )
            batch = response.json()
            releases.extend(GitHubRelease.from_dict(item) for item in batch)
            if len(batch) < per_page:
                break
            page += 1
        logger.debug("Listed releases", repository=self.repository, count=len(releases))
        return releases

    def get_release_by_tag(self, tag: str) -> Optional[GitHubRelease]:
        try:
            response = self._request("GET", self._repo_url(f"releases/tags/{tag}"))
        except RepositoryError as e:
            if e.status_code == 404:
                return None
            raise
        return GitHubRelease.from_dict(response.json())

    def create_release(
            self,
            tag: str,
            name: str,
            body: str = "",
            draft: bool = False,
            prerelease: bool = False
    ) -> GitHubRelease:
        payload = {
            "tag_name": tag,
            "name": name,
            "body": body,
            "draft": draft,
            "prerelease": prerelease,
        }
        response = self._request("POST", self._repo_url("releases"), json=payload)
        release = GitHubRelease.from_dict(response.json())
        logger.info("Created release", tag=tag, url=release.html_url)
        return release

    def delete_release(self, release_id: int) -> None:
        self._request("DELETE", self._repo_url(f"releases/{release_id}"))

    def delete_ref(self, ref: str) -> bool:
        """Delete a ref such as ``tags/<tag>``; returns False if it was already gone."""
        try:
            self._request("DELETE", self._repo_url(f"git/refs/{ref}"))
            return True
        except RepositoryError as e:
            if e.status_code in (404, 422):
                return False
            raise

    def upload_release_asset(
            self,
            release: GitHubRelease,
            path: Union[str, Path],
            name: Optional[str] = None,
            content_type: str = "application/octet-stream"
    ) -> ReleaseAsset:
        """Upload a file as a release asset.

        Raises:
            RepositoryError: If the upload fails
        """
        path = Path(path)
        url = f"{self.uploads_url}/repos/{self.owner}/{self.repo}/releases/{release.id}/assets"
        response = self._request(
            "POST",
            url,
            params={"name": name or path.name},
            content=path.read_bytes(),
            headers={"Content-Type": content_type},
        )
        return ReleaseAsset.from_dict(response.json())

    def download_asset(self, asset: ReleaseAsset, output_path: Union[str, Path]) -> Path:
        """Download a release asset to output_path.

        Raises:
            RepositoryError: If the download fails
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        url = asset.url or asset.browser_download_url

        logger.debug("Downloading asset", asset=asset.name)
        try:
            with self._client.stream(
                    "GET", url, headers={"Accept": "application/octet-stream"}
            ) as response:
                response.raise_for_status()
                with open(output_path, "wb") as f:
                    for chunk in response.iter_bytes(chunk_size=8192):
                        f.write(chunk)
        except httpx.HTTPStatusError as e:
            raise RepositoryError(
                f"Failed to download {asset.name}: {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise RepositoryError(f"Failed to download {asset.name}: {e}") from e
        return output_path
