"""
Framework analysis of GitHub repositories.

Fetches package.json (probing nested app directories when the root has
none), classifies it with the ordered rules and caches the result.
"""

import json
import logging
import time
from typing import Callable, FrozenSet, List, Optional, Tuple

from ..collaborators import AnalysisStore
from ..errors import ManifestParseError, NotFound, RateLimitExceeded
from ..models import FrameworkAnalysis
from ..repo import RepoRef, parse_repo
from .cache import AnalysisCache
from .fetcher import GitHubClient
from .rules import RULES, UNKNOWN, UNKNOWN_SCORES, FrameworkRule, classify

logger = logging.getLogger(__name__)

PRIMARY_MANIFEST = "package.json"
FALLBACK_MANIFESTS = ["frontend/package.json", "client/package.json", "web/package.json"]


def parse_dependencies(text: str) -> FrozenSet[str]:
    """
    Merge dependencies and devDependencies of a package.json.

    Raises:
        ManifestParseError: If the text is not a JSON object
    """
    try:
        manifest = json.loads(text)
    except json.JSONDecodeError as e:
        raise ManifestParseError(f"Invalid package.json: {e}")
    if not isinstance(manifest, dict):
        raise ManifestParseError("package.json is not a JSON object")

    names = set()
    for section in ("dependencies", "devDependencies"):
        deps = manifest.get(section)
        if isinstance(deps, dict):
            names.update(name.lower() for name in deps)
    return frozenset(names)


class FrameworkAnalyzer:
    """Classifies a repository's framework and scores each platform for it."""

    def __init__(
        self,
        client: GitHubClient,
        cache: Optional[AnalysisCache] = None,
        store: Optional[AnalysisStore] = None,
        rules: Optional[List[FrameworkRule]] = None,
        manifest_paths: Optional[List[str]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.limiter = client.limiter
        self.cache = cache or AnalysisCache(clock=clock)
        self.store = store
        self.rules = rules or RULES
        self.manifest_paths = manifest_paths or [PRIMARY_MANIFEST] + FALLBACK_MANIFESTS
        self._clock = clock

    def _check_rate_limit(self) -> None:
        if not self.limiter.can_call():
            wait = self.limiter.time_until_reset()
            raise RateLimitExceeded(f"GitHub rate limit exceeded, resets in {wait:.0f}s", retry_after=wait)

    async def _find_manifest(self, ref: RepoRef) -> Tuple[Optional[str], Optional[FrozenSet[str]]]:
        """
        Locate and parse the first manifest on the search path.

        Returns:
            (manifest path, dependency names); the names are None when no
            manifest exists or the one found cannot be decoded or parsed
        """
        for path in self.manifest_paths:
            try:
                text = await self.client.get_file(ref, path)
                return path, parse_dependencies(text)
            except NotFound:
                logger.debug(f"No {path} in {ref.slug}")
            except ManifestParseError as e:
                logger.warning(f"Could not parse {path} in {ref.slug}: {e.message}")
                return path, None
        logger.info(f"No manifest found in {ref.slug}")
        return None, None

    async def analyze(self, identifier: str) -> FrameworkAnalysis:
        """
        Classify a repository.

        Args:
            identifier: Repository URL, owner/repo or github:// path

        Returns:
            FrameworkAnalysis (framework is "unknown" when no usable manifest exists)

        Raises:
            ValidationError: If the identifier is malformed
            RateLimitExceeded: If the GitHub quota is exhausted
            TransientNetworkError: On connection failures or 5xx
        """
        ref = parse_repo(identifier)
        cached = self.cache.get(ref.key)
        if cached is not None:
            logger.debug(f"Cache hit for {ref.key}: {cached.framework}")
            return cached

        self._check_rate_limit()

        path, dependencies = await self._find_manifest(ref)
        if dependencies is None:
            framework, scores = UNKNOWN, dict(UNKNOWN_SCORES)
        else:
            framework, scores = classify(dependencies, self.rules)

        analysis = FrameworkAnalysis(
            key=ref.key,
            framework=framework,
            scores=scores,
            cached_at=self._clock(),
            ttl=self.cache.ttl,
            manifest_path=path,
        )
        self.cache.put(analysis)
        logger.info(f"Analyzed {ref.slug}: {framework}")

        if self.store is not None:
            try:
                self.store.save_analysis({
                    "repo_url": ref.url,
                    "framework": framework,
                    "scores": dict(scores),
                })
            except Exception:
                logger.exception(f"Failed to save analysis of {ref.slug}")
        return analysis

    async def resolve(self, identifier: str) -> str:
        """
        Verify a repository exists and return its virtual path.

        Returns:
            "github://owner/repo"

        Raises:
            NotFound: If the repository does not exist or is private
        """
        ref = parse_repo(identifier)
        self._check_rate_limit()
        info = await self.client.get_repo(ref)
        full_name = info.get("full_name") if isinstance(info, dict) else None
        if full_name and "/" in full_name:
            ref = parse_repo(full_name)
        return ref.virtual_path
