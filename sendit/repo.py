"""
Repository identifier parsing.

Accepted forms:
    https://github.com/owner/repo(.git)
    git@github.com:owner/repo.git / ssh://git@github.com/owner/repo
    github://owner/repo   (virtual path used for API-only analysis)
    owner/repo
"""

import re
from dataclasses import dataclass
from urllib.parse import urlparse

from .errors import ValidationError

ALLOWED_SCHEMES = {"http", "https", "git", "ssh"}
TRAVERSAL_PATTERNS = ("../", "..\\", "%2e%2e")
VIRTUAL_PREFIX = "github://"

_NAME = r"[A-Za-z0-9_.-]+"
_OWNER_REPO = re.compile(rf"^({_NAME})/({_NAME}?)(?:\.git)?/?$")
_SCP_STYLE = re.compile(rf"^git@github\.com:({_NAME})/({_NAME}?)(?:\.git)?$")


@dataclass(frozen=True)
class RepoRef:
    """A GitHub repository reference."""
    owner: str
    name: str

    @property
    def key(self) -> str:
        """Normalized cache/logical key, case-insensitive like GitHub itself."""
        return f"{self.owner}/{self.name}".lower()

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def url(self) -> str:
        return f"https://github.com/{self.owner}/{self.name}"

    @property
    def virtual_path(self) -> str:
        return f"{VIRTUAL_PREFIX}{self.owner}/{self.name}"


def _split_owner_repo(path: str, original: str) -> RepoRef:
    match = _OWNER_REPO.match(path.strip("/"))
    if not match:
        raise ValidationError(f"Invalid repository URL: {original}")
    owner, name = match.group(1), match.group(2)
    if not owner or not name or owner in (".", "..") or name in (".", ".."):
        raise ValidationError(f"Invalid repository URL: {original}")
    return RepoRef(owner=owner, name=name)


def parse_repo(identifier: str) -> RepoRef:
    """
    Parse a repository identifier into a RepoRef.

    Args:
        identifier: URL, virtual path or owner/repo pair

    Returns:
        RepoRef

    Raises:
        ValidationError: If the identifier is malformed or not hosted on GitHub
    """
    if not identifier or not identifier.strip():
        raise ValidationError("Repository URL is required")
    raw = identifier.strip()

    if any(pattern in raw.lower() for pattern in TRAVERSAL_PATTERNS):
        raise ValidationError("Repository URL contains path traversal patterns")

    if raw.startswith(VIRTUAL_PREFIX):
        return _split_owner_repo(raw[len(VIRTUAL_PREFIX):], identifier)

    scp = _SCP_STYLE.match(raw)
    if scp:
        return RepoRef(owner=scp.group(1), name=scp.group(2))

    if "://" in raw:
        parsed = urlparse(raw)
        if parsed.scheme not in ALLOWED_SCHEMES:
            raise ValidationError(
                f"Invalid URL protocol '{parsed.scheme}'. Must be http, https, git, or ssh"
            )
        host = (parsed.hostname or "").lower()
        if host not in ("github.com", "www.github.com"):
            raise ValidationError(f"Unsupported repository host: {host or 'none'}")
        return _split_owner_repo(parsed.path.strip("/"), identifier)

    if raw.count("/") == 1:
        return _split_owner_repo(raw, identifier)

    raise ValidationError(f"Invalid repository URL: {identifier}")
