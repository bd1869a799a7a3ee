"""
Repository framework analysis under GitHub's rate limits.
"""

from .cache import AnalysisCache
from .fetcher import GitHubClient
from .framework import FrameworkAnalyzer, parse_dependencies
from .ratelimit import RateLimiter, RateLimitState
from .rules import RULES, FrameworkRule, classify

__all__ = [
    "AnalysisCache",
    "FrameworkAnalyzer",
    "FrameworkRule",
    "GitHubClient",
    "RULES",
    "RateLimitState",
    "RateLimiter",
    "classify",
    "parse_dependencies",
]
