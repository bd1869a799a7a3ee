"""
Ordered framework rules.

The first rule whose indicators intersect the dependency set wins, so a
meta-framework must be listed before the library it builds on.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Tuple

PLATFORM_ORDER = ("vercel", "netlify", "cloudflare", "aws", "azure", "gcp")

UNKNOWN = "unknown"
GENERIC = "generic"


def score_table(vercel: int, netlify: int, cloudflare: int, aws: int, azure: int, gcp: int) -> Dict[str, int]:
    return dict(zip(PLATFORM_ORDER, (vercel, netlify, cloudflare, aws, azure, gcp)))


@dataclass(frozen=True)
class FrameworkRule:
    name: str
    indicators: FrozenSet[str]
    scores: Tuple[Tuple[str, int], ...]

    def matches(self, dependencies: FrozenSet[str]) -> bool:
        return not self.indicators.isdisjoint(dependencies)

    def score_map(self) -> Dict[str, int]:
        return dict(self.scores)


def rule(name: str, indicators: Iterable[str], scores: Dict[str, int]) -> FrameworkRule:
    return FrameworkRule(
        name=name,
        indicators=frozenset(i.lower() for i in indicators),
        scores=tuple(scores.items()),
    )


RULES: List[FrameworkRule] = [
    rule("next.js", ["next", "@next/font", "next-auth"], score_table(100, 80, 70, 60, 50, 50)),
    rule("vite", ["vite", "@vitejs/plugin-react", "@vitejs/plugin-vue"], score_table(90, 95, 85, 70, 60, 65)),
    rule("create-react-app", ["react-scripts", "react-app-rewired"], score_table(85, 90, 75, 80, 70, 75)),
    rule("vue", ["@vue/cli-service", "vue", "nuxt"], score_table(90, 95, 80, 70, 65, 70)),
    rule("angular", ["@angular/cli", "@angular/core"], score_table(85, 90, 70, 75, 80, 75)),
    rule("svelte", ["svelte", "sveltekit", "@sveltejs/kit"], score_table(90, 95, 85, 70, 65, 70)),
    rule("remix", ["@remix-run/node", "@remix-run/react"], score_table(95, 90, 85, 80, 75, 80)),
    rule("astro", ["astro"], score_table(95, 95, 90, 75, 70, 75)),
    rule("gatsby", ["gatsby"], score_table(95, 95, 85, 70, 65, 70)),
]

GENERIC_SCORES = score_table(70, 75, 60, 80, 70, 75)
UNKNOWN_SCORES = score_table(50, 50, 50, 50, 50, 50)


def classify(dependencies: Iterable[str], rules: List[FrameworkRule] = None) -> Tuple[str, Dict[str, int]]:
    """
    Classify a dependency set.

    Args:
        dependencies: Dependency names (any case)
        rules: Ordered rule list (defaults to RULES)

    Returns:
        (framework name, platform score table)
    """
    names = frozenset(d.lower() for d in dependencies)
    for candidate in RULES if rules is None else rules:
        if candidate.matches(names):
            return candidate.name, candidate.score_map()
    return GENERIC, dict(GENERIC_SCORES)
