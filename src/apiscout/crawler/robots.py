"""
robots.txt parsing.

Used twice: the robots discovery strategy mines every Allow/Disallow path
for API-looking URLs, and the frontier enforces the rules of the "*" group
when respect_robots is on.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class RobotsRules:
    """Parsed robots.txt"""
    disallow: List[str] = field(default_factory=list)  # "*" group only
    allow: List[str] = field(default_factory=list)     # "*" group only
    sitemaps: List[str] = field(default_factory=list)
    paths: List[str] = field(default_factory=list)     # every Allow/Disallow path, any group

    def is_allowed(self, path: str) -> bool:
        """
        Check a URL path against the "*" group.

        The longest matching rule wins; Allow wins ties. Supports the `*`
        wildcard and the `$` end anchor.
        """
        if not path:
            path = "/"

        best_length = -1
        allowed = True

        for rule, verdict in [(r, False) for r in self.disallow] + [(r, True) for r in self.allow]:
            if not rule:
                continue
            if _rule_matches(rule, path):
                if len(rule) > best_length or (len(rule) == best_length and verdict):
                    best_length = len(rule)
                    allowed = verdict

        return allowed


def _rule_matches(rule: str, path: str) -> bool:
    if "*" not in rule and not rule.endswith("$"):
        return path.startswith(rule)

    anchored = rule.endswith("$")
    body = rule[:-1] if anchored else rule
    regex = ".*".join(re.escape(part) for part in body.split("*"))
    if anchored:
        regex += "$"
    return re.match(regex, path) is not None


def parse_robots(text: str, user_agent: str = "*") -> RobotsRules:
    """
    Parse robots.txt content.

    Args:
        text: robots.txt body
        user_agent: Group whose rules are enforced (default "*")

    Returns:
        RobotsRules
    """
    rules = RobotsRules()
    agents: List[str] = []
    in_rules = False
    applies: Optional[bool] = None

    for raw_line in text.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue

        key, value = line.split(":", 1)
        key = key.strip().lower()
        value = value.strip()

        if key == "user-agent":
            if in_rules:
                agents = []
                in_rules = False
            agents.append(value.lower())
            applies = user_agent.lower() in agents or "*" in agents
            continue

        if key == "sitemap":
            if value and value not in rules.sitemaps:
                rules.sitemaps.append(value)
            continue

        if key in ("allow", "disallow"):
            in_rules = True
            if value and value not in rules.paths:
                rules.paths.append(value)
            if applies:
                target = rules.allow if key == "allow" else rules.disallow
                target.append(value)

    return rules
