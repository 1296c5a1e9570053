"""
Deal-breaker Filter

Hard exclusions declared by either side of a pair. A tag maps to a rule on
the partner's answers; any hit in either direction makes the pair
inadmissible regardless of score.
"""

import logging
from typing import Any, List

from .constants import DEAL_BREAKER_RULES, DealBreakerRule
from .contracts import DealBreakerCheck, Profile
from .field_scorers import minutes_of, rank

logger = logging.getLogger(__name__)


def rule_triggered(rule: DealBreakerRule, value: Any) -> bool:
    """True when the partner's value falls foul of the rule."""
    if value is None:
        return False

    if rule.op == "above":
        return rank(rule.scale, value) > rank(rule.scale, rule.threshold)
    if rule.op == "at_least":
        return rank(rule.scale, value) >= rank(rule.scale, rule.threshold)
    if rule.op == "at_most":
        return rank(rule.scale, value) <= rank(rule.scale, rule.threshold)
    if rule.op == "between":
        start, end = rule.threshold
        return start <= minutes_of(value) < end

    raise ValueError(f"Unknown deal-breaker op: {rule.op}")


def declared_violations(declarer: Profile, partner: Profile) -> List[str]:
    """Violations of declarer's tags by partner, as "declarer_id:tag"."""
    violations: List[str] = []
    for tag in declarer.deal_breakers:
        rule = DEAL_BREAKER_RULES.get(tag)
        if rule is None:
            logger.debug(f"Ignoring unknown deal-breaker tag '{tag}' on {declarer.profile_id}")
            continue
        value = getattr(partner.section(rule.category), rule.field)
        if rule_triggered(rule, value):
            violations.append(f"{declarer.profile_id}:{tag}")
    return violations


def check_deal_breakers(a: Profile, b: Profile) -> DealBreakerCheck:
    """
    Apply deal-breakers in both directions.

    Returns:
        DealBreakerCheck; violations are listed for the lower id first so
        the result does not depend on argument order.
    """
    first, second = (a, b) if a.profile_id <= b.profile_id else (b, a)
    violations = declared_violations(first, second) + declared_violations(second, first)
    return DealBreakerCheck(admissible=not violations, violations=violations)
