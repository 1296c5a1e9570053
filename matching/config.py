"""
Matching configuration, read from the environment (.env supported).
"""

import os

from dotenv import load_dotenv

from matching.logic.contracts import MatchingPolicy

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def load_policy() -> MatchingPolicy:
    """Build the matching policy from MATCHING_* environment variables."""
    return MatchingPolicy(
        require_same_gender=_flag("MATCHING_REQUIRE_SAME_GENDER", "true"),
        min_pair_score=int(os.getenv("MATCHING_MIN_PAIR_SCORE", "0")),
        max_claim_retries=int(os.getenv("MATCHING_MAX_CLAIM_RETRIES", "3")),
        top_matches_limit=int(os.getenv("MATCHING_TOP_MATCHES_LIMIT", "10")),
    )
