"""Client resolution from participant and sender addresses."""

from src.clientops.matching.matcher import (
    ClientMatcher,
    domain_of,
    exclude_operator,
    normalize_addresses,
)

__all__ = ["ClientMatcher", "domain_of", "exclude_operator", "normalize_addresses"]
