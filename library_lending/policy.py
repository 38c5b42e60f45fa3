"""
policy.py

Borrowing limits and loan periods per membership type.
"""

from __future__ import annotations
import dataclasses
import datetime
import logging
from typing import Dict, Mapping, Optional, Tuple

from .models import MembershipType

logger = logging.getLogger("library_lending.policy")

# membership type -> (borrowing limit, loan period in days)
DEFAULT_RULES: Dict[str, Tuple[int, int]] = {
    MembershipType.BASIC.value: (3, 14),
    MembershipType.PREMIUM.value: (10, 30),
    MembershipType.STUDENT.value: (5, 21),
}

FALLBACK_TYPE = MembershipType.BASIC.value


@dataclasses.dataclass(frozen=True)
class PolicyTable:
    """
    Lookup of membership type to borrowing limit and loan period.

    A type missing from the table gets the BASIC rules. This is the documented
    default rather than an error, so members carrying a retired or misspelt
    type can still borrow on basic terms.
    """
    rules: Mapping[str, Tuple[int, int]] = dataclasses.field(default_factory=lambda: dict(DEFAULT_RULES))

    def _rule(self, membership_type: Optional[str]) -> Tuple[int, int]:
        key = _normalise(membership_type)
        rule = self.rules.get(key)
        if rule is None:
            logger.debug("Unknown membership type %r, using %s rules", membership_type, FALLBACK_TYPE)
            rule = self.rules.get(FALLBACK_TYPE, DEFAULT_RULES[FALLBACK_TYPE])
        return rule

    def limit_for(self, membership_type: Optional[str]) -> int:
        return self._rule(membership_type)[0]

    def loan_period_days(self, membership_type: Optional[str]) -> int:
        return self._rule(membership_type)[1]

    def due_date_from(self, start: datetime.datetime, membership_type: Optional[str]) -> datetime.datetime:
        return start + datetime.timedelta(days=self.loan_period_days(membership_type))


def _normalise(membership_type) -> str:
    if membership_type is None:
        return ""
    if isinstance(membership_type, MembershipType):
        return membership_type.value
    return str(membership_type).strip().upper()
