"""
members.py

Member records the engine reads when checking borrowing rights.
"""

from __future__ import annotations
import dataclasses
import logging
import threading
from typing import Dict, Iterable, List, Optional

from .models import Member

logger = logging.getLogger("library_lending.members")


class MemberDirectory:

    def __init__(self, members: Iterable[Member] = ()) -> None:
        self._members: Dict[str, Member] = {}
        self._lock = threading.RLock()
        for member in members:
            self.register(member)

    def register(self, member: Member) -> bool:
        """
        Register a new member. Returns False if the member id already exists.
        """
        with self._lock:
            if member.id in self._members:
                logger.debug("Attempt to register existing member: %s", member.id)
                return False
            self._members[member.id] = dataclasses.replace(member)
        logger.info("Registered member %s (%s)", member.id, member.membership_type)
        return True

    def get(self, member_id: str) -> Optional[Member]:
        with self._lock:
            member = self._members.get(member_id)
            return dataclasses.replace(member) if member is not None else None

    def set_active(self, member_id: str, active: bool) -> bool:
        with self._lock:
            member = self._members.get(member_id)
            if member is None:
                logger.warning("Member not found: %s", member_id)
                return False
            member.is_active = bool(active)
        logger.info("Member %s is now %s", member_id, "active" if active else "inactive")
        return True

    def members(self) -> List[Member]:
        with self._lock:
            return [dataclasses.replace(m) for m in self._members.values()]
