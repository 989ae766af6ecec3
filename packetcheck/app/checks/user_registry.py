"""
Registry of known users and their historical public keys.

Used by the repository walker to decide whether a signature's embedded
public key is trusted.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, Optional

from packetcheck.app.parsing.packet_parser import parse_user_record
from packetcheck.app.schemas.packets import CorruptPacket, UserRecord
from packetcheck.app.schemas.results import KeyResolution

logger = logging.getLogger(__name__)


class UserKeyRegistry:
    """Known users keyed by user id."""

    def __init__(self, users: Optional[Iterable[UserRecord]] = None) -> None:
        self._users: Dict[str, UserRecord] = {}
        for user in users or ():
            self._users[user.user_id] = user

    @classmethod
    def load(cls, users_path: Path) -> "UserKeyRegistry":
        """
        Load every `**/*.xml` user record below `users_path`.

        Corrupt user files are logged and skipped.
        """
        logger.info("** loading users from %s", users_path)

        registry = cls()
        if not users_path.is_dir():
            logger.info("** no users directory at %s", users_path)
            return registry

        for path in sorted(users_path.rglob("*.xml")):
            outcome = parse_user_record(path)
            if isinstance(outcome, CorruptPacket):
                continue

            user = outcome.record
            registry._users[user.user_id] = user
            logger.info(
                " - loaded %s [%s] with %d keys",
                user.name,
                user.user_id,
                len(user.keys),
            )

        logger.info("** %d users loaded", len(registry))
        return registry

    def __len__(self) -> int:
        return len(self._users)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._users

    def get(self, user_id: str) -> Optional[UserRecord]:
        return self._users.get(user_id)

    def resolve(
        self,
        signer_id: str,
        server_id: str,
        public_key: str,
    ) -> KeyResolution:
        """
        Decide whether a signer's embedded key is trusted.

        The server-qualified alias "<serverId>_<signerId>" is tried first,
        and only for signer ids without an underscore. A match identifies
        a user imported from another installation; such users have no
        local key to compare, so the match alone is trusted. Otherwise the
        plain signer id must resolve to a user holding the embedded key.
        """
        if "_" not in signer_id:
            if f"{server_id}_{signer_id}" in self._users:
                return KeyResolution.IMPORTED_IDENTITY

        user = self._users.get(signer_id)
        if user is not None and public_key in user.keys:
            return KeyResolution.KEY_MATCHED

        return KeyResolution.MISSING
