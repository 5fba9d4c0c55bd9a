"""Authorization store for Kickoff.

Holds the Telegram user IDs allowed to trigger builds, mirrored to a JSON file
containing a flat array of integers. The super-admin is always authorized and
is never written to the file.
"""

import contextlib
import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class AuthorizedUserStore:
    """In-memory set of authorized user IDs backed by a JSON file."""

    def __init__(self, path: Path, super_admin_id: int) -> None:
        self._path = Path(path)
        self._super_admin_id = super_admin_id
        self._members: set[int] = set()

    @property
    def super_admin_id(self) -> int:
        return self._super_admin_id

    def load(self) -> None:
        """Replace the in-memory set with the file contents.

        Never raises. A missing, unreadable or malformed file leaves the
        store empty so startup can continue.
        """
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.warning("No authorized users file at %s, starting empty.", self._path)
            self._members = set()
            return
        except (OSError, ValueError) as exc:
            logger.warning("Could not read %s (%s), starting empty.", self._path, exc)
            self._members = set()
            return

        # bool is a subclass of int; JSON true/false are not user IDs
        if not isinstance(raw, list) or not all(
            isinstance(uid, int) and not isinstance(uid, bool) for uid in raw
        ):
            logger.warning("%s is not a JSON array of integers, starting empty.", self._path)
            self._members = set()
            return

        self._members = set(raw)
        logger.info("Loaded %d authorized users from %s.", len(self._members), self._path)

    def save(self) -> None:
        """Rewrite the file with the current members.

        Best effort: errors are logged and the in-memory set is kept.
        """
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(sorted(self._members), indent=2), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError:
            logger.exception("Failed to save authorized users to %s", self._path)
            with contextlib.suppress(OSError):
                tmp_path.unlink(missing_ok=True)

    def is_authorized(self, user_id: int | None) -> bool:
        """Return True if the user may trigger builds."""
        if user_id is None:
            return False
        if user_id == self._super_admin_id:
            return True
        return user_id in self._members

    def is_super_admin(self, user_id: int | None) -> bool:
        return user_id is not None and user_id == self._super_admin_id

    def add(self, user_id: int) -> bool:
        """Add a user. Returns False if already present. Caller saves."""
        if user_id in self._members:
            return False
        self._members.add(user_id)
        return True

    def remove(self, user_id: int) -> bool:
        """Remove a user. Returns False if absent. Caller saves."""
        if user_id not in self._members:
            return False
        self._members.discard(user_id)
        return True

    def list_users(self) -> list[int]:
        """Return a sorted snapshot of the members, excluding the super-admin."""
        return sorted(self._members)
