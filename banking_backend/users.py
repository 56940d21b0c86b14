"""
User Directory Module

Directory lookups consumed by the money-movement core (display name, blocked
status, existence) and the administrative block / unblock operations.
Authentication and credentials live outside this package.
"""

from .audit import EventLog
from .exceptions import BankingError, SelfBlockError, UserNotFoundError, ValidationError
from .logging_config import get_logger, log_action, log_failure
from .models import EventType, User
from .storage import LedgerStore


class UserService:
    """
    User directory backed by the ledger store
    """

    def __init__(self, store: LedgerStore, event_log: EventLog):
        self.store = store
        self.event_log = event_log
        self.logger = get_logger("banking.users")

    def create_user(self, name: str, surname: str, email: str, role_id: int) -> User:
        """
        Register a directory entry

        Raises:
            ValidationError: if name, surname or email is blank
            ConflictError: if the email is already registered
        """
        for field_name, value in (("name", name), ("surname", surname), ("email", email)):
            if not value or not value.strip():
                raise ValidationError(f"User {field_name} must not be empty")

        user = self.store.create_user(name.strip(), surname.strip(), email.strip(), role_id)

        log_action(
            self.logger, "info", "User registered",
            user_id=user.id, action="create_user", resource=f"user:{user.id}",
            extra={"role_id": role_id}
        )
        return user

    def get_user(self, user_id: int) -> User:
        return self.store.get_user(user_id)

    def get_display_name(self, user_id: int) -> str:
        """Display name in the "Name Surname" form stamped on cards"""
        return self.store.get_user(user_id).display_name

    def is_blocked(self, user_id: int) -> bool:
        return self.store.get_user(user_id).blocked

    def exists(self, user_id: int) -> bool:
        try:
            self.store.get_user(user_id)
        except UserNotFoundError:
            return False
        return True

    def block_user(self, block_user_id: int, user_id: int) -> None:
        """
        Block a user on behalf of ``user_id``

        Raises:
            SelfBlockError: if a user tries to block themselves
            UserNotFoundError: if ``block_user_id`` is unknown
        """
        if block_user_id == user_id:
            raise SelfBlockError("User cannot block themselves", user_id=user_id)

        self._set_blocked(block_user_id, user_id, True)

    def unblock_user(self, unblock_user_id: int, user_id: int) -> None:
        """
        Lift a block on behalf of ``user_id``

        Raises:
            UserNotFoundError: if ``unblock_user_id`` is unknown
        """
        self._set_blocked(unblock_user_id, user_id, False)

    def _set_blocked(self, target_user_id: int, acting_user_id: int, blocked: bool) -> None:
        if blocked:
            event_type, message, action = EventType.USER_BLOCKED, "user blocked successfully", "block_user"
        else:
            event_type, message, action = EventType.USER_UNBLOCKED, "user unblocked successfully", "unblock_user"

        try:
            with self.store.atomic():
                if not self.store.set_user_blocked(target_user_id, blocked):
                    raise UserNotFoundError(target_user_id)

                # Attributed to the affected user so it shows in their event list
                self.event_log.add_event(
                    target_user_id, event_type, message,
                    {"user_id": target_user_id, "acting_user_id": acting_user_id}
                )
        except BankingError as exc:
            log_failure(self.logger, action, exc, user_id=acting_user_id, resource=f"user:{target_user_id}")
            raise

        log_action(
            self.logger, "info", message,
            user_id=acting_user_id, action=action, resource=f"user:{target_user_id}"
        )
