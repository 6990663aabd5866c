"""
auth/accounts.py -- Account Manager: registration, activation, login, refresh,
and administrative user management.

Every operation resolves validation and role checks before it mutates the
store. Store calls are plain read-then-write sequences with no surrounding
transaction; UNIQUE(email) in the store is what actually prevents duplicate
accounts under concurrent registration.

Known failure mode (registration):
  The user row is committed before the activation code is dispatched. If the
  notifier raises, register() logs the partial registration and re-raises
  DeliveryError (HTTP 500). The account then exists as Inactive with no code
  delivered. Because codes are derived rather than stored, a code for the
  current time step can be re-sent without touching the account; nothing
  does that automatically.

Policy switches (Settings):
  block_inactive_login        -- refuse login for Inactive accounts.
  refresh_requires_active     -- refuse refresh for Inactive accounts.
  promote_requires_superadmin -- only SuperAdmin callers may promote.
All three default to False, matching the behaviour this service has always
had. See DESIGN.md for the discussion.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError

from auth.models import Identity, Role, TokenPair, User, UserPage, UserStatus
from auth.notify import Notifier
from auth.otp import TotpCodeService
from auth.passwords import hash_password, verify_password
from auth.roles import ADMIN_ONLY, ADMIN_OR_SUPER, DELETABLE, SUPER_ONLY, role_allowed
from auth.sessions import SessionRegistry
from auth.store import UserStore
from auth.tokens import TokenClass, TokenIssuer
from core.config import Settings
from core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidCodeError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)

logger = logging.getLogger("storekeep.auth.accounts")

# Fields an administrator may change through update().
_UPDATABLE_FIELDS = frozenset({"full_name", "year_of_birth", "email", "password", "phone", "role", "avatar"})
_SORT_FIELDS = frozenset({"fullName", "email", "createdAt"})
_MAX_PAGE_SIZE = 100


class AccountManager:
    def __init__(
        self,
        store: UserStore,
        codes: TotpCodeService,
        tokens: TokenIssuer,
        sessions: SessionRegistry,
        notifier: Notifier,
        settings: Settings,
    ) -> None:
        self.store = store
        self.codes = codes
        self.tokens = tokens
        self.sessions = sessions
        self.notifier = notifier
        self.block_inactive_login = settings.block_inactive_login
        self.refresh_requires_active = settings.refresh_requires_active
        self.promote_requires_superadmin = settings.promote_requires_superadmin

    # ------------------------------------------------------------------
    # Registration and activation
    # ------------------------------------------------------------------

    def register(self, profile: User, password: str) -> User:
        """Create an Inactive account and dispatch its activation code.

        profile.hashed_password, status, id and timestamps are ignored.
        Raises ValidationError, ConflictError, or DeliveryError (after the
        account has been committed).
        """
        if not password:
            raise ValidationError("Password is required.")
        if not profile.email or "@" not in profile.email:
            raise ValidationError("A valid email is required.")
        if self.store.get_by_email(profile.email) is not None:
            raise ConflictError("This account already exists.")

        new_user = User(
            email=profile.email,
            full_name=profile.full_name,
            year_of_birth=profile.year_of_birth,
            phone=profile.phone,
            avatar=profile.avatar,
            role=Role(profile.role),
            status=UserStatus.INACTIVE,
            hashed_password=hash_password(password),
        )
        try:
            user_id = self.store.create_user(new_user)
        except IntegrityError as exc:
            # A concurrent registration won the race on UNIQUE(email).
            raise ConflictError("This account already exists.") from exc

        created = self._require(user_id)
        logger.info("User %s registered (status=%s)", created.id, created.status.value)

        code = self.codes.generate(created.email)
        try:
            self.notifier.send_code(created, code)
        except Exception:
            logger.error("User %s was created but the activation code was not delivered", created.id)
            raise
        return created

    def activate(self, email: str, code: str) -> User:
        """Flip an Inactive account to Active when `code` verifies.

        Already Active accounts succeed again without a write.
        """
        user = self.store.get_by_email(email)
        if user is None:
            raise NotFoundError("Email is incorrect.")
        if not self.codes.verify(email, code):
            logger.info("Activation code rejected for user %s", user.id)
            raise InvalidCodeError("OTP is incorrect.")
        if user.status == UserStatus.INACTIVE:
            self.store.update_user(user.id, status=UserStatus.ACTIVE)
            logger.info("User %s activated", user.id)
            user = self._require(user.id)
        return user

    # ------------------------------------------------------------------
    # Login and refresh
    # ------------------------------------------------------------------

    def login(
        self,
        email: str,
        password: str,
        network_addr: Optional[str] = None,
        device_info: Optional[str] = None,
    ) -> TokenPair:
        """Verify credentials, mint an access/refresh pair, record a session."""
        user = self.store.get_by_email(email)
        if user is None:
            raise NotFoundError("User not found.")
        if not verify_password(password, user.hashed_password):
            logger.info("Failed login for user %s", user.id)
            raise UnauthorizedError("Invalid password.", error_code="bad_credentials")
        if self.block_inactive_login and user.status != UserStatus.ACTIVE:
            raise ForbiddenError("Account is not activated.", error_code="inactive_account")

        pair = TokenPair(
            access_token=self.tokens.issue_access(user.id, user.role),
            refresh_token=self.tokens.issue_refresh(user.id, user.role),
        )
        self.sessions.record_login(user.id, network_addr, device_info)
        logger.info("User %s logged in", user.id)
        return pair

    def refresh(self, refresh_token: str) -> str:
        """Exchange a valid refresh token for a new access token.

        The refresh token itself is neither rotated nor invalidated. The
        role in the new token is the account's current role.
        """
        claims = self.tokens.verify(refresh_token, TokenClass.REFRESH)
        user = self.store.get_by_id(claims["id"])
        if user is None:
            raise NotFoundError("User not found.")
        if self.refresh_requires_active and user.status != UserStatus.ACTIVE:
            raise ForbiddenError("Account is not activated.", error_code="inactive_account")
        return self.tokens.issue_access(user.id, user.role, email=user.email)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def promote(self, user_id: int, caller: Optional[Identity] = None) -> User:
        """Set role=Admin on the target account."""
        if self.promote_requires_superadmin and not role_allowed(caller.role if caller else None, SUPER_ONLY):
            raise ForbiddenError("Only SuperAdmin can promote users.")
        if not self.store.update_user(user_id, role=Role.ADMIN):
            raise NotFoundError("User not found.")
        logger.info("User %s promoted to Admin by %s", user_id, caller.id if caller else "unknown")
        return self._require(user_id)

    def get(self, user_id: int) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found.")
        return user

    def update(self, user_id: int, patch: dict[str, Any], caller_role: Role | str) -> User:
        """Apply an administrator's partial update.

        patch uses domain field names. A plaintext "password" entry is
        re-hashed before it reaches the store.
        """
        changes = {k: v for k, v in patch.items() if v is not None}
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
        if not changes:
            raise ValidationError("No fields to update.")
        if "role" in changes:
            try:
                changes["role"] = Role(changes["role"])
            except ValueError as exc:
                raise ValidationError("Unknown role.") from exc
        if not role_allowed(caller_role, ADMIN_OR_SUPER):
            raise ForbiddenError("Only SuperAdmin and Admin can update User.")
        if self.store.get_by_id(user_id) is None:
            raise NotFoundError("User not found.")

        if "password" in changes:
            changes["hashed_password"] = hash_password(changes.pop("password"))
        try:
            self.store.update_user(user_id, **changes)
        except IntegrityError as exc:
            raise ConflictError("This email is already in use.") from exc
        logger.info("User %s updated (%s)", user_id, ", ".join(sorted(k for k in changes if k != "hashed_password")))
        return self._require(user_id)

    def remove(self, user_id: int, caller_role: Role | str) -> None:
        """Delete a plain User account. Admin accounts can never be deleted."""
        target = self.store.get_by_id(user_id)
        if target is None:
            raise NotFoundError("User not found.")
        if target.role == Role.ADMIN:
            raise ForbiddenError("Nobody can destroy admin.", error_code="protected_admin")
        if not role_allowed(target.role, DELETABLE):
            raise ForbiddenError("Only User can be deleted.", error_code="protected_role")
        self.store.delete_user(user_id)
        logger.info("User %s deleted by a caller with role %s", user_id, Role(caller_role).value)

    def list_users(
        self,
        caller_role: Role | str,
        *,
        search: Optional[str] = None,
        role: Optional[Role | str] = None,
        status: Optional[UserStatus | str] = None,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
    ) -> UserPage:
        if not role_allowed(caller_role, ADMIN_ONLY):
            raise ForbiddenError("You are not allowed.")
        if page < 1 or limit < 1 or limit > _MAX_PAGE_SIZE:
            raise ValidationError(f"page must be >= 1 and limit between 1 and {_MAX_PAGE_SIZE}.")
        if sort_by not in _SORT_FIELDS:
            raise ValidationError(f"sortBy must be one of: {', '.join(sorted(_SORT_FIELDS))}.")
        if sort_order not in ("asc", "desc"):
            raise ValidationError("sortOrder must be 'asc' or 'desc'.")
        try:
            role_filter = Role(role) if role else None
            status_filter = UserStatus(status) if status else None
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        users, total = self.store.search_users(
            search=search or None,
            role=role_filter,
            status=status_filter,
            offset=(page - 1) * limit,
            limit=limit,
            sort_by=sort_by,
            descending=sort_order == "desc",
        )
        return UserPage(total=total, page=page, total_pages=math.ceil(total / limit), data=users)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, user_id: int) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            # Row vanished between write and read (concurrent delete).
            raise NotFoundError("User not found.")
        return user
