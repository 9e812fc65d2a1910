"""
Account lifecycle: provisioning, login, password change/reset, OTP-gated
registration and soft delete/restore.

Status machine (account.status):
    2 (temporary password) ──change password──▶ 1 (active)
    1 ──soft delete──▶ 0 (deactivated) ──restore──▶ 1

Every check-then-write that matters is closed at the store:
  - temporary-password change is a conditional update on (id, status=2,
    password hash that was verified); zero rows back means someone else won.
  - duplicate emails/handles are stopped by unique indexes; the collision comes
    back as DuplicateRecordError.

Notification is never on the critical path: the service only enqueues on the
dispatcher and does not look at whether the email went out.
"""
import logging
import re
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from app.config import Settings, settings as default_settings
from app.core.exceptions import (
    CredentialsException, DuplicateRecordError, ForbiddenException, InvalidOTPException,
    NotFoundException, ProvisioningException, StoreError, ValidationException,
)
from app.core.security import (
    create_access_token, create_refresh_token, decode_refresh_token, hash_password,
    pwd_context, verify_password,
)
from app.models.account import STATUS_ACTIVE, STATUS_DEACTIVATED, STATUS_PASSWORD_CHANGE_REQUIRED
from app.schemas.account import AccountRecord
from app.services.notification_dispatcher import NotificationDispatcher
from app.services.otp_service import OTPIssuer
from app.services.record_store import RecordStore

logger = logging.getLogger(__name__)

ACCOUNT = "account"
ROLE = "role"

# Statuses that count as "exists and may sign in"
LIVE_STATUSES = [STATUS_ACTIVE, STATUS_PASSWORD_CHANGE_REQUIRED]

TEMP_PASSWORD_LENGTH = 8
TEMP_PASSWORD_ALPHABET = string.ascii_letters + string.digits

# Verified against when the login handle does not exist, so that "no such
# user" and "wrong password" take the same time.
_DUMMY_HASH: str = pwd_context.hash("__dummy_timing_prevention__")


@dataclass
class ProvisionResult:
    account: AccountRecord
    is_new: bool
    temporary_credential: Optional[str] = None


@dataclass
class LoginResult:
    account: AccountRecord
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    password_change_required: bool = False
    is_new: bool = False


def normalize_email(email: str) -> str:
    return email.strip().lower()


def generate_temporary_password() -> str:
    return "".join(secrets.choice(TEMP_PASSWORD_ALPHABET) for _ in range(TEMP_PASSWORD_LENGTH))


def generate_login_handle(email: str) -> str:
    """<local-part>_<random suffix>; the unique index settles any collision."""
    local = re.sub(r"[^a-zA-Z0-9_.]", "", email.split("@")[0]) or "user"
    return f"{local}_{secrets.token_hex(4)}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AccountService:
    def __init__(
        self,
        store: RecordStore,
        otp_issuer: OTPIssuer,
        dispatcher: NotificationDispatcher,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.otp = otp_issuer
        self.dispatcher = dispatcher
        self.settings = settings or default_settings

    # ── Record mapping ────────────────────────────────────────────────────────

    def _role_name(self, role_id: Optional[str]) -> Optional[str]:
        if not role_id:
            return None
        row = self.store.fetch_one(ROLE, {"id": role_id})
        return row["role"] if row else None

    def _to_account(self, row: dict, role: Optional[str] = None) -> AccountRecord:
        account = AccountRecord.model_validate(row)
        account.role = role if role is not None else self._role_name(account.role_id)
        return account

    def _default_role(self) -> dict:
        """Fatal when missing: an account must never be created without a role."""
        name = self.settings.default_role_name
        try:
            row = self.store.fetch_one(ROLE, {"role": name, "status": 1})
        except StoreError as e:
            logger.error(f"Role lookup failed during provisioning: {e}")
            raise ProvisioningException("Role system unavailable")
        if not row:
            logger.error(f"Default role '{name}' is missing")
            raise ProvisioningException(f"Default role '{name}' not found")
        return row

    def _tokens(self, account: AccountRecord) -> tuple[str, str]:
        return create_access_token(account), create_refresh_token(account)

    # ── Lookups ───────────────────────────────────────────────────────────────

    def email_exists(self, email: str) -> bool:
        """Any status counts, a deactivated account still owns its email."""
        return self.store.fetch_one(ACCOUNT, {"email": normalize_email(email)}) is not None

    def get_account(self, account_id: str) -> AccountRecord:
        row = self.store.fetch_one(ACCOUNT, {"id": account_id, "status": LIVE_STATUSES})
        if not row:
            raise NotFoundException("Account")
        return self._to_account(row)

    def search_accounts(self, term: str, limit: int = 20) -> List[AccountRecord]:
        term = term.strip()
        if not term:
            return []
        rows = self.store.search(
            ACCOUNT, ["username", "username_login", "email"], term,
            filters={"status": LIVE_STATUSES}, limit=limit,
        )
        return [self._to_account(r) for r in rows]

    def list_deleted(self, limit: int = 50) -> List[AccountRecord]:
        rows = self.store.fetch(
            ACCOUNT, {"status": STATUS_DEACTIVATED}, order_by="updated_at", desc=True, limit=limit
        )
        return [self._to_account(r) for r in rows]

    # ── Provisioning ──────────────────────────────────────────────────────────

    def find_or_provision(self, email: str) -> ProvisionResult:
        """
        Resolve an email already verified upstream (OAuth) to an account,
        creating one with a temporary password when none exists.

        Not idempotent across concurrent first calls: the loser of the race
        hits the unique email index and gets a ProvisioningException.
        """
        email = normalize_email(email)
        try:
            existing = self.store.fetch_one(ACCOUNT, {"email": email})
            if existing:
                return ProvisionResult(self._to_account(existing), is_new=False)
        except StoreError as e:
            raise ProvisioningException(f"Account lookup failed: {e}")

        role = self._default_role()
        temporary = generate_temporary_password()
        handle = generate_login_handle(email)
        now = _now()
        record = {
            "email": email,
            "gmail": email,
            "username": handle,
            "username_login": handle,
            "password_login": hash_password(temporary),
            "status": STATUS_PASSWORD_CHANGE_REQUIRED,
            "provider": self.settings.oauth_provider,
            "email_verified": True,
            "role_id": str(role["id"]),
            "created_at": now,
            "updated_at": now,
        }
        try:
            row = self.store.insert(ACCOUNT, record)
        except StoreError as e:
            logger.error(f"Account creation failed for {email}: {e}")
            raise ProvisioningException("Could not create account")

        logger.info(f"Provisioned account {row['id']} for {email} (status 2)")
        return ProvisionResult(self._to_account(row, role["role"]), is_new=True, temporary_credential=temporary)

    def handle_oauth_login(self, email: str) -> LoginResult:
        """
        What to do once an identity provider vouched for `email`.

        New accounts and accounts still on a temporary password are sent to the
        password-change step without tokens; a new account also gets its
        temporary password by email. Only the plaintext generated right now can
        be mailed, stored credentials are hashes.

        Called by the OAuth callback once the provider's token exchange has
        produced a verified email; that handshake is outside this service.
        """
        result = self.find_or_provision(email)
        account = result.account

        if result.is_new:
            self.dispatcher.enqueue(account.email, "temporary_password", {
                "username": account.username,
                "username_login": account.username_login,
                "temporary_password": result.temporary_credential,
            })
        if result.is_new or account.status == STATUS_PASSWORD_CHANGE_REQUIRED:
            return LoginResult(account, password_change_required=True, is_new=result.is_new)
        if account.status == STATUS_DEACTIVATED:
            raise ForbiddenException("This account has been deactivated")

        access, refresh = self._tokens(account)
        return LoginResult(account, access, refresh)

    # ── Login / tokens ────────────────────────────────────────────────────────

    def authenticate(self, login: str, password: str) -> LoginResult:
        """Login by handle or email. Status-2 accounts get tokens plus the change-password flag."""
        login = login.strip()
        column = "email" if "@" in login else "username_login"
        value = normalize_email(login) if column == "email" else login
        row = self.store.fetch_one(ACCOUNT, {column: value, "status": LIVE_STATUSES})

        password_ok = verify_password(password, row["password_login"] if row else _DUMMY_HASH)
        if not row or not password_ok:
            raise CredentialsException("Invalid login or password")

        account = self._to_account(row)
        access, refresh = self._tokens(account)
        return LoginResult(
            account, access, refresh,
            password_change_required=account.status == STATUS_PASSWORD_CHANGE_REQUIRED,
        )

    def refresh_access_token(self, refresh_token: str) -> tuple[str, str]:
        """
        New access token for the account behind a refresh token. The account
        is re-read so role changes show up; the refresh token is handed back
        unchanged (no rotation).
        """
        claims = decode_refresh_token(refresh_token)
        account = self.get_account(claims["sub"])
        return create_access_token(account), refresh_token

    # ── Password changes ──────────────────────────────────────────────────────

    @staticmethod
    def _check_confirmation(new_password: str, confirm_password: str) -> None:
        if new_password != confirm_password:
            raise ValidationException("Password confirmation does not match")

    def change_password(
        self, account_id: str, current_password: str, new_password: str, confirm_password: str
    ) -> LoginResult:
        """Authenticated change. Also activates a status-2 account."""
        self._check_confirmation(new_password, confirm_password)
        row = self.store.fetch_one(ACCOUNT, {"id": account_id, "status": LIVE_STATUSES})
        if not row:
            raise NotFoundException("Account")
        if not verify_password(current_password, row["password_login"]):
            raise CredentialsException("Current password is incorrect")

        updated = self.store.update(
            ACCOUNT,
            {"id": account_id, "password_login": row["password_login"]},
            {"password_login": hash_password(new_password), "status": STATUS_ACTIVE, "updated_at": _now()},
        )
        if not updated:
            raise CredentialsException("Current password is no longer valid")

        account = self._to_account(updated[0])
        access, refresh = self._tokens(account)
        return LoginResult(account, access, refresh)

    def change_temporary_password(
        self, email: str, temporary_password: str, new_password: str, confirm_password: str
    ) -> AccountRecord:
        """Unauthenticated change, gated by the temporary password of a status-2 account."""
        self._check_confirmation(new_password, confirm_password)
        email = normalize_email(email)
        row = self.store.fetch_one(ACCOUNT, {"email": email, "status": STATUS_PASSWORD_CHANGE_REQUIRED})
        if not row or not verify_password(temporary_password, row["password_login"]):
            raise CredentialsException("Invalid email or temporary password")

        # Conditional on the hash we just verified: a concurrent change leaves zero rows
        updated = self.store.update(
            ACCOUNT,
            {"id": row["id"], "status": STATUS_PASSWORD_CHANGE_REQUIRED, "password_login": row["password_login"]},
            {"password_login": hash_password(new_password), "status": STATUS_ACTIVE, "updated_at": _now()},
        )
        if not updated:
            raise CredentialsException("Invalid email or temporary password")

        logger.info(f"Account {row['id']} activated after temporary password change")
        return self._to_account(updated[0])

    # ── OTP flows ─────────────────────────────────────────────────────────────

    def request_otp(self, email: str, purpose: str) -> bool:
        """
        Issue a code and queue it for delivery. Returns whether the email was
        accepted by the dispatcher; the code is valid either way.
        """
        exists = self.email_exists(email)
        if purpose == "register" and exists:
            raise ValidationException("This email is already registered")
        if purpose == "forgot" and not exists:
            raise NotFoundException("Account")

        if self.otp.has_valid_otp(email):
            logger.info(f"Replacing a live OTP for {normalize_email(email)} ({purpose})")
        code = self.otp.generate(email, purpose)
        return self.dispatcher.enqueue(normalize_email(email), purpose, {
            "otp": code,
            "ttl_minutes": int(self.otp.ttl / timedelta(minutes=1)),
        })

    def verify_otp(self, email: str, code: str, purpose: str) -> bool:
        return self.otp.verify(email, code, purpose)

    def consume_otp(self, email: str) -> None:
        self.otp.remove(email)

    def register(
        self, email: str, code: str, password: str, username: Optional[str] = None
    ) -> AccountRecord:
        if not self.otp.verify(email, code, "register"):
            raise InvalidOTPException()

        email = normalize_email(email)
        if self.email_exists(email):
            raise ValidationException("This email is already registered")

        role = self._default_role()
        handle = username or generate_login_handle(email)
        now = _now()
        record = {
            "email": email,
            "gmail": email,
            "username": handle,
            "username_login": handle,
            "password_login": hash_password(password),
            "status": STATUS_ACTIVE,
            "provider": "email",
            "email_verified": True,
            "role_id": str(role["id"]),
            "created_at": now,
            "updated_at": now,
        }
        try:
            row = self.store.insert(ACCOUNT, record)
        except DuplicateRecordError:
            raise ValidationException("Email or username is already registered")
        except StoreError as e:
            logger.error(f"Registration insert failed for {email}: {e}")
            raise ProvisioningException("Could not create account")

        self.otp.remove(email)
        logger.info(f"Registered account {row['id']} for {email}")
        return self._to_account(row, role["role"])

    def reset_password(self, email: str, code: str, new_password: str) -> None:
        """Credential only; status is left as it is."""
        if not self.otp.verify(email, code, "forgot"):
            raise InvalidOTPException()

        updated = self.store.update(
            ACCOUNT,
            {"email": normalize_email(email), "status": LIVE_STATUSES},
            {"password_login": hash_password(new_password), "updated_at": _now()},
        )
        if not updated:
            raise NotFoundException("Account")
        self.otp.remove(email)

    # ── Profile ───────────────────────────────────────────────────────────────

    PROFILE_FIELDS = ("username", "description", "place_of_residence", "image")

    def update_profile(self, account_id: str, patch: dict) -> AccountRecord:
        """
        Change display fields of a live account. Keys outside PROFILE_FIELDS
        and None values are ignored; an empty patch is a validation error.
        """
        changes = {k: v for k, v in patch.items() if k in self.PROFILE_FIELDS and v is not None}
        if not changes:
            raise ValidationException("Nothing to update")
        changes["updated_at"] = _now()

        updated = self.store.update(ACCOUNT, {"id": account_id, "status": LIVE_STATUSES}, changes)
        if not updated:
            raise NotFoundException("Account")
        logger.info(f"Account {account_id} updated profile fields: {', '.join(sorted(changes))}")
        return self._to_account(updated[0])

    # ── Soft delete / restore ─────────────────────────────────────────────────

    def soft_delete(self, account_id: str) -> AccountRecord:
        updated = self.store.update(
            ACCOUNT,
            {"id": account_id, "status": LIVE_STATUSES},
            {"status": STATUS_DEACTIVATED, "updated_at": _now()},
        )
        if not updated:
            raise NotFoundException("Account")
        logger.info(f"Account {account_id} deactivated")
        return self._to_account(updated[0])

    def restore(self, account_id: str) -> AccountRecord:
        updated = self.store.update(
            ACCOUNT,
            {"id": account_id, "status": STATUS_DEACTIVATED},
            {"status": STATUS_ACTIVE, "updated_at": _now()},
        )
        if not updated:
            raise NotFoundException("Deactivated account")
        logger.info(f"Account {account_id} restored")
        return self._to_account(updated[0])
