"""
One-time codes for registration and password reset.

State per identity (lower-cased email):  absent → issued → consumed | expired

  1. generate() overwrites whatever entry the identity had, whatever its purpose:
     last write wins, one live code per identity.
  2. verify() never consumes. A wrong code or purpose leaves the entry alone so
     the user can retry until expiry; callers remove() the code themselves once
     the action the code unlocked has succeeded.
  3. Expiry is checked lazily: an expired entry is dropped the moment verify()
     or has_valid_otp() trips over it. Nothing sweeps the store in the background,
     so abandoned codes stay in memory until their identity is touched again.
  4. secrets.randbelow() is cryptographically secure (unlike random.randint).

The store sits behind OTPStore so a multi-instance deployment can swap the
process-local dict for a shared cache without touching the issuer.
"""
import hmac
import logging
import secrets
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from app.core.exceptions import ValidationException

logger = logging.getLogger(__name__)

OTP_PURPOSES = ("register", "forgot")
OTP_LENGTH = 6


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class OTPEntry:
    code: str
    expires_at: datetime
    purpose: str


class OTPStore(ABC):
    @abstractmethod
    def get(self, identity: str) -> Optional[OTPEntry]:
        ...

    @abstractmethod
    def put(self, identity: str, entry: OTPEntry) -> None:
        ...

    @abstractmethod
    def delete(self, identity: str) -> None:
        ...


class InMemoryOTPStore(OTPStore):
    """Process-local table. Safe for concurrent use; not shared across workers."""

    def __init__(self):
        self._entries: Dict[str, OTPEntry] = {}
        self._lock = threading.Lock()

    def get(self, identity):
        with self._lock:
            return self._entries.get(identity)

    def put(self, identity, entry):
        with self._lock:
            self._entries[identity] = entry

    def delete(self, identity):
        with self._lock:
            self._entries.pop(identity, None)

    def __len__(self):
        with self._lock:
            return len(self._entries)


def normalize_identity(email: str) -> str:
    return email.strip().lower()


def generate_code() -> str:
    """Uniform over 000000–999999, zero-padded."""
    return f"{secrets.randbelow(10 ** OTP_LENGTH):0{OTP_LENGTH}d}"


class OTPIssuer:
    def __init__(
        self,
        store: OTPStore,
        ttl: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.ttl = ttl
        self.clock = clock

    def generate(self, identity: str, purpose: str) -> str:
        if purpose not in OTP_PURPOSES:
            raise ValidationException(f"purpose must be one of: {', '.join(OTP_PURPOSES)}")
        code = generate_code()
        key = normalize_identity(identity)
        self.store.put(key, OTPEntry(code=code, expires_at=self.clock() + self.ttl, purpose=purpose))
        logger.info(f"OTP issued: identity={key} purpose={purpose}")
        return code

    def verify(self, identity: str, code: str, purpose: str) -> bool:
        key = normalize_identity(identity)
        entry = self.store.get(key)
        if entry is None:
            logger.debug(f"OTP verify: no entry for {key}")
            return False
        if self.clock() > entry.expires_at:
            logger.debug(f"OTP verify: expired for {key}")
            self.store.delete(key)
            return False
        if entry.purpose != purpose:
            logger.debug(f"OTP verify: purpose mismatch for {key}")
            return False
        if not hmac.compare_digest(entry.code, str(code)):
            logger.debug(f"OTP verify: wrong code for {key}")
            return False
        return True

    def remove(self, identity: str) -> None:
        self.store.delete(normalize_identity(identity))

    def has_valid_otp(self, identity: str) -> bool:
        key = normalize_identity(identity)
        entry = self.store.get(key)
        if entry is None:
            return False
        if self.clock() > entry.expires_at:
            self.store.delete(key)
            return False
        return True
