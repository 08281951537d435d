import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Set

import bcrypt
from jose import JWTError, jwt

from vocab_exam.core.config import settings
from vocab_exam.core.exceptions import AuthenticationError, ConflictError, ValidationError
from vocab_exam.db.models import Teacher
from vocab_exam.db.store import ExamStore

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"


@dataclass(frozen=True)
class AuthSession:
    teacher_id: str
    token: str
    token_id: str
    expires_at: datetime


@dataclass(frozen=True)
class AuthListener:
    """Handle returned by AuthService.on_auth_state_change"""

    callback: Callable[[str, Optional[AuthSession]], None] = field(compare=False)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


def hash_password(password: str) -> str:
    # Bcrypt has a 72 byte limit
    password_bytes = password.encode("utf-8")[:72]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    password_bytes = plain_password.encode("utf-8")[:72]
    return bcrypt.checkpw(password_bytes, hashed_password.encode("utf-8"))


class AuthService:
    """Teacher sessions: sign-up, sign-in, token validation and sign-out"""

    def __init__(self, secret_key: Optional[str] = None, algorithm: Optional[str] = None):
        self.secret_key = secret_key or settings.JWT_SECRET_KEY
        self.algorithm = algorithm or settings.JWT_ALGORITHM
        self._revoked: Set[str] = set()
        self._listeners: Dict[str, AuthListener] = {}
        self._lock = threading.Lock()

    def sign_up(self, store: ExamStore, email: str, password: str, full_name: str) -> AuthSession:
        email = (email or "").strip().lower()
        full_name = (full_name or "").strip()
        if not email or not full_name:
            raise ValidationError("Email and full name are required")
        if len(password or "") < 6:
            raise ValidationError("Password must be at least 6 characters")
        if store.get_teacher_by_email(email) is not None:
            raise ConflictError("A teacher with this email already exists")

        teacher = store.create_teacher(email, full_name, hash_password(password))
        logger.info("Teacher %s signed up", teacher.id)
        return self._open_session(teacher)

    def sign_in(self, store: ExamStore, email: str, password: str) -> AuthSession:
        teacher = store.get_teacher_by_email((email or "").strip().lower())
        if teacher is None or not verify_password(password or "", teacher.password_hash):
            raise AuthenticationError("Invalid email or password")
        return self._open_session(teacher)

    def _open_session(self, teacher: Teacher) -> AuthSession:
        token_id = str(uuid.uuid4())
        expires_at = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )
        token = jwt.encode(
            {"sub": teacher.id, "jti": token_id, "exp": expires_at, "type": "access"},
            self.secret_key,
            algorithm=self.algorithm,
        )
        session = AuthSession(
            teacher_id=teacher.id, token=token, token_id=token_id, expires_at=expires_at
        )
        logger.info("Teacher %s signed in", teacher.id)
        self._emit(SIGNED_IN, session)
        return session

    def get_session(self, token: Optional[str]) -> AuthSession:
        """Validate a bearer token, raising AuthenticationError if unusable"""
        if not token:
            raise AuthenticationError("Not signed in")
        try:
            payload: Dict[str, Any] = jwt.decode(
                token, self.secret_key, algorithms=[self.algorithm]
            )
        except JWTError:
            raise AuthenticationError("Could not validate credentials")

        token_id = payload.get("jti")
        teacher_id = payload.get("sub")
        if not token_id or not teacher_id or payload.get("type") != "access":
            raise AuthenticationError("Could not validate credentials")
        with self._lock:
            if token_id in self._revoked:
                raise AuthenticationError("Session has been signed out")

        return AuthSession(
            teacher_id=teacher_id,
            token=token,
            token_id=token_id,
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

    def sign_out(self, token: str) -> None:
        session = self.get_session(token)
        with self._lock:
            self._revoked.add(session.token_id)
        logger.info("Teacher %s signed out", session.teacher_id)
        self._emit(SIGNED_OUT, session)

    def on_auth_state_change(
        self, callback: Callable[[str, Optional[AuthSession]], None]
    ) -> AuthListener:
        listener = AuthListener(callback=callback)
        with self._lock:
            self._listeners[listener.id] = listener
        return listener

    def remove_listener(self, listener: AuthListener) -> None:
        with self._lock:
            self._listeners.pop(listener.id, None)

    def _emit(self, event: str, session: Optional[AuthSession]) -> None:
        with self._lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            try:
                listener.callback(event, session)
            except Exception:
                logger.exception("Auth listener %s failed", listener.id)


auth_service = AuthService()
