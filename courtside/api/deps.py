import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from courtside.core.clock import Clock, system_clock
from courtside.core.config import settings
from courtside.core.security import decode_token
from courtside.db.session import SessionLocal, get_db
from courtside.db.store import SqlBookingStore, SqlRuleSource
from courtside.models.user import User
from courtside.scheduling.closures import ClosureResolver
from courtside.scheduling.lifecycle import BookingLifecycle
from courtside.scheduling.types import Actor, ActorRole
from courtside.services.notifications import NotificationDispatcher

bearer_scheme = HTTPBearer(auto_error=False)

STAFF_ROLES = {"operator", "supervisor", "admin"}


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception
    payload = decode_token(credentials.credentials)
    if payload is None:
        raise credentials_exception
    user = db.query(User).filter(User.id == payload.sub).first()
    if not user or not user.is_active:
        raise credentials_exception
    return user


def get_current_staff_user(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role not in STAFF_ROLES:
        raise HTTPException(status_code=403, detail="Staff access required")
    return current_user


def get_current_admin_user(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user


def actor_for(user: User) -> Actor:
    return Actor(user_id=user.id, role=ActorRole(user.role))


def verify_payment_callback(
    x_payment_secret: Optional[str] = Header(None, alias="X-Payment-Secret"),
) -> None:
    """Payment confirmations come from the provider, never from players."""
    if not x_payment_secret or not hmac.compare_digest(
        x_payment_secret.encode(), settings.PAYMENT_WEBHOOK_SECRET.encode()
    ):
        raise HTTPException(status_code=403, detail="Invalid payment callback credentials")


# ---------------------------------------------------------------------------
# Scheduling engine
# ---------------------------------------------------------------------------


def get_clock() -> Clock:
    return system_clock


def get_store() -> SqlBookingStore:
    return SqlBookingStore(SessionLocal)


def get_rule_source() -> SqlRuleSource:
    return SqlRuleSource(SessionLocal)


def get_notifier() -> NotificationDispatcher:
    return NotificationDispatcher(SessionLocal)


def get_lifecycle(
    store: SqlBookingStore = Depends(get_store),
    rule_source: SqlRuleSource = Depends(get_rule_source),
    notifier: NotificationDispatcher = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> BookingLifecycle:
    return BookingLifecycle(store, rule_source, notifier=notifier, clock=clock)


def get_closure_resolver(
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
) -> ClosureResolver:
    return ClosureResolver(
        lifecycle.store, lifecycle, notifier=lifecycle.notifier, clock=lifecycle.clock
    )
