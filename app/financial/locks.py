"""
Concurrency control utilities for financial operations.

This module provides three complementary mechanisms:

1. **Row locks** (lock_customer, lock_bank_accounts)
   - SELECT ... FOR UPDATE inside the caller's transaction
   - Serialize every read-modify-write of Customer.available_credit_cents
     per customer and of BankAccount.balance_cents per account
   - Multi-row locks are always taken in primary-key order

2. **Bounded conflict retry** (retry_on_conflict)
   - Re-runs the outermost unit of work on serialization failures,
     deadlocks and lock timeouts
   - Gives up with ConcurrencyConflictError after
     FINANCIAL_CONFLICT_MAX_RETRIES attempts

3. **Distributed Locks** (DistributedLock)
   - Redis-based mutual exclusion across processes/servers
   - Used for apply-fix audit runs so two operators cannot correct
     the same data concurrently

Lock order:
    Customer → obligations (Boleto, Receivable) → bank accounts (by id)

Usage:
    from financial.locks import lock_customer, retry_on_conflict

    @retry_on_conflict
    def apply(customer_id):
        with transaction.atomic():
            customer = lock_customer(customer_id)
            ...
"""

from __future__ import annotations

import functools
import logging
import time
import uuid as uuid_module
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import OperationalError, transaction
from django_redis import get_redis_connection

from financial.exceptions import (
    ConcurrencyConflictError,
    CustomerNotFound,
    LockAcquisitionError,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from typing import Any

    from redis import Redis

    from financial.ledger.models import BankAccount
    from sales.models import Customer


logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATEs that mean "retry the transaction"
RETRYABLE_SQLSTATES = frozenset(
    {
        "40001",  # serialization_failure
        "40P01",  # deadlock_detected
        "55P03",  # lock_not_available
    }
)

RETRYABLE_MESSAGES = ("database is locked", "deadlock", "could not obtain lock")


# =============================================================================
# Row Locks
# =============================================================================


def lock_customer(customer_id: Any) -> Customer:
    """
    Lock a customer row for the rest of the current transaction.

    Must be called inside transaction.atomic(). This is the per-customer
    serialization point for every credit recomputation.

    Raises:
        CustomerNotFound: If the customer does not exist
    """
    from sales.models import Customer

    customer = Customer.objects.select_for_update().filter(pk=customer_id).first()
    if customer is None:
        raise CustomerNotFound(
            f"Customer {customer_id} not found",
            details={"customer_id": str(customer_id)},
        )
    return customer


def lock_bank_accounts(account_ids: Iterable[Any]) -> dict[Any, BankAccount]:
    """
    Lock one or more bank accounts in primary-key order.

    Taking locks in a fixed global order means two transfers touching the
    same pair of accounts in opposite directions cannot deadlock.

    Returns:
        Dict mapping account id to the locked BankAccount

    Raises:
        AccountNotFound: If any of the accounts does not exist
    """
    from financial.ledger.exceptions import AccountNotFound
    from financial.ledger.models import BankAccount

    wanted = {str(account_id): account_id for account_id in account_ids}
    locked = list(
        BankAccount.objects.select_for_update()
        .filter(id__in=list(wanted.values()))
        .order_by("id")
    )
    found = {str(account.id): account for account in locked}

    missing = [key for key in wanted if key not in found]
    if missing:
        raise AccountNotFound(
            f"Bank account {missing[0]} not found",
            details={"account_id": missing[0]},
        )
    return {wanted[key]: found[key] for key in wanted}


# =============================================================================
# Bounded Conflict Retry
# =============================================================================


def is_retryable_db_error(exc: BaseException) -> bool:
    """True for serialization failures, deadlocks and lock timeouts."""
    cause = exc.__cause__ or exc
    sqlstate = getattr(cause, "sqlstate", None) or getattr(cause, "pgcode", None)
    if sqlstate in RETRYABLE_SQLSTATES:
        return True
    message = str(exc).lower()
    return any(fragment in message for fragment in RETRYABLE_MESSAGES)


def retry_on_conflict(
    func: Callable | None = None,
    *,
    max_attempts: int | None = None,
) -> Callable:
    """
    Retry a unit of work on transient lock conflicts.

    Only the outermost call retries: when invoked inside an enclosing
    atomic block the error propagates, because the enclosing transaction
    is already broken and must be retried as a whole by its owner.

    Args:
        func: Function to wrap (allows use with or without arguments)
        max_attempts: Overrides FINANCIAL_CONFLICT_MAX_RETRIES

    Raises:
        ConcurrencyConflictError: When every attempt hit a conflict

    Example:
        @retry_on_conflict
        def post(account_id, ...):
            with transaction.atomic():
                ...

        @retry_on_conflict(max_attempts=5)
        def transfer(...):
            ...
    """

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            if transaction.get_connection().in_atomic_block:
                return fn(*args, **kwargs)

            attempts = max_attempts or settings.FINANCIAL_CONFLICT_MAX_RETRIES
            backoff = settings.FINANCIAL_CONFLICT_RETRY_BACKOFF_SECONDS
            last_error: BaseException | None = None

            for attempt in range(1, attempts + 1):
                try:
                    return fn(*args, **kwargs)
                except OperationalError as exc:
                    if not is_retryable_db_error(exc):
                        raise
                    last_error = exc
                except LockAcquisitionError as exc:
                    last_error = exc

                logger.warning(
                    f"Lock conflict in {fn.__qualname__}, attempt {attempt}/{attempts}",
                    extra={"operation": fn.__qualname__, "attempt": attempt},
                )
                if attempt < attempts:
                    time.sleep(backoff * attempt)

            raise ConcurrencyConflictError(
                f"{fn.__qualname__} kept conflicting after {attempts} attempts",
                details={"operation": fn.__qualname__, "attempts": attempts},
            ) from last_error

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator


# =============================================================================
# Distributed Locks
# =============================================================================


class DistributedLock:
    """
    Redis-based distributed lock with TTL.

    Features:
        - Automatic TTL prevents deadlocks from crashed processes
        - Token-based ownership prevents release by another process
        - Blocking and non-blocking acquisition modes
        - Context manager support

    Example:
        with DistributedLock("financial:audit:customer_credit", ttl=600, blocking=False):
            apply_fixes()

    Args:
        key: Lock identifier (will be prefixed with "lock:")
        ttl: Lock TTL in seconds (auto-releases after this time)
        blocking: If True, acquire() waits until lock is available
        timeout: Maximum wait time in seconds (only if blocking=True)
    """

    # Atomic check-and-delete so only the owner releases
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        """
        Attempt to acquire the lock.

        Returns:
            True if lock was acquired

        Raises:
            LockAcquisitionError: If lock couldn't be acquired
        """
        self._token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if self.blocking:
            end_time = time.time() + self.timeout
            while time.time() < end_time:
                if self._try_acquire(redis):
                    return True
                time.sleep(0.05)

            self._token = None
            raise LockAcquisitionError(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not self._try_acquire(redis):
            self._token = None
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        return True

    def _try_acquire(self, redis: Redis) -> bool:
        return bool(redis.set(self.key, self._token, nx=True, ex=self.ttl))

    def release(self) -> bool:
        """
        Release the lock if we hold it.

        Returns:
            True if lock was released, False if we didn't hold it
        """
        if self._token is None:
            return False

        redis = self._get_redis()
        result = redis.eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.release()
        return False
