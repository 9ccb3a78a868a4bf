"""
Pytest configuration for the escrow tests.

Adds the project root to the Python path so tests can import domain,
repositories and services, and provides an in-memory stand-in for the
Supabase query builder plus a fake payment processor.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID, uuid4

import pytest
from postgrest.exceptions import APIError

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from repositories.notification_repository import NotificationRepository  # noqa: E402
from repositories.profile_repository import ProfileRepository  # noqa: E402
from repositories.sale_transaction_repository import SaleTransactionRepository  # noqa: E402
from repositories.transition_log_repository import TransitionLogRepository  # noqa: E402
from services.confirmation_service import ConfirmationService  # noqa: E402
from services.dispute_service import DisputeService  # noqa: E402
from services.outbox import TransitionRecorder  # noqa: E402
from services.payout_retry_service import PayoutRetryService  # noqa: E402
from services.payout_service import PayoutService  # noqa: E402
from services.resolution_service import ResolutionService  # noqa: E402
from services.sale_query_service import SaleQueryService  # noqa: E402
from services.stripe_gateway import PaymentProcessorError  # noqa: E402

NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

BUYER_ID = UUID("00000000-0000-0000-0000-0000000000b1")
SELLER_ID = UUID("00000000-0000-0000-0000-0000000000c1")
ADMIN_ID = UUID("00000000-0000-0000-0000-0000000000a1")
OUTSIDER_ID = UUID("00000000-0000-0000-0000-0000000000d1")
LISTING_ID = UUID("00000000-0000-0000-0000-0000000000e1")


# ============================================================================
# In-memory Supabase
# ============================================================================

class FakeResponse:
    def __init__(self, data: Any = None, error: Any = None) -> None:
        self.data = data
        self.error = error


def _matches(value: Any, expected: Any) -> bool:
    return value is not None and str(value) == str(expected)


class FakeQuery:
    """Supports the subset of the PostgREST builder the repositories use."""

    def __init__(self, db: "FakeSupabase", table: str) -> None:
        self._db = db
        self._table = table
        self._op = "select"
        self._payload: Any = None
        self._filters: List[Callable[[Dict[str, Any]], bool]] = []
        self._negate_next = False
        self._order: Optional[str] = None
        self._desc = False
        self._limit: Optional[int] = None

    def select(self, columns: str = "*", count: Optional[str] = None) -> "FakeQuery":
        self._op = "select"
        return self

    def update(self, payload: Dict[str, Any]) -> "FakeQuery":
        self._op = "update"
        self._payload = payload
        return self

    def insert(self, payload: Any) -> "FakeQuery":
        self._op = "insert"
        self._payload = payload
        return self

    def _add(self, predicate: Callable[[Dict[str, Any]], bool]) -> "FakeQuery":
        if self._negate_next:
            self._negate_next = False
            self._filters.append(lambda row: not predicate(row))
        else:
            self._filters.append(predicate)
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        return self._add(lambda row: _matches(row.get(column), value))

    def in_(self, column: str, values: List[Any]) -> "FakeQuery":
        allowed = {str(v) for v in values}
        return self._add(lambda row: row.get(column) is not None and str(row.get(column)) in allowed)

    def is_(self, column: str, value: str) -> "FakeQuery":
        assert value == "null"
        return self._add(lambda row: row.get(column) is None)

    @property
    def not_(self) -> "FakeQuery":
        self._negate_next = True
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._order = column
        self._desc = desc
        return self

    def limit(self, count: int) -> "FakeQuery":
        self._limit = count
        return self

    def execute(self) -> FakeResponse:
        self._db.calls.append((self._table, self._op))
        if self._table in self._db.raising_tables:
            raise APIError({"message": "connection reset", "code": "08006"})
        if self._table in self._db.failing_tables:
            return FakeResponse(error=f"{self._table} unavailable")

        rows = self._db.tables.setdefault(self._table, [])

        if self._op == "insert":
            new_rows = self._payload if isinstance(self._payload, list) else [self._payload]
            rows.extend(dict(r) for r in new_rows)
            return FakeResponse(data=[dict(r) for r in new_rows])

        if self._op == "update":
            hook = self._db.before_update.pop(0) if self._db.before_update else None
            if hook is not None:
                hook(self._db)

        matched = [row for row in rows if all(f(row) for f in self._filters)]

        if self._op == "update":
            for row in matched:
                row.update(self._payload)
            return FakeResponse(data=[dict(r) for r in matched])

        if self._order:
            matched.sort(key=lambda r: (r.get(self._order) is None, str(r.get(self._order) or "")), reverse=self._desc)
        if self._limit is not None:
            matched = matched[: self._limit]
        return FakeResponse(data=[dict(r) for r in matched])


class FakeRpc:
    def __init__(self, data: Any) -> None:
        self._data = data

    def execute(self) -> FakeResponse:
        return FakeResponse(data=self._data)


class FakeAuth:
    def __init__(self) -> None:
        self.tokens: Dict[str, UUID] = {}

    def get_user(self, token: str) -> Any:
        if token not in self.tokens:
            raise Exception("invalid JWT")
        return SimpleNamespace(user=SimpleNamespace(id=str(self.tokens[token])))


class FakeSupabase:
    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.admins: set = set()
        self.failing_tables: set = set()
        # Tables whose queries raise like a dropped PostgREST connection.
        self.raising_tables: set = set()
        self.calls: List[tuple] = []
        # Callables run (once each, in order) just before an update matches
        # rows; used to simulate a concurrent writer.
        self.before_update: List[Callable[["FakeSupabase"], None]] = []
        self.auth = FakeAuth()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Dict[str, Any]) -> FakeRpc:
        assert name == "is_admin"
        return FakeRpc(UUID(params["user_id"]) in self.admins)

    def row(self, transaction_id: UUID) -> Dict[str, Any]:
        return next(r for r in self.tables["sale_transactions"] if r["id"] == str(transaction_id))


# ============================================================================
# Fake payment processor
# ============================================================================

class FakeGateway:
    def __init__(self, balance_cents: int = 1_000_000) -> None:
        self.balance_cents = balance_cents
        self.transfers: List[Dict[str, Any]] = []
        self.refunds: List[Dict[str, Any]] = []
        self.transfer_error: Optional[str] = None
        self.refund_error: Optional[str] = None
        self.balance_error: Optional[str] = None
        self._by_key: Dict[str, str] = {}

    def get_available_balance(self, currency: str) -> int:
        if self.balance_error:
            raise PaymentProcessorError(self.balance_error)
        return self.balance_cents

    def create_transfer(self, *, amount_cents, currency, destination, idempotency_key,
                        transfer_group=None, metadata=None) -> str:
        if self.transfer_error:
            raise PaymentProcessorError(self.transfer_error)
        if idempotency_key in self._by_key:
            return self._by_key[idempotency_key]
        transfer_id = f"tr_{len(self.transfers) + 1}"
        self.transfers.append({
            "id": transfer_id,
            "amount_cents": amount_cents,
            "currency": currency,
            "destination": destination,
            "idempotency_key": idempotency_key,
            "metadata": metadata,
        })
        self.balance_cents -= amount_cents
        self._by_key[idempotency_key] = transfer_id
        return transfer_id

    def create_refund(self, *, payment_intent_id, idempotency_key, metadata=None) -> str:
        if self.refund_error:
            raise PaymentProcessorError(self.refund_error)
        if idempotency_key in self._by_key:
            return self._by_key[idempotency_key]
        refund_id = f"re_{len(self.refunds) + 1}"
        self.refunds.append({
            "id": refund_id,
            "payment_intent_id": payment_intent_id,
            "idempotency_key": idempotency_key,
        })
        self._by_key[idempotency_key] = refund_id
        return refund_id


# ============================================================================
# Fixtures
# ============================================================================

def make_sale_row(**overrides: Any) -> Dict[str, Any]:
    row = {
        "id": str(uuid4()),
        "listing_id": str(LISTING_ID),
        "buyer_id": str(BUYER_ID),
        "seller_id": str(SELLER_ID),
        "amount": "1000.00",
        "platform_fee": "130.00",
        "seller_payout": "870.00",
        "currency": "usd",
        "status": "paid",
        "payment_intent_id": "pi_123",
        "fulfillment_type": "pickup",
        "buyer_confirmed_at": None,
        "seller_confirmed_at": None,
        "transfer_id": None,
        "payout_completed_at": None,
        "refund_id": None,
        "dispute_reason": None,
        "disputed_by": None,
        "disputed_at": None,
        "resolution": None,
        "resolved_by": None,
        "resolved_at": None,
        "operational_note": None,
        "created_at": "2024-12-20T10:00:00+00:00",
        "updated_at": "2024-12-20T10:00:00+00:00",
    }
    row.update(overrides)
    return row


@pytest.fixture
def db() -> FakeSupabase:
    supabase = FakeSupabase()
    supabase.tables["profiles"] = [
        {"id": str(BUYER_ID), "full_name": "Bea Buyer", "email": "buyer@example.com", "stripe_account_id": None},
        {"id": str(SELLER_ID), "full_name": "Sam Seller", "email": "seller@example.com",
         "stripe_account_id": "acct_seller"},
        {"id": str(ADMIN_ID), "full_name": "Ada Admin", "email": "admin@example.com", "stripe_account_id": None},
    ]
    supabase.tables["listings"] = [{"id": str(LISTING_ID), "title": "Food Truck"}]
    supabase.tables["sale_transactions"] = []
    supabase.admins.add(ADMIN_ID)
    return supabase


@pytest.fixture
def add_sale(db: FakeSupabase) -> Callable[..., UUID]:
    def _add(**overrides: Any) -> UUID:
        row = make_sale_row(**overrides)
        db.tables["sale_transactions"].append(row)
        return UUID(row["id"])

    return _add


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: NOW


@pytest.fixture
def transactions(db: FakeSupabase) -> SaleTransactionRepository:
    return SaleTransactionRepository(client=db)


@pytest.fixture
def log_repository(db: FakeSupabase) -> TransitionLogRepository:
    return TransitionLogRepository(client=db)


@pytest.fixture
def profiles(db: FakeSupabase) -> ProfileRepository:
    return ProfileRepository(client=db)


@pytest.fixture
def notifications(db: FakeSupabase) -> NotificationRepository:
    return NotificationRepository(client=db)


@pytest.fixture
def recorder(log_repository, clock) -> TransitionRecorder:
    return TransitionRecorder(log_repository, clock)


@pytest.fixture
def payout_service(transactions, profiles, gateway, recorder, clock) -> PayoutService:
    return PayoutService(transactions, profiles, gateway, recorder, clock=clock)


@pytest.fixture
def confirmation_service(transactions, payout_service, recorder, clock) -> ConfirmationService:
    return ConfirmationService(transactions, payout_service, recorder, clock=clock)


@pytest.fixture
def dispute_service(transactions, recorder, clock) -> DisputeService:
    return DisputeService(transactions, recorder, clock=clock)


@pytest.fixture
def resolution_service(transactions, profiles, gateway, payout_service, recorder, clock) -> ResolutionService:
    return ResolutionService(transactions, profiles, gateway, payout_service, recorder, clock=clock)


@pytest.fixture
def retry_service(transactions, payout_service, gateway) -> PayoutRetryService:
    return PayoutRetryService(transactions, payout_service, gateway)


@pytest.fixture
def query_service(transactions, log_repository) -> SaleQueryService:
    return SaleQueryService(transactions, log_repository)
