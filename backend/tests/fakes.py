"""
Test doubles shared across the suite.

FakeSupabase mimics the small slice of the supabase-py query builder the
services use (select / insert / update / delete with eq / in_ / gte /
order / range / limit, plus rpc) over in-memory lists, so multi-step flows such as
create -> authenticate -> rotate -> authenticate can be asserted end to end.

FakeProvider is a scripted EmailProvider that records every call.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from app.models.email import Provider
from app.services.providers import EmailProvider, FailureKind, ProviderResult


class FakeResult:
    def __init__(self, data: List[dict], count: Optional[int] = None):
        self.data = data
        self.count = count


class FakeQuery:
    def __init__(self, db: "FakeSupabase", name: str):
        self._db = db
        self._name = name
        self._rows = db.tables.setdefault(name, [])
        self._op = "select"
        self._payload: Any = None
        self._columns = "*"
        self._count: Optional[str] = None
        self._filters: List[Callable[[dict], bool]] = []
        self._order: Optional[tuple] = None
        self._range: Optional[tuple] = None
        self._limit: Optional[int] = None

    # -- operations ---------------------------------------------------------

    def select(self, columns: str = "*", count: Optional[str] = None) -> "FakeQuery":
        self._op = "select"
        self._columns = columns
        self._count = count
        return self

    def insert(self, row: dict) -> "FakeQuery":
        self._op = "insert"
        self._payload = row
        return self

    def update(self, changes: dict) -> "FakeQuery":
        self._op = "update"
        self._payload = changes
        return self

    def delete(self) -> "FakeQuery":
        self._op = "delete"
        return self

    # -- filters / modifiers ------------------------------------------------

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column: str, values: Iterable[Any]) -> "FakeQuery":
        values = list(values)
        self._filters.append(lambda row: row.get(column) in values)
        return self

    def gte(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda row: row.get(column) is not None and row.get(column) >= value)
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._order = (column, desc)
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self._range = (start, end)
        return self

    def limit(self, n: int) -> "FakeQuery":
        self._limit = n
        return self

    # -- execution ----------------------------------------------------------

    def _matching(self) -> List[dict]:
        return [row for row in self._rows if all(f(row) for f in self._filters)]

    def _project(self, row: dict) -> dict:
        if self._columns.strip() == "*":
            return dict(row)
        wanted = [c.strip() for c in self._columns.split(",")]
        return {c: row.get(c) for c in wanted}

    def execute(self) -> FakeResult:
        self._db.calls.append((self._name, self._op))
        if self._name in self._db.failing_tables:
            raise Exception(f"{self._name} unavailable")

        if self._op == "insert":
            row = dict(self._payload)
            row.setdefault("id", str(uuid.uuid4()))
            self._rows.append(row)
            return FakeResult([dict(row)])

        if self._op == "update":
            updated = []
            for row in self._matching():
                row.update(self._payload)
                updated.append(dict(row))
            return FakeResult(updated)

        if self._op == "delete":
            doomed = self._matching()
            self._rows[:] = [row for row in self._rows if row not in doomed]
            return FakeResult([dict(row) for row in doomed])

        rows = self._matching()
        total = len(rows)
        if self._order:
            column, desc = self._order
            rows = sorted(rows, key=lambda r: r.get(column) or "", reverse=desc)
        if self._range:
            start, end = self._range
            rows = rows[start:end + 1]
        if self._limit is not None:
            rows = rows[:self._limit]
        return FakeResult(
            [self._project(row) for row in rows],
            count=total if self._count else None,
        )


class FakeRpc:
    """Postgres functions from the init migration, evaluated in memory."""

    def __init__(self, db: "FakeSupabase", fn: str, params: dict):
        self._db = db
        self._fn = fn
        self._params = params

    def execute(self) -> FakeResult:
        self._db.calls.append((self._fn, "rpc"))
        if self._fn == "increment_api_key_usage":
            if "api_keys" in self._db.failing_tables:
                raise Exception("api_keys unavailable")
            for row in self._db.rows("api_keys"):
                if row.get("id") == self._params["key_id"]:
                    row["usage_count"] = row.get("usage_count", 0) + 1
                    row["last_used"] = datetime.now(timezone.utc).isoformat()
            return FakeResult([])
        raise Exception(f"Unknown function {self._fn}")


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[dict]] = {}
        self.calls: List[tuple] = []
        self.failing_tables: set = set()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, name: str) -> List[dict]:
        return self.tables.setdefault(name, [])

    def rpc(self, fn: str, params: dict) -> "FakeRpc":
        return FakeRpc(self, fn, params)


class FakeProvider(EmailProvider):
    """
    Returns ``results`` in order; the last result repeats once the script is
    exhausted.
    """

    def __init__(self, provider: Provider, label: str, *results: ProviderResult):
        super().__init__(timeout=1)
        self.provider = provider
        self.label = label
        self._results = list(results) or [ProviderResult.ok()]
        self.calls = []

    def is_configured(self) -> bool:
        return True

    async def send(self, email):
        self.calls.append(email)
        if len(self._results) > 1:
            return self._results.pop(0)
        return self._results[0]


def ok() -> ProviderResult:
    return ProviderResult.ok()


def fail(error: str = "boom", kind: FailureKind = FailureKind.OTHER) -> ProviderResult:
    return ProviderResult.failure(error, kind)


def rate_limited(error: str = "Rate limit exceeded") -> ProviderResult:
    return ProviderResult.failure(error, FailureKind.RATE_LIMITED)
