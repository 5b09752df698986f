"""
Typed query configuration for backend table reads.

Data services describe what they want with a TableQuery instead of passing
loose filter dicts around; the backend client turns it into REST query
parameters (col=op.value, select, order, limit, offset).

    query = (
        TableQuery("appointments")
        .eq("tenant_id", tenant_id)
        .gte("start_at", range_start)
        .lt("start_at", range_end)
        .order("start_at")
    )
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, List, Optional, Tuple


class FilterOp(str, Enum):
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    IS = "is"
    LIKE = "like"
    ILIKE = "ilike"


def _format_scalar(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _quote_list_item(value: Any) -> str:
    text = _format_scalar(value)
    if any(c in text for c in ',()" '):
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


@dataclass(frozen=True)
class Filter:
    column: str
    op: FilterOp
    value: Any

    def to_param(self) -> Tuple[str, str]:
        if self.op == FilterOp.IN:
            items = ",".join(_quote_list_item(v) for v in self.value)
            return self.column, f"in.({items})"
        return self.column, f"{self.op.value}.{_format_scalar(self.value)}"


@dataclass(frozen=True)
class OrderBy:
    column: str
    ascending: bool = True
    nulls_last: bool = False

    def to_param(self) -> str:
        direction = "asc" if self.ascending else "desc"
        suffix = ".nullslast" if self.nulls_last else ""
        return f"{self.column}.{direction}{suffix}"


@dataclass
class TableQuery:
    table: str
    columns: str = "*"
    filters: List[Filter] = field(default_factory=list)
    order_by: List[OrderBy] = field(default_factory=list)
    limit: Optional[int] = None
    offset: Optional[int] = None

    def where(self, column: str, op: FilterOp, value: Any) -> "TableQuery":
        self.filters.append(Filter(column, op, value))
        return self

    def eq(self, column: str, value: Any) -> "TableQuery":
        return self.where(column, FilterOp.EQ, value)

    def neq(self, column: str, value: Any) -> "TableQuery":
        return self.where(column, FilterOp.NEQ, value)

    def gte(self, column: str, value: Any) -> "TableQuery":
        return self.where(column, FilterOp.GTE, value)

    def lt(self, column: str, value: Any) -> "TableQuery":
        return self.where(column, FilterOp.LT, value)

    def in_(self, column: str, values: Iterable[Any]) -> "TableQuery":
        return self.where(column, FilterOp.IN, list(values))

    def is_null(self, column: str) -> "TableQuery":
        return self.where(column, FilterOp.IS, None)

    def order(self, column: str, ascending: bool = True, nulls_last: bool = False) -> "TableQuery":
        self.order_by.append(OrderBy(column, ascending, nulls_last))
        return self

    def paginate(self, limit: int, offset: int = 0) -> "TableQuery":
        self.limit = limit
        self.offset = offset
        return self

    def filter_params(self) -> List[Tuple[str, str]]:
        """Only the row filters, as used by update and delete."""
        return [f.to_param() for f in self.filters]

    def to_params(self) -> List[Tuple[str, str]]:
        params: List[Tuple[str, str]] = [("select", self.columns)]
        params.extend(self.filter_params())
        if self.order_by:
            params.append(("order", ",".join(o.to_param() for o in self.order_by)))
        if self.limit is not None:
            params.append(("limit", str(self.limit)))
        if self.offset:
            params.append(("offset", str(self.offset)))
        return params
