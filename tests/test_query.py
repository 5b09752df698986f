"""
Tests for the typed table query builder.
"""

from datetime import datetime, timezone

from valorwell.models.client import ClientStatus
from valorwell.services.query import Filter, FilterOp, OrderBy, TableQuery


class TestFilter:
    def test_scalar_operators(self):
        assert Filter("id", FilterOp.EQ, "abc").to_param() == ("id", "eq.abc")
        assert Filter("status", FilterOp.NEQ, "cancelled").to_param() == ("status", "neq.cancelled")

    def test_value_rendering(self):
        assert Filter("is_active", FilterOp.EQ, True).to_param() == ("is_active", "eq.true")
        assert Filter("read_at", FilterOp.IS, None).to_param() == ("read_at", "is.null")
        assert Filter("status", FilterOp.EQ, ClientStatus.REGISTERED).to_param() == ("status", "eq.registered")

    def test_datetime_rendering(self):
        moment = datetime(2025, 3, 14, 9, tzinfo=timezone.utc)
        assert Filter("start_at", FilterOp.GTE, moment).to_param() == ("start_at", "gte.2025-03-14T09:00:00+00:00")

    def test_in_list_quotes_when_needed(self):
        f = Filter("name", FilterOp.IN, ["a", "b c", 'd"e'])
        assert f.to_param() == ("name", 'in.(a,"b c","d\\"e")')


class TestOrderBy:
    def test_directions(self):
        assert OrderBy("created_at").to_param() == "created_at.asc"
        assert OrderBy("created_at", ascending=False).to_param() == "created_at.desc"
        assert OrderBy("pat_name_l", nulls_last=True).to_param() == "pat_name_l.asc.nullslast"


class TestTableQuery:
    def test_builder_params(self):
        query = (
            TableQuery("appointments", "id, start_at")
            .eq("tenant_id", "t1")
            .gte("start_at", "2025-03-01T00:00:00Z")
            .lt("start_at", "2025-04-01T00:00:00Z")
            .order("start_at")
            .paginate(50, 100)
        )

        assert query.to_params() == [
            ("select", "id, start_at"),
            ("tenant_id", "eq.t1"),
            ("start_at", "gte.2025-03-01T00:00:00Z"),
            ("start_at", "lt.2025-04-01T00:00:00Z"),
            ("order", "start_at.asc"),
            ("limit", "50"),
            ("offset", "100"),
        ]

    def test_multiple_orderings_are_joined(self):
        query = TableQuery("customers").order("pat_name_l").order("pat_name_f", ascending=False)
        assert ("order", "pat_name_l.asc,pat_name_f.desc") in query.to_params()

    def test_zero_offset_omitted(self):
        params = dict(TableQuery("messages").paginate(10).to_params())
        assert params["limit"] == "10"
        assert "offset" not in params

    def test_filter_params_exclude_select(self):
        query = TableQuery("messages").eq("client_id", "c1").is_null("read_at").in_("id", ["m1", "m2"])
        assert query.filter_params() == [
            ("client_id", "eq.c1"),
            ("read_at", "is.null"),
            ("id", "in.(m1,m2)"),
        ]
