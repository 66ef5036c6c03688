"""
Recency & churn against a single analysis date.

Guards against:
1. Negative recency (analysis date must be the dataset-wide max)
2. Off-by-one at the 90-day churn boundary
3. Silently defaulting when there are no customers
"""
import pandas as pd
import pytest

from revgrowth.pipeline import (
    EmptyCustomerBaseError,
    aggregate_customers,
    clean_orders,
    compute_analysis_date,
    compute_recency,
)


def _base(last_order_ts, total_orders=1):
    ts = pd.to_datetime(pd.Series(last_order_ts))
    return pd.DataFrame(
        {
            "customer_id": [f"c{i}" for i in range(len(ts))],
            "first_order_ts": ts,
            "last_order_ts": ts,
            "total_orders": total_orders,
        }
    )


@pytest.fixture
def customer_base(raw_orders):
    return aggregate_customers(clean_orders(raw_orders))


# ────────────────────────────────────────────
# ANALYSIS DATE
# ────────────────────────────────────────────


class TestAnalysisDate:

    def test_latest_last_order(self, customer_base):
        assert compute_analysis_date(customer_base) == pd.Timestamp("2018-09-01 12:00:00")

    def test_empty_base_raises(self):
        empty = aggregate_customers(clean_orders(pd.DataFrame(
            columns=["order_id", "customer_id", "order_status", "order_purchase_timestamp"]
        )))
        with pytest.raises(EmptyCustomerBaseError):
            compute_analysis_date(empty)

    def test_degenerate_error_is_value_error(self):
        assert issubclass(EmptyCustomerBaseError, ValueError)


# ────────────────────────────────────────────
# RECENCY & CHURN
# ────────────────────────────────────────────


class TestRecency:

    def test_recency_days(self, customer_base):
        analysis_date = compute_analysis_date(customer_base)
        recency = compute_recency(customer_base, analysis_date).set_index("customer_id")
        assert recency["recency_days"].to_dict() == {
            "c1": 0,
            "c2": 22,
            "c3": 62,
            "c4": 184,
            "c7": 48,
            "c8": 1,
        }

    def test_recency_never_negative(self, customer_base):
        recency = compute_recency(customer_base, compute_analysis_date(customer_base))
        assert (recency["recency_days"] >= 0).all()

    def test_churn_flags(self, customer_base):
        recency = compute_recency(customer_base, compute_analysis_date(customer_base))
        churned = recency.loc[recency["is_churned"], "customer_id"].tolist()
        assert churned == ["c4"]
        assert recency["is_churned"].dtype == bool

    def test_boundary_90_not_churned_91_churned(self):
        base = _base(["2018-01-01 12:00:00", "2017-12-31 12:00:00"])
        recency = compute_recency(base, pd.Timestamp("2018-04-01 12:00:00"))
        assert recency["recency_days"].tolist() == [90, 91]
        assert recency["is_churned"].tolist() == [False, True]

    def test_counts_calendar_day_boundaries(self):
        # 2 hours apart but across midnight: one day, as SQL DATEDIFF(DAY, ...)
        base = _base(["2018-01-01 23:00:00"])
        recency = compute_recency(base, pd.Timestamp("2018-01-02 01:00:00"))
        assert recency.loc[0, "recency_days"] == 1

    def test_custom_threshold(self):
        base = _base(["2018-01-01", "2018-01-20"])
        recency = compute_recency(base, pd.Timestamp("2018-02-01"), churn_threshold_days=20)
        assert recency["recency_days"].tolist() == [31, 12]
        assert recency["is_churned"].tolist() == [True, False]

    def test_analysis_date_accepts_string(self):
        base = _base(["2018-01-01"])
        recency = compute_recency(base, "2018-01-11")
        assert recency.loc[0, "recency_days"] == 10

    def test_analysis_date_before_last_order_raises(self):
        base = _base(["2018-03-01"])
        with pytest.raises(ValueError, match="precedes"):
            compute_recency(base, pd.Timestamp("2018-02-01"))

    def test_base_not_mutated(self, customer_base):
        before = customer_base.copy()
        compute_recency(customer_base, compute_analysis_date(customer_base))
        pd.testing.assert_frame_equal(customer_base, before)

    def test_empty_base_with_explicit_date(self):
        base = _base([])
        recency = compute_recency(base, pd.Timestamp("2018-01-01"))
        assert recency.empty
        assert {"recency_days", "is_churned"} <= set(recency.columns)
