"""
Shared fixtures: a small Olist-shaped dataset with one customer per segment.

Analysis date is 2018-09-01 (the latest delivered purchase, order o1).

    customer  orders (delivered unless noted)        expected
    c1        o1 09-01, o2 08-20, o3 08-25            Loyal / High Value (0 days, 3 orders)
    c2        o4 08-10, o5 06-01                      Returning (22 days, 2 orders)
    c3        o6 07-01                                At Risk (New) (62 days)
    c4        o7 03-01                                Churned (184 days)
    c5        o8 08-30 canceled                       absent
    c6        o9 unparsable purchase timestamp        absent
    c7        o10 06-15, o11 07-15 (no payment)       At Risk (Returning) (48 days)
    c8        o12 08-31 status " Delivered "          New (1 day)
"""
import matplotlib

matplotlib.use("Agg")

import pandas as pd
import pytest

ORDER_COLUMNS = [
    "order_id",
    "customer_id",
    "order_status",
    "order_purchase_timestamp",
    "order_approved_at",
    "order_delivered_carrier_date",
    "order_delivered_customer_date",
    "order_estimated_delivery_date",
]

ORDER_ROWS = [
    ("o1", "c1", "delivered", "2018-09-01 12:00:00"),
    ("o2", "c1", "delivered", "2018-08-20 09:30:00"),
    ("o3", "c1", "delivered", "2018-08-25 18:45:10"),
    ("o4", "c2", "delivered", "2018-08-10 08:00:00"),
    ("o5", "c2", "delivered", "2018-06-01 10:00:00"),
    ("o6", "c3", "delivered", "2018-07-01 23:59:59"),
    ("o7", "c4", "delivered", "2018-03-01 00:00:01"),
    ("o8", "c5", "canceled", "2018-08-30 11:00:00"),
    ("o9", "c6", "delivered", "not a date"),
    ("o10", "c7", "delivered", "2018-06-15 14:00:00"),
    ("o11", "c7", "delivered", "2018-07-15 14:00:00"),
    ("o12", "c8", " Delivered ", "2018-08-31 07:15:00"),
]

PAYMENT_ROWS = [
    ("o1", "1", "credit_card", "1", "100.00"),
    ("o1", "2", "voucher", "1", "20.50"),
    ("o2", "1", "boleto", "1", "50.00"),
    ("o2", "2", "voucher", "1", "abc"),
    ("o3", "1", "credit_card", "3", "30.25"),
    ("o4", "1", "credit_card", "2", "10.10"),
    ("o5", "1", "credit_card", "1", "99.99"),
    ("o6", "1", "debit_card", "1", "45.00"),
    ("o7", "1", "credit_card", "1", "12.00"),
    ("o8", "1", "credit_card", "1", "5.00"),
    ("o10", "1", "boleto", "1", "70.00"),
    ("o12", "1", "credit_card", "1", "15.50"),
    ("", "1", "credit_card", "1", "8.00"),
]

CUSTOMER_ROWS = [
    ("c1", "u1", "01310", "sao paulo", "sp"),
    ("c2", "u2", "20040", "rio de janeiro", "RJ"),
    ("c3", "u3", "30130", "belo horizonte", "MG"),
    ("c4", "u4", "80010", "curitiba", "PR"),
    ("c5", "u5", "40020", "salvador", "BA"),
    ("c6", "u6", "60060", "fortaleza", "CE"),
    ("c7", "u7", "70040", "brasilia", "DF"),
    ("c8", "u8", "90010", "porto alegre", "RS"),
    ("c9", "u9", "69005", "manaus", "AM"),
]


def _raw_orders(rows):
    return pd.DataFrame(
        [(o, c, s, ts, "", "", "", "") for o, c, s, ts in rows],
        columns=ORDER_COLUMNS,
    )


@pytest.fixture
def make_raw_orders():
    """Factory: (order_id, customer_id, status, purchase_ts) tuples -> raw orders frame."""
    return _raw_orders


@pytest.fixture
def raw_orders():
    return _raw_orders(ORDER_ROWS)


@pytest.fixture
def raw_payments():
    return pd.DataFrame(
        PAYMENT_ROWS,
        columns=["order_id", "payment_sequential", "payment_type", "payment_installments", "payment_value"],
    )


@pytest.fixture
def raw_customers():
    return pd.DataFrame(
        CUSTOMER_ROWS,
        columns=["customer_id", "customer_unique_id", "customer_zip_code_prefix", "customer_city", "customer_state"],
    )


@pytest.fixture
def data_dir(tmp_path, raw_orders, raw_payments, raw_customers):
    """The fixture dataset written as Olist CSVs."""
    d = tmp_path / "data"
    d.mkdir()
    raw_orders.to_csv(d / "olist_orders_dataset.csv", index=False)
    raw_payments.to_csv(d / "olist_order_payments_dataset.csv", index=False)
    raw_customers.to_csv(d / "olist_customers_dataset.csv", index=False)
    return d


@pytest.fixture
def make_recency():
    """Factory: (recency_days, total_orders[, is_churned]) tuples -> recency frame."""
    def _make(rows, churn_threshold_days=90):
        records = []
        for i, row in enumerate(rows):
            recency_days, total_orders = row[0], row[1]
            churned = row[2] if len(row) > 2 else recency_days > churn_threshold_days
            records.append(
                {
                    "customer_id": f"c{i}",
                    "recency_days": recency_days,
                    "total_orders": total_orders,
                    "is_churned": churned,
                }
            )
        return pd.DataFrame(records, columns=["customer_id", "recency_days", "total_orders", "is_churned"])
    return _make
