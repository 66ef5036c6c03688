"""
revgrowth.pipeline

Customer recency, churn, segment and revenue tables for the Olist e-commerce
dataset, packaged as a reusable batch pipeline.

Main entrypoint:
    from revgrowth import run_all, ProjectConfig
    run_all(ProjectConfig(data_dir="data", out_dir="out"))

This will:
    - load & type orders, payments and (when present) customers
    - build the customer-level base table from delivered orders
    - derive the analysis date, recency in days and churn flags
    - assign recency/frequency segments with an audit reason
    - aggregate payments to order revenue and roll it up by month & segment
    - write all outputs to <out_dir> as CSVs and PNGs

Every stage is a pure function of the frames it receives; the analysis date
is passed explicitly rather than read from wall-clock time.
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from .utils import (
    coerce_datetimes,
    empty_frame,
    finish_fig,
    numericize,
    require_columns,
    standardize_columns,
    trim_strings,
    write_table,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Business constants
# ---------------------------------------------------------------------------

COMPLETED_STATUS = "delivered"
CHURN_THRESHOLD_DAYS = 90

RECENT_MAX_DAYS = 30
AT_RISK_MIN_DAYS = 31
AT_RISK_MAX_DAYS = 90

# DECIMAL(10,2): payments at or beyond this magnitude cannot be stored
MAX_PAYMENT_VALUE = 1e8
CENT = Decimal("0.01")

CHURNED = "Churned"
LOYAL = "Loyal / High Value"
RETURNING = "Returning"
NEW = "New"
AT_RISK_RETURNING = "At Risk (Returning)"
AT_RISK_NEW = "At Risk (New)"
ACTIVE_OTHER = "Active (Other)"

SEGMENT_LABELS = (CHURNED, LOYAL, RETURNING, NEW, AT_RISK_RETURNING, AT_RISK_NEW, ACTIVE_OTHER)

ORDER_ID_COLUMNS = ("order_id", "customer_id", "order_status")

# raw column -> typed column
ORDER_TIMESTAMP_COLUMNS = {
    "order_purchase_timestamp": "order_purchase_ts",
    "order_approved_at": "order_approved_ts",
    "order_delivered_carrier_date": "delivered_carrier_ts",
    "order_delivered_customer_date": "delivered_customer_ts",
    "order_estimated_delivery_date": "estimated_delivery_ts",
}

PAYMENT_OPTIONAL_COLUMNS = ("payment_sequential", "payment_type", "payment_installments")

CUSTOMER_COLUMNS = (
    "customer_id",
    "customer_unique_id",
    "customer_zip_code_prefix",
    "customer_city",
    "customer_state",
)

CUSTOMER_BASE_SCHEMA = {
    "customer_id": "object",
    "first_order_ts": "datetime64[ns]",
    "last_order_ts": "datetime64[ns]",
    "total_orders": "int64",
}

ORDER_REVENUE_SCHEMA = {
    "order_id": "object",
    "total_payment_value": "float64",
    "payment_count": "int64",
}

MONTHLY_KEYS = ["order_year", "order_month", "rf_segment"]

MONTHLY_REVENUE_SCHEMA = {
    "order_year": "int64",
    "order_month": "int64",
    "rf_segment": "object",
    "active_customers": "int64",
    "total_orders": "int64",
    "total_revenue": "float64",
}

DATE_DIMENSION_SCHEMA = {
    "date_key": "int64",
    "date": "object",
    "year": "int64",
    "quarter": "int64",
    "month": "int64",
    "month_name": "object",
    "day": "int64",
    "day_of_week": "int64",
    "is_weekend": "bool",
    "year_month": "object",
}


class EmptyCustomerBaseError(ValueError):
    """No customer has a completed order, so the analysis date is undefined."""


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

@dataclass
class ProjectConfig:
    """
    Configuration for the pipeline.

    Attributes
    ----------
    data_dir : Path
        Directory containing the orders, payments and customers CSVs.
    out_dir : Path
        Directory where all derived CSVs and plots will be written.
    orders_file, payments_file, customers_file : str
        File names inside data_dir. The customers file is optional.
    churn_threshold_days : int
        A customer is churned when recency_days is strictly greater than this.
    completed_status : str
        Order status that counts as a completed purchase.
    show_plots : bool
        Whether to display plots (useful in notebooks).
    save_plots : bool
        Whether to save plots as PNGs under out_dir.
    """
    data_dir: Path = Path("data")
    out_dir: Path = Path("out")
    orders_file: str = "olist_orders_dataset.csv"
    payments_file: str = "olist_order_payments_dataset.csv"
    customers_file: str = "olist_customers_dataset.csv"
    churn_threshold_days: int = CHURN_THRESHOLD_DAYS
    completed_status: str = COMPLETED_STATUS
    show_plots: bool = False
    save_plots: bool = True

    def __post_init__(self) -> None:
        self.data_dir = Path(self.data_dir)
        self.out_dir = Path(self.out_dir)
        if self.churn_threshold_days < 0:
            raise ValueError("churn_threshold_days must be non-negative")

    @property
    def orders_path(self) -> Path:
        return self.data_dir / self.orders_file

    @property
    def payments_path(self) -> Path:
        return self.data_dir / self.payments_file

    @property
    def customers_path(self) -> Path:
        return self.data_dir / self.customers_file


# ---------------------------------------------------------------------------
# Ingestion & typing
# ---------------------------------------------------------------------------

def _read_raw(path: Path) -> pd.DataFrame:
    # Everything as text; typing happens in the clean_* functions.
    return pd.read_csv(path, dtype=str, keep_default_na=False, na_values=[])


def clean_orders(raw: pd.DataFrame) -> pd.DataFrame:
    """
    Type raw order rows into the orders_clean table.

    Identifiers and status stay text, the five timestamp columns are parsed
    with unparsable values becoming NaT. Rows with null identifiers are kept;
    later stages decide what to exclude. Exact duplicate rows are dropped.

    Parse statistics are attached to ``attrs``:
    ``raw_rows``, ``duplicate_rows`` and ``unparsable_timestamps``.
    """
    df = standardize_columns(raw)
    require_columns(df, ORDER_ID_COLUMNS + ("order_purchase_timestamp",), "orders")
    for c in ORDER_ID_COLUMNS:
        df[c] = df[c].astype(object)
    df = trim_strings(df)

    raw_rows = len(df)
    df = df.drop_duplicates().reset_index(drop=True)
    duplicates = raw_rows - len(df)
    if duplicates:
        logger.warning("Dropped %d duplicate order row(s)", duplicates)

    failures = coerce_datetimes(df, ORDER_TIMESTAMP_COLUMNS)

    out = df[list(ORDER_ID_COLUMNS) + list(ORDER_TIMESTAMP_COLUMNS.values())].copy()
    out.attrs["raw_rows"] = raw_rows
    out.attrs["duplicate_rows"] = duplicates
    out.attrs["unparsable_timestamps"] = failures
    return out


def clean_payments(raw: pd.DataFrame) -> pd.DataFrame:
    """
    Type raw payment rows: numeric payment_value rounded to cents.

    Values are rounded half away from zero on their decimal text, as a
    DECIMAL(10,2) cast does. Rows without an order id, with an unparsable or
    non-finite value, or with a value outside the DECIMAL(10,2) range cannot
    be attributed to revenue; they are left out and counted in
    ``attrs["excluded_payment_rows"]``.
    """
    df = standardize_columns(raw)
    require_columns(df, ("order_id", "payment_value"), "payments")
    df["order_id"] = df["order_id"].astype(object)
    df = trim_strings(df)
    text = df["payment_value"].copy()
    numericize(df, ["payment_value", "payment_sequential", "payment_installments"])

    value = df["payment_value"].astype(float)
    bad = df["order_id"].isna() | ~np.isfinite(value) | (value.abs() >= MAX_PAYMENT_VALUE)
    if bad.any():
        logger.warning("Excluded %d payment row(s) without order id or a storable value", int(bad.sum()))

    keep = ["order_id"] + [c for c in PAYMENT_OPTIONAL_COLUMNS if c in df.columns] + ["payment_value"]
    out = df.loc[~bad, keep].reset_index(drop=True)
    out["payment_value"] = text[~bad].map(_round_money).astype(float).reset_index(drop=True)
    out.attrs["excluded_payment_rows"] = int(bad.sum())
    return out


def _round_money(value) -> float:
    return float(Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP))


def clean_customers(raw: pd.DataFrame) -> pd.DataFrame:
    """Customer dimension: one row per customer_id, text columns only."""
    df = standardize_columns(raw)
    require_columns(df, ("customer_id",), "customers")
    keep = [c for c in CUSTOMER_COLUMNS if c in df.columns]
    df = trim_strings(df[keep].astype(object))
    out = (
        df.loc[df["customer_id"].notna()]
        .drop_duplicates(subset="customer_id")
        .reset_index(drop=True)
    )
    if "customer_state" in out.columns:
        out["customer_state"] = out["customer_state"].str.upper()
    return out


def load_orders(config: ProjectConfig) -> pd.DataFrame:
    raw = _read_raw(config.orders_path)
    logger.info("Loaded %d order rows from %s", len(raw), config.orders_path)
    return clean_orders(raw)


def load_payments(config: ProjectConfig) -> pd.DataFrame:
    raw = _read_raw(config.payments_path)
    logger.info("Loaded %d payment rows from %s", len(raw), config.payments_path)
    return clean_payments(raw)


def load_customers(config: ProjectConfig) -> Optional[pd.DataFrame]:
    """Load the customers CSV, or return None when the file is absent."""
    if not config.customers_path.exists():
        logger.info("No customers file at %s; skipping customer dimension", config.customers_path)
        return None
    raw = _read_raw(config.customers_path)
    logger.info("Loaded %d customer rows from %s", len(raw), config.customers_path)
    return clean_customers(raw)


# ---------------------------------------------------------------------------
# Customer aggregation
# ---------------------------------------------------------------------------

def aggregate_customers(
    orders: pd.DataFrame,
    completed_status: str = COMPLETED_STATUS,
) -> pd.DataFrame:
    """
    Reduce typed orders to one row per customer with at least one completed order.

    Only orders whose status matches `completed_status` (trimmed,
    case-insensitive) and that have a purchase timestamp count.

    Returns
    -------
    pd.DataFrame
        customer_id, first_order_ts, last_order_ts, total_orders
        (distinct order ids), sorted by customer_id.
    """
    require_columns(orders, ("order_id", "customer_id", "order_status", "order_purchase_ts"), "orders_clean")

    status = orders["order_status"].str.strip().str.lower()
    completed = (
        status.eq(completed_status.strip().lower())
        & orders["order_purchase_ts"].notna()
        & orders["customer_id"].notna()
        & orders["order_id"].notna()
    )
    delivered = orders.loc[completed]
    if delivered.empty:
        logger.warning("No %r orders with a purchase timestamp", completed_status)
        return empty_frame(CUSTOMER_BASE_SCHEMA)

    base = (
        delivered.groupby("customer_id", sort=True)
        .agg(
            first_order_ts=("order_purchase_ts", "min"),
            last_order_ts=("order_purchase_ts", "max"),
            total_orders=("order_id", "nunique"),
        )
        .reset_index()
    )
    base["total_orders"] = base["total_orders"].astype("int64")
    logger.info("Customer base: %d customers from %d completed orders", len(base), len(delivered))
    return base


# ---------------------------------------------------------------------------
# Recency & churn
# ---------------------------------------------------------------------------

def compute_analysis_date(customer_base: pd.DataFrame) -> pd.Timestamp:
    """
    The dataset's reference "now": the latest last_order_ts over all customers.

    Raises EmptyCustomerBaseError when there is no customer to take it from.
    """
    if customer_base.empty or customer_base["last_order_ts"].isna().all():
        raise EmptyCustomerBaseError(
            "customer base is empty: no completed orders, analysis date is undefined"
        )
    return pd.Timestamp(customer_base["last_order_ts"].max())


def compute_recency(
    customer_base: pd.DataFrame,
    analysis_date,
    churn_threshold_days: int = CHURN_THRESHOLD_DAYS,
) -> pd.DataFrame:
    """
    Add recency_days and is_churned to the customer base.

    recency_days counts calendar-day boundaries between last_order_ts and
    `analysis_date`, like SQL ``DATEDIFF(DAY, ...)``; is_churned is
    ``recency_days > churn_threshold_days``.
    """
    require_columns(customer_base, tuple(CUSTOMER_BASE_SCHEMA), "customer_orders_base")
    analysis_date = pd.Timestamp(analysis_date)
    if customer_base["last_order_ts"].isna().any():
        raise ValueError("customer_orders_base: last_order_ts contains nulls")

    out = customer_base.copy()
    last = pd.to_datetime(out["last_order_ts"])
    days = (analysis_date.normalize() - last.dt.normalize()).dt.days
    if (days < 0).any():
        raise ValueError(
            f"analysis date {analysis_date} precedes the last order of {int((days < 0).sum())} customer(s)"
        )

    out["recency_days"] = days.astype("int64")
    out["is_churned"] = (out["recency_days"] > churn_threshold_days).astype(bool)
    return out


# ---------------------------------------------------------------------------
# Segmentation
# ---------------------------------------------------------------------------

def _segment_rules(df: pd.DataFrame) -> List[Tuple[str, pd.Series]]:
    """Ordered (label, condition) pairs; the first true condition wins."""
    r = df["recency_days"]
    n = df["total_orders"]
    recent = r <= RECENT_MAX_DAYS
    at_risk = r.between(AT_RISK_MIN_DAYS, AT_RISK_MAX_DAYS)
    return [
        (CHURNED, df["is_churned"].astype(bool)),
        (LOYAL, recent & (n >= 3)),
        (RETURNING, recent & (n == 2)),
        (NEW, recent & (n == 1)),
        (AT_RISK_RETURNING, at_risk & (n >= 2)),
        (AT_RISK_NEW, at_risk & (n == 1)),
    ]


def assign_segments(recency: pd.DataFrame) -> pd.DataFrame:
    """
    Label every customer with exactly one RF segment.

    Adds rf_segment (first matching rule, else "Active (Other)") and
    segment_reason, a readable "Recency=..; Orders=..; Churn=.." string.
    """
    require_columns(recency, ("recency_days", "total_orders", "is_churned"), "customer_recency_base")
    out = recency.copy()

    rules = _segment_rules(out)
    out["rf_segment"] = np.select(
        [cond.to_numpy(dtype=bool) for _, cond in rules],
        [label for label, _ in rules],
        default=ACTIVE_OTHER,
    )
    out["rf_segment"] = out["rf_segment"].astype(object)

    out["segment_reason"] = (
        "Recency=" + out["recency_days"].astype(str)
        + " days; Orders=" + out["total_orders"].astype(str)
        + "; Churn=" + out["is_churned"].astype(int).astype(str)
    )
    return out


# ---------------------------------------------------------------------------
# Revenue aggregation
# ---------------------------------------------------------------------------

def _to_cents(values: pd.Series) -> pd.Series:
    return (values.astype(float) * 100).round().astype("int64")


def build_order_revenue(payments: pd.DataFrame) -> pd.DataFrame:
    """
    One revenue row per order: the sum of all its payment rows.

    Sums are taken in integer cents so that the total over all orders is
    exactly the total over all payments.
    """
    require_columns(payments, ("order_id", "payment_value"), "payments")
    valid = payments.loc[payments["order_id"].notna() & payments["payment_value"].notna()]
    if valid.empty:
        return empty_frame(ORDER_REVENUE_SCHEMA)

    valid = valid.assign(_cents=_to_cents(valid["payment_value"]))
    revenue = (
        valid.groupby("order_id", sort=True)
        .agg(total_cents=("_cents", "sum"), payment_count=("_cents", "size"))
        .reset_index()
    )
    revenue["total_payment_value"] = revenue.pop("total_cents") / 100
    revenue["payment_count"] = revenue["payment_count"].astype("int64")
    return revenue[list(ORDER_REVENUE_SCHEMA)]


def _segment_keys(segments: pd.DataFrame) -> pd.DataFrame:
    return segments[["customer_id", "rf_segment"]].astype({"customer_id": object})


def _with_purchase_month(frame: pd.DataFrame) -> pd.DataFrame:
    out = frame.copy()
    out["order_year"] = out["order_purchase_ts"].dt.year.astype("int64")
    out["order_month"] = out["order_purchase_ts"].dt.month.astype("int64")
    return out


def build_monthly_segment_revenue(
    orders: pd.DataFrame,
    order_revenue: pd.DataFrame,
    segments: pd.DataFrame,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Monthly revenue by segment: orders joined to order_revenue and customer_segments.

    Orders of any status take part. An order contributes only when it has a
    purchase timestamp, a revenue row and a segmented customer (inner-join
    semantics).

    Returns
    -------
    rollup : pd.DataFrame
        order_year, order_month, rf_segment, active_customers (distinct),
        total_orders, total_revenue.
    exclusions : pd.DataFrame
        reason, orders: how many orders each join gap removed.
    """
    require_columns(orders, ("order_id", "customer_id", "order_purchase_ts"), "orders_clean")
    require_columns(order_revenue, ("order_id", "total_payment_value"), "order_revenue")
    require_columns(segments, ("customer_id", "rf_segment"), "customer_segments")

    no_ts = orders["order_purchase_ts"].isna()
    dated = orders.loc[~no_ts, ["order_id", "customer_id", "order_purchase_ts"]]
    has_revenue = dated["order_id"].isin(order_revenue["order_id"])
    has_segment = dated["customer_id"].isin(segments["customer_id"])

    exclusions = pd.DataFrame(
        {
            "reason": ["missing_purchase_ts", "missing_revenue", "missing_segment"],
            "orders": [
                int(no_ts.sum()),
                int((~has_revenue).sum()),
                int((has_revenue & ~has_segment).sum()),
            ],
        }
    )
    excluded = int(exclusions["orders"].sum())
    if excluded:
        logger.warning(
            "Monthly revenue rollup excluded %d of %d order(s): %s",
            excluded,
            len(orders),
            ", ".join(f"{r}={n}" for r, n in zip(exclusions["reason"], exclusions["orders"]) if n),
        )

    keep = has_revenue & has_segment
    if not keep.any():
        return empty_frame(MONTHLY_REVENUE_SCHEMA), exclusions

    revenue = order_revenue[["order_id", "total_payment_value"]].astype({"order_id": object})
    joined = (
        dated.loc[keep]
        .astype({"order_id": object, "customer_id": object})
        .merge(revenue, on="order_id", how="inner", validate="many_to_one")
        .merge(_segment_keys(segments), on="customer_id", how="inner", validate="many_to_one")
    )
    joined = _with_purchase_month(joined)
    joined["_cents"] = _to_cents(joined["total_payment_value"])
    rollup = (
        joined.groupby(MONTHLY_KEYS, sort=True)
        .agg(
            active_customers=("customer_id", "nunique"),
            total_orders=("order_id", "count"),
            total_cents=("_cents", "sum"),
        )
        .reset_index()
    )
    rollup["total_revenue"] = rollup.pop("total_cents") / 100
    return rollup.astype(MONTHLY_REVENUE_SCHEMA), exclusions


def build_segment_activity(orders: pd.DataFrame, segments: pd.DataFrame) -> pd.DataFrame:
    """Monthly active customers and orders per segment (no revenue join)."""
    require_columns(orders, ("order_id", "customer_id", "order_purchase_ts"), "orders_clean")
    require_columns(segments, ("customer_id", "rf_segment"), "customer_segments")
    dated = orders.loc[orders["order_purchase_ts"].notna(), ["order_id", "customer_id", "order_purchase_ts"]]
    schema = {k: MONTHLY_REVENUE_SCHEMA[k] for k in MONTHLY_KEYS + ["active_customers", "total_orders"]}
    has_segment = dated["customer_id"].isin(segments["customer_id"])
    if not has_segment.any():
        return empty_frame(schema)

    joined = (
        dated.loc[has_segment]
        .astype({"customer_id": object})
        .merge(_segment_keys(segments), on="customer_id", how="inner")
    )
    activity = (
        _with_purchase_month(joined)
        .groupby(MONTHLY_KEYS, sort=True)
        .agg(active_customers=("customer_id", "nunique"), total_orders=("order_id", "count"))
        .reset_index()
    )
    return activity.astype(schema)


# ---------------------------------------------------------------------------
# Summaries, date dimension & data quality
# ---------------------------------------------------------------------------

def build_order_frequency(customer_base: pd.DataFrame) -> pd.DataFrame:
    """How many customers placed 1, 2, 3, ... completed orders."""
    freq = (
        customer_base.groupby("total_orders", sort=True)
        .size()
        .rename("customer_count")
        .reset_index()
    )
    return freq.astype({"total_orders": "int64", "customer_count": "int64"})


def build_segment_summary(segments: pd.DataFrame) -> pd.DataFrame:
    """Customers, churned customers and averages per segment, largest first."""
    summary = (
        segments.groupby("rf_segment")
        .agg(
            customers=("customer_id", "count"),
            churned=("is_churned", "sum"),
            avg_recency_days=("recency_days", "mean"),
            avg_orders=("total_orders", "mean"),
        )
        .reset_index()
    )
    summary["churned"] = summary["churned"].astype("int64")
    summary["share_%"] = (summary["customers"] / max(len(segments), 1) * 100).round(2)
    summary["avg_recency_days"] = summary["avg_recency_days"].round(1)
    summary["avg_orders"] = summary["avg_orders"].round(3)
    return summary.sort_values(
        ["customers", "rf_segment"], ascending=[False, True], kind="mergesort"
    ).reset_index(drop=True)


def build_date_dimension(orders: pd.DataFrame) -> pd.DataFrame:
    """Calendar table covering every day from the first to the last purchase."""
    ts = orders["order_purchase_ts"].dropna()
    if ts.empty:
        return empty_frame(DATE_DIMENSION_SCHEMA)

    days = pd.date_range(ts.min().normalize(), ts.max().normalize(), freq="D")
    dim = pd.DataFrame(
        {
            "date_key": days.year * 10000 + days.month * 100 + days.day,
            "date": days.date,
            "year": days.year,
            "quarter": days.quarter,
            "month": days.month,
            "month_name": days.month_name(),
            "day": days.day,
            "day_of_week": days.dayofweek + 1,  # ISO: Monday=1
            "is_weekend": days.dayofweek >= 5,
            "year_month": days.strftime("%Y-%m"),
        }
    )
    return dim.astype(DATE_DIMENSION_SCHEMA)


def build_data_quality(
    orders: pd.DataFrame,
    payments: pd.DataFrame,
    customer_base: pd.DataFrame,
    recency: pd.DataFrame,
    exclusions: pd.DataFrame,
    analysis_date: pd.Timestamp,
    customers: Optional[pd.DataFrame] = None,
) -> pd.DataFrame:
    """
    Sanity checks for one run as a metric/value table.

    ``invalid_first_after_last`` must be 0; the rest describe how much data
    was typed away, filtered out or left out of joins.
    """
    rows: List[Tuple[str, object]] = [
        ("raw_order_rows", int(orders.attrs.get("raw_rows", len(orders)))),
        ("duplicate_order_rows_dropped", int(orders.attrs.get("duplicate_rows", 0))),
        ("order_rows", len(orders)),
        ("distinct_orders", int(orders["order_id"].nunique())),
        ("null_purchase_ts", int(orders["order_purchase_ts"].isna().sum())),
    ]
    for col, n in orders.attrs.get("unparsable_timestamps", {}).items():
        rows.append((f"unparsable_{col}", int(n)))

    churned = int(recency["is_churned"].sum())
    rows += [
        ("payment_rows", len(payments)),
        ("payment_rows_excluded", int(payments.attrs.get("excluded_payment_rows", 0))),
        ("customers", len(customer_base)),
        ("invalid_first_after_last", int((customer_base["first_order_ts"] > customer_base["last_order_ts"]).sum())),
        ("analysis_date", analysis_date),
        ("earliest_first_order", customer_base["first_order_ts"].min()),
        ("latest_last_order", customer_base["last_order_ts"].max()),
        ("churned_customers", churned),
        ("churn_rate_%", round(churned / max(len(recency), 1) * 100, 2)),
    ]
    for reason, n in zip(exclusions["reason"], exclusions["orders"]):
        rows.append((f"rollup_excluded_{reason}", int(n)))
    if customers is not None:
        inactive = ~customers["customer_id"].isin(customer_base["customer_id"])
        rows.append(("customers_without_completed_orders", int(inactive.sum())))

    return pd.DataFrame(rows, columns=["metric", "value"])


# ---------------------------------------------------------------------------
# Plots
# ---------------------------------------------------------------------------

def plot_segment_counts(summary: pd.DataFrame, config: ProjectConfig) -> None:
    fig, ax = plt.subplots(figsize=(8, 4))
    ax.bar(summary["rf_segment"], summary["customers"])
    plt.setp(ax.get_xticklabels(), rotation=45, ha="right")
    ax.set_xlabel("Segment")
    ax.set_ylabel("Customers")
    ax.set_title("Customers by RF Segment")
    finish_fig(fig, "segment_counts.png", out_dir=config.out_dir, show=config.show_plots, save=config.save_plots)


def plot_monthly_revenue(rollup: pd.DataFrame, config: ProjectConfig) -> None:
    """Stacked monthly revenue per segment."""
    if rollup.empty:
        logger.info("No monthly revenue to plot")
        return
    period = rollup["order_year"].astype(str) + "-" + rollup["order_month"].astype(str).str.zfill(2)
    pivot = (
        rollup.assign(period=period)
        .pivot_table(index="period", columns="rf_segment", values="total_revenue", aggfunc="sum", fill_value=0.0)
        .sort_index()
    )
    fig, ax = plt.subplots(figsize=(10, 4))
    pivot.plot(kind="bar", stacked=True, ax=ax, width=0.8)
    ax.set_xlabel("Month")
    ax.set_ylabel("Revenue")
    ax.set_title("Monthly Revenue by RF Segment")
    ax.legend(title="Segment", fontsize=8)
    fig.autofmt_xdate()
    finish_fig(fig, "monthly_revenue_by_segment.png", out_dir=config.out_dir, show=config.show_plots, save=config.save_plots)


# ---------------------------------------------------------------------------
# Main entrypoint
# ---------------------------------------------------------------------------

def run_all(config: ProjectConfig) -> Dict[str, pd.DataFrame]:
    """
    Run the full pipeline with the given configuration.

    Tables are only written once every stage and plot has succeeded, each
    table replacing its previous CSV. Plots are rendered first, so a plot
    failure leaves the previous tables in place. Returns the tables keyed by
    output name.
    """
    config.out_dir.mkdir(parents=True, exist_ok=True)

    # 1) Load & type inputs
    orders = load_orders(config)
    payments = load_payments(config)
    customers = load_customers(config)

    # 2) Customer aggregation
    customer_base = aggregate_customers(orders, config.completed_status)

    # 3) Recency & churn
    analysis_date = compute_analysis_date(customer_base)
    logger.info("Analysis date: %s", analysis_date)
    recency = compute_recency(customer_base, analysis_date, config.churn_threshold_days)

    # 4) Segmentation
    segments = assign_segments(recency)

    # 5) Revenue
    order_revenue = build_order_revenue(payments)
    rollup, exclusions = build_monthly_segment_revenue(orders, order_revenue, segments)
    activity = build_segment_activity(orders, segments)

    # 6) Summaries
    summary = build_segment_summary(segments)
    tables = {
        "orders_clean": orders,
        "customer_orders_base": customer_base,
        "customer_recency_base": recency,
        "customer_segments": segments,
        "order_revenue": order_revenue,
        "monthly_segment_revenue": rollup,
        "rollup_exclusions": exclusions,
        "segment_activity": activity,
        "date_dimension": build_date_dimension(orders),
        "order_frequency": build_order_frequency(customer_base),
        "segment_summary": summary,
        "data_quality": build_data_quality(
            orders, payments, customer_base, recency, exclusions, analysis_date, customers
        ),
    }

    plot_segment_counts(summary, config)
    plot_monthly_revenue(rollup, config)

    for name, df in tables.items():
        write_table(df, config.out_dir / f"{name}.csv")

    logger.info(
        "Pipeline completed: %d customers, %d churned. Outputs written to: %s",
        len(segments),
        int(segments["is_churned"].sum()),
        config.out_dir,
    )
    return tables


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="revgrowth",
        description="Build customer recency, churn, segment and revenue tables from Olist CSVs.",
    )
    parser.add_argument("--data-dir", type=Path, default=ProjectConfig.data_dir)
    parser.add_argument("--out-dir", type=Path, default=ProjectConfig.out_dir)
    parser.add_argument("--churn-days", type=int, default=CHURN_THRESHOLD_DAYS,
                        help="recency above this many days counts as churned (default: %(default)s)")
    parser.add_argument("--show-plots", action="store_true")
    parser.add_argument("--no-save-plots", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    cfg = ProjectConfig(
        data_dir=args.data_dir,
        out_dir=args.out_dir,
        churn_threshold_days=args.churn_days,
        show_plots=args.show_plots,
        save_plots=not args.no_save_plots,
    )
    try:
        run_all(cfg)
    except EmptyCustomerBaseError as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
