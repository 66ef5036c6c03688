"""
Top-level package for the revenue growth analytics project.
"""

__all__ = [
    "ProjectConfig",
    "EmptyCustomerBaseError",
    "run_all",
    "clean_orders",
    "clean_payments",
    "clean_customers",
    "aggregate_customers",
    "compute_analysis_date",
    "compute_recency",
    "assign_segments",
    "build_order_revenue",
    "build_monthly_segment_revenue",
    "build_segment_activity",
]

from .pipeline import (  # convenience re-export
    EmptyCustomerBaseError,
    ProjectConfig,
    aggregate_customers,
    assign_segments,
    build_monthly_segment_revenue,
    build_order_revenue,
    build_segment_activity,
    clean_customers,
    clean_orders,
    clean_payments,
    compute_analysis_date,
    compute_recency,
    run_all,
)
