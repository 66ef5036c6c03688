# ==== utils.py ====
from __future__ import annotations
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

import pandas as pd
import matplotlib.pyplot as plt

logger = logging.getLogger(__name__)


# -----------------------------
# Schema checks
# -----------------------------
def require_columns(df: pd.DataFrame, columns: Iterable[str], table: str) -> None:
    """Raise ValueError naming every required column missing from `df`."""
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValueError(f"{table}: missing required column(s): {', '.join(missing)}")


def empty_frame(columns: Mapping[str, str]) -> pd.DataFrame:
    """Empty DataFrame with the given {column: dtype} schema."""
    return pd.DataFrame({c: pd.Series(dtype=t) for c, t in columns.items()})


# -----------------------------
# DataFrame cleaning helpers
# -----------------------------
def standardize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """
    Return a copy with standardized snake_case column names:
    - strip, lower
    - non-word -> underscore
    - trim leading/trailing underscores
    """
    def _clean(c: str) -> str:
        c = str(c).strip().lower()
        c = re.sub(r"[^\w]+", "_", c)
        c = re.sub(r"(^_+|_+$)", "", c)
        return c
    out = df.copy()
    out.columns = [_clean(c) for c in out.columns]
    return out


def trim_strings(df: pd.DataFrame) -> pd.DataFrame:
    """
    Trim whitespace in object columns and coerce common empties to NaN.
    Converts '', 'nan', 'none', 'null' (any case) to NaN.
    """
    out = df.copy()
    obj_cols = out.select_dtypes(include=["object", "string"]).columns
    if len(obj_cols) == 0:
        return out
    empties = re.compile(r"^(?:nan|none|null)?$", flags=re.IGNORECASE)
    for c in obj_cols:
        isna = out[c].isna()
        s = out[c].astype(object).where(isna, out[c].astype(str).str.strip())
        blank = s.map(lambda x: isinstance(x, str) and bool(empties.match(x)))
        out[c] = s.mask(isna | blank).astype(object)
    return out


def coerce_datetimes(df: pd.DataFrame, columns: Mapping[str, str]) -> Dict[str, int]:
    """
    Inplace: parse each source column into `columns[source]` as naive UTC datetimes.

    Values that are present but cannot be parsed become NaT. Source columns
    that do not exist produce an all-NaT target column. Returns the number of
    unparsable values per target column.
    """
    failures: Dict[str, int] = {}
    for src, dst in columns.items():
        if src not in df.columns:
            df[dst] = pd.Series(pd.NaT, index=df.index, dtype="datetime64[ns]")
            failures[dst] = 0
            continue
        raw = df[src]
        s = pd.to_datetime(raw, errors="coerce", utc=True, format="ISO8601")
        # Offset-bearing values are shifted to UTC before the tz is dropped, which
        # can move them to another calendar day. Naive values are taken as UTC.
        df[dst] = s.dt.tz_convert("UTC").dt.tz_localize(None).astype("datetime64[ns]")
        failures[dst] = int((raw.notna() & df[dst].isna()).sum())
        if failures[dst]:
            logger.warning("%d unparsable value(s) in %s set to null", failures[dst], src)
    return failures


def numericize(df: pd.DataFrame, cols: Iterable[str]) -> None:
    """Inplace: coerce listed columns to numeric with NaN on errors."""
    for c in cols:
        if c and c in df.columns:
            df[c] = pd.to_numeric(df[c], errors="coerce")


# -----------------------------
# Output helpers
# -----------------------------
def write_table(df: pd.DataFrame, path: Path) -> Path:
    """
    Write `df` as CSV, replacing any previous file in one step.

    The frame is written to a temporary file in the same directory and then
    moved over the target, so readers never see a partial table.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.stem}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", newline="", encoding="utf-8") as fh:
            df.to_csv(fh, index=False, date_format="%Y-%m-%d %H:%M:%S")
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
    logger.debug("wrote %s (%d rows)", path, len(df))
    return path


def finish_fig(
    fig: plt.Figure,
    filename: Optional[str] = None,
    *,
    out_dir: Optional[str | Path] = None,
    show: bool = False,
    save: bool = True,
    dpi: int = 150
) -> Optional[Path]:
    """
    Save &/or show a Matplotlib figure, then close it.
    Returns the saved path, or None when nothing was written.
    """
    path = None
    if save and filename:
        path = Path(out_dir if out_dir is not None else ".") / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(path, bbox_inches="tight", dpi=dpi)

    if show:
        plt.show()

    plt.close(fig)
    return path

