"""
General utility functions shared by the tidiers.

These helpers turn matrices with named rows into tidy tables, attach
per-observation diagnostics to a data frame, and finish one-row summaries.
"""

import math
import logging
import numpy as np
import pandas as pd
from typing import Any, Dict, Iterable, List, Optional, Sequence

from modeltidy.errors import InvalidArgument

logger = logging.getLogger(__name__)


def finite_or_nan(value: Any) -> float:
    """
    Coerce a scalar to float, mapping None and non-finite values to NaN.

    Args:
        value: Scalar to convert

    Returns:
        Float value or NaN
    """
    if value is None:
        return np.nan
    try:
        value = float(value)
    except (TypeError, ValueError):
        return np.nan
    return value if math.isfinite(value) else np.nan


def fix_data_frame(matrix: Any,
                   newnames: Optional[Sequence[str]] = None,
                   newcol: str = 'term') -> pd.DataFrame:
    """
    Give a matrix with named rows a tidy orientation.

    The row names become a leading ``newcol`` column, the value columns are
    renamed to ``newnames`` and the result gets a fresh ``RangeIndex``.

    Args:
        matrix: DataFrame, Series or 2-d array; row names are taken from its index
        newnames: New names for the value columns, in order
        newcol: Name of the column holding the former row names

    Returns:
        Tidy DataFrame
    """
    if isinstance(matrix, pd.Series):
        frame = matrix.to_frame()
    elif isinstance(matrix, pd.DataFrame):
        frame = matrix.copy()
    else:
        frame = pd.DataFrame(np.asarray(matrix))

    if newnames is not None:
        if len(newnames) != frame.shape[1]:
            raise InvalidArgument(
                f"Expected {frame.shape[1]} column names, got {len(newnames)}"
            )
        frame.columns = list(newnames)

    names = [str(name) for name in frame.index]
    frame = frame.reset_index(drop=True)
    frame.insert(0, newcol, names)
    return frame


def augment_columns(base: Optional[pd.DataFrame],
                    columns: Dict[str, Any],
                    index: Optional[pd.Index] = None) -> pd.DataFrame:
    """
    Append diagnostic columns to a base table.

    Diagnostics are aligned to ``base`` by row label when every label in
    ``index`` is present in the base table (rows the model dropped get NaN);
    otherwise they are attached positionally, which requires equal length.

    Args:
        base: Original or new data; None to return the diagnostics alone
        columns: Ordered mapping of column name to per-observation values
        index: Row labels of the diagnostics

    Returns:
        Augmented DataFrame
    """
    n = len(next(iter(columns.values()))) if columns else 0
    if index is None:
        index = base.index if base is not None and len(base) == n else pd.RangeIndex(n)

    diagnostics = pd.DataFrame(
        {name: np.asarray(values, dtype=float) for name, values in columns.items()},
        index=index
    )

    if base is None:
        return diagnostics

    ret = base.copy()
    aligned = ret.index.is_unique and diagnostics.index.is_unique
    if aligned and diagnostics.index.isin(ret.index).all():
        diagnostics = diagnostics.reindex(ret.index)
    elif len(diagnostics) == len(ret):
        diagnostics.index = ret.index
    else:
        raise InvalidArgument(
            f"Data has {len(ret)} rows but the model produced {len(diagnostics)} observations"
        )

    for name in diagnostics.columns:
        ret[name] = diagnostics[name].values
    return ret


def finish_glance(ret: Dict[str, Any], fit: Any) -> pd.DataFrame:
    """
    Finish a one-row summary with the auxiliary fit statistics.

    Adds ``logLik``, ``AIC``, ``BIC``, ``deviance`` and ``df.residual`` for
    every statistic the model adapter reports (None means unavailable).

    Args:
        ret: Ordered mapping of the model-specific summary statistics
        fit: Model adapter exposing ``fit_statistics()``

    Returns:
        One-row DataFrame
    """
    row = dict(ret)
    for name, value in fit.fit_statistics().items():
        if value is None:
            continue
        row[name] = value
    return pd.DataFrame([row])


def bind_rows(frames: Iterable[pd.DataFrame],
              column_order: Sequence[str],
              id_column: Optional[str] = None,
              ids: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """
    Concatenate tables with possibly different columns.

    Missing columns are filled with NaN, an optional identifier column is
    prepended, and the union of columns is put in ``column_order`` (columns
    not listed there keep their first-seen position at the end).

    Args:
        frames: Tables to stack, in output order
        column_order: Canonical order of known columns
        id_column: Name of the identifier column to prepend
        ids: One identifier per frame

    Returns:
        Stacked DataFrame with a fresh RangeIndex
    """
    frames = list(frames)
    if ids is not None:
        frames = [frame.assign(**{id_column: ident}) for frame, ident in zip(frames, ids)]

    if not frames:
        return pd.DataFrame(columns=[id_column] if id_column else [])

    seen: List[str] = []
    for frame in frames:
        for name in frame.columns:
            if name not in seen:
                seen.append(name)

    ordered = [name for name in ([id_column] if id_column else []) + list(column_order) if name in seen]
    ordered += [name for name in seen if name not in ordered]

    ret = pd.concat(frames, ignore_index=True, sort=False)
    return ret[ordered]
