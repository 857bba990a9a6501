"""
Historical Data Loader
======================
Reads an ordered OHLCV bar series from a CSV file, a DataFrame, or an
iterable of bars, and validates it before it reaches the engine.

CSV format (header row, column names case-insensitive):
    Date,Open,High,Low,Close,Volume

Rejected with DataLoadError:
- missing or empty source
- non-numeric or non-finite OHLCV values, non-positive closes
- unparseable, duplicate, or out-of-order timestamps
"""

import logging
import math
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Union

import numpy as np
import pandas as pd

from .core.exceptions import DataLoadError
from .core.types import PriceBar

logger = logging.getLogger(__name__)

OHLCV_COLUMNS = ['open', 'high', 'low', 'close', 'volume']
DATE_COLUMN_CANDIDATES = ['date', 'datetime', 'timestamp', 'time']

BarSource = Union[str, Path, pd.DataFrame, Iterable[Any]]


def resolve_path(source: Union[str, Path], data_dir: Optional[Union[str, Path]] = None) -> Path:
    """Resolve a CSV name, falling back to `data_dir` for relative names."""
    path = Path(source)
    if path.exists() or path.is_absolute() or data_dir is None:
        return path
    return Path(data_dir) / path


def load_bars(
    source: BarSource,
    data_dir: Optional[Union[str, Path]] = None,
    date_column: str = "Date",
) -> List[PriceBar]:
    """
    Load and validate a bar series.

    Args:
        source: CSV path, DataFrame, or iterable of PriceBar / dicts
        data_dir: Base directory for relative CSV names
        date_column: Preferred name of the timestamp column

    Returns:
        Bars in timestamp order

    Raises:
        DataLoadError: if the source is missing, empty, or malformed
    """
    if isinstance(source, (str, Path)):
        bars = _load_csv(resolve_path(source, data_dir), date_column)
    elif isinstance(source, pd.DataFrame):
        bars = frame_to_bars(source, date_column)
    elif isinstance(source, Iterable):
        bars = _coerce_bars(source)
    else:
        raise DataLoadError(f"Unsupported data source: {type(source).__name__}")

    logger.info(f"Loaded {len(bars)} bars")
    return bars


def _load_csv(path: Path, date_column: str) -> List[PriceBar]:
    if not path.is_file():
        raise DataLoadError(f"Data file not found: {path}")

    try:
        df = pd.read_csv(path)
    except pd.errors.EmptyDataError:
        raise DataLoadError(f"Data file is empty: {path}")
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise DataLoadError(f"Malformed data file {path}: {e}")

    logger.debug(f"Read {len(df)} rows from {path}")
    return frame_to_bars(df, date_column)


def frame_to_bars(df: pd.DataFrame, date_column: str = "Date") -> List[PriceBar]:
    """Validate an OHLCV DataFrame and convert it to bars."""
    if df.empty:
        raise DataLoadError("No bars in data source")

    columns = {str(c).strip().lower(): c for c in df.columns}

    missing = [c for c in OHLCV_COLUMNS if c not in columns]
    if missing:
        raise DataLoadError(f"Missing columns: {', '.join(missing)}")

    date_key = date_column.lower()
    if date_key not in columns:
        date_key = next((c for c in DATE_COLUMN_CANDIDATES if c in columns), None)
    if date_key is None:
        raise DataLoadError("Missing timestamp column")

    values = {}
    for name in OHLCV_COLUMNS:
        numeric = pd.to_numeric(df[columns[name]], errors='coerce').astype(float)
        bad = ~np.isfinite(numeric.to_numpy())
        if bad.any():
            row = int(np.argmax(bad))
            raise DataLoadError(
                f"Non-numeric {name} value at row {row + 1}: {df[columns[name]].iloc[row]!r}"
            )
        values[name] = numeric.to_numpy()

    if (values['close'] <= 0).any():
        row = int(np.argmax(values['close'] <= 0))
        raise DataLoadError(f"Non-positive close at row {row + 1}")

    timestamps = _parse_timestamps(df[columns[date_key]])
    _check_monotonic(timestamps)

    return [
        PriceBar(
            timestamp=timestamps[i],
            open=float(values['open'][i]),
            high=float(values['high'][i]),
            low=float(values['low'][i]),
            close=float(values['close'][i]),
            volume=float(values['volume'][i]),
        )
        for i in range(len(df))
    ]


def _parse_timestamps(column: pd.Series) -> list:
    if pd.api.types.is_numeric_dtype(column):
        # Epoch seconds or milliseconds
        unit = 'ms' if column.abs().max() >= 1e11 else 's'
        parsed = pd.to_datetime(column, unit=unit, errors='coerce')
    else:
        parsed = pd.to_datetime(column, errors='coerce')

    if parsed.isna().any():
        row = int(parsed.isna().to_numpy().argmax())
        raise DataLoadError(f"Unparseable timestamp at row {row + 1}: {column.iloc[row]!r}")

    return list(parsed.dt.to_pydatetime())


def _check_monotonic(timestamps: list):
    for i in range(1, len(timestamps)):
        try:
            ordered = timestamps[i] > timestamps[i - 1]
        except TypeError as e:
            raise DataLoadError(f"Incomparable timestamp at row {i + 1}: {e}")
        if not ordered:
            kind = "Duplicate" if timestamps[i] == timestamps[i - 1] else "Out-of-order"
            raise DataLoadError(f"{kind} timestamp at row {i + 1}: {timestamps[i]}")


def _coerce_bars(items: Iterable[Any]) -> List[PriceBar]:
    bars = []
    for i, item in enumerate(items):
        if isinstance(item, PriceBar):
            bar = item
        elif isinstance(item, Mapping):
            try:
                bar = PriceBar.from_dict(item)
            except ValueError as e:
                raise DataLoadError(f"Malformed bar at row {i + 1}: {e}")
        else:
            raise DataLoadError(f"Unsupported bar type at row {i + 1}: {type(item).__name__}")

        if bar.timestamp is None:
            raise DataLoadError(f"Missing timestamp at row {i + 1}")
        if not all(math.isfinite(v) for v in (bar.open, bar.high, bar.low, bar.close, bar.volume)):
            raise DataLoadError(f"Non-finite value at row {i + 1}")
        if bar.close <= 0:
            raise DataLoadError(f"Non-positive close at row {i + 1}")
        bars.append(bar)

    if not bars:
        raise DataLoadError("No bars in data source")

    _check_monotonic([bar.timestamp for bar in bars])
    return bars
