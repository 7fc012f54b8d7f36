"""Data loader adapter for per-security daily CSV files."""

from pathlib import Path
from typing import Dict, List, Optional, Sequence
import logging

import numpy as np
import pandas as pd
from tqdm import tqdm

from engine.models import SecuritySeries

logger = logging.getLogger(__name__)

DEFAULT_COLUMNS = {
    'date': '交易日期',
    'close': '收盘价_复权',
    'high': '最高价_复权',
    'low': '最低价_复权',
}


def to_ymd(values: pd.Series) -> np.ndarray:
    """Parse 20070104 / 2007-01-04 / 2007/01/04 (optionally followed by a time) to int YYYYMMDD.

    Unparseable entries become -1 so they sort first and never fall in a window.
    """
    digits = values.astype(str).str.strip().str.extract(r'^(\d{4})[-/]?(\d{2})[-/]?(\d{2})')
    ymd = pd.to_numeric(digits[0] + digits[1] + digits[2], errors='coerce')
    return ymd.fillna(-1).astype(np.int64).to_numpy()


class CSVDataLoader:
    """Loads one security per CSV file into a SecuritySeries.

    Args:
        columns: Canonical field -> CSV header. date and close are required;
            every mapped header must be present in the file.
        encoding: Codec used to decode the file (e.g. 'gbk', 'utf-8')
        name_column: Optional header holding the security's display name
    """

    def __init__(
        self,
        columns: Optional[Dict[str, str]] = None,
        encoding: str = 'gbk',
        name_column: Optional[str] = None,
    ):
        self.columns = dict(columns or DEFAULT_COLUMNS)
        self.encoding = encoding
        self.name_column = name_column

    def load(self, file_path: Path, **kwargs) -> pd.DataFrame:
        """
        Read a CSV and return canonical columns (date, close, ...).

        Raises:
            ValueError: If a mapped column is missing from the file
        """
        file_path = Path(file_path)
        df = pd.read_csv(file_path, encoding=self.encoding, skipinitialspace=True, **kwargs)
        df.columns = [str(c).strip() for c in df.columns]

        for field, header in self.columns.items():
            if header not in df.columns:
                raise ValueError(
                    f"{file_path.name} is missing required column '{header}' ({field}); "
                    f"encoding={self.encoding}, available columns: {df.columns.tolist()}"
                )

        out = pd.DataFrame({'date': to_ymd(df[self.columns['date']])})
        for field, header in self.columns.items():
            if field == 'date':
                continue
            out[field] = pd.to_numeric(df[header], errors='coerce').to_numpy(dtype=float)
        if self.name_column and self.name_column in df.columns:
            out['name'] = df[self.name_column].astype(str).to_numpy()

        bad_dates = int((out['date'] < 0).sum())
        if bad_dates:
            logger.warning(f"{file_path.name}: {bad_dates} rows with unparseable dates")
        logger.debug(f"Loaded {file_path.name}: {len(out)} rows")
        return out

    def load_series(self, file_path: Path, security_id: Optional[str] = None) -> SecuritySeries:
        """Load a CSV file as a SecuritySeries keyed by its file name."""
        file_path = Path(file_path)
        df = self.load(file_path)
        name = None
        if 'name' in df.columns and len(df):
            name = str(df['name'].iloc[-1])
        return SecuritySeries(
            security_id=security_id or file_path.name,
            dates=df['date'].to_numpy(),
            close=df['close'].to_numpy(),
            open=df['open'].to_numpy() if 'open' in df.columns else None,
            high=df['high'].to_numpy() if 'high' in df.columns else None,
            low=df['low'].to_numpy() if 'low' in df.columns else None,
            volume=df['volume'].to_numpy() if 'volume' in df.columns else None,
            name=name,
        )


def list_universe_files(
    data_dir: Path,
    files: Optional[Sequence[str]] = None,
    limit: Optional[int] = None,
) -> List[Path]:
    """
    CSV files of the data directory in a fixed (sorted) order.

    Args:
        data_dir: Directory holding one CSV per security
        files: Optional whitelist of file names
        limit: Optional cap on the number of files

    Raises:
        FileNotFoundError: If data_dir does not exist
    """
    data_dir = Path(data_dir)
    if not data_dir.is_dir():
        raise FileNotFoundError(f"Data directory not found: {data_dir}")
    paths = sorted(p for p in data_dir.iterdir() if p.suffix.lower() == '.csv')
    if files:
        wanted = set(files)
        paths = [p for p in paths if p.name in wanted]
    if limit:
        paths = paths[:limit]
    return paths


def load_universe(
    data_dir: Path,
    loader: Optional[CSVDataLoader] = None,
    files: Optional[Sequence[str]] = None,
    limit: Optional[int] = None,
    show_progress: bool = False,
) -> Dict[str, SecuritySeries]:
    """Load every CSV of the universe; empty files are skipped."""
    loader = loader or CSVDataLoader()
    universe: Dict[str, SecuritySeries] = {}
    paths = list_universe_files(data_dir, files=files, limit=limit)
    iterator = tqdm(paths, desc="Loading CSV", unit="file") if show_progress else paths
    for path in iterator:
        series = loader.load_series(path)
        if len(series) == 0:
            logger.warning(f"{path.name}: no rows, skipping")
            continue
        universe[series.security_id] = series
    logger.info(f"Loaded {len(universe)} securities from {data_dir}")
    return universe
