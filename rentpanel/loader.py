import logging

import pandas as pd

from rentpanel.exceptions import DataIntegrityError, MissingColumnError
from rentpanel.panel import PanelDataset

logger = logging.getLogger(__name__)


def read_table(path, sep: str = ",", columns=None) -> pd.DataFrame:
    """
    Reads a delimited text file with a header row into a DataFrame.
    """
    df = pd.read_csv(path, sep=sep)
    if columns is not None:
        missing = [c for c in columns if c not in df.columns]
        if missing:
            raise MissingColumnError(missing)
    logger.info("Read %d rows and %d columns from %s", len(df), df.shape[1], path)
    return df


def _coerce_time(values: pd.Series) -> pd.Series:
    # linearmodels needs a numeric or date-like time index
    if pd.api.types.is_numeric_dtype(values) or pd.api.types.is_datetime64_any_dtype(values):
        return values
    numeric = pd.to_numeric(values, errors="coerce")
    if numeric.notna().all():
        return numeric
    return values


def load_panel_csv(path, entity_col: str, time_col: str, columns=None,
                   log_columns=None, sep: str = ",") -> PanelDataset:
    """
    Loads a CSV file into a PanelDataset indexed by (entity_col, time_col).

    Parameters
    ----------
    path : str or path-like
        Location of the delimited file.
    entity_col, time_col : str
        Columns forming the panel index.
    columns : list, optional
        Columns that must be present besides the index columns. When given,
        only these are kept.
    log_columns : list, optional
        Columns that get a ``log_<name>`` companion.
    sep : str
        Field delimiter.
    """
    required = [entity_col, time_col] + list(columns or [])
    df = read_table(path, sep=sep, columns=required)
    if columns is not None:
        df = df[required].copy()

    if df[entity_col].isna().any() or df[time_col].isna().any():
        raise DataIntegrityError("Entity and time columns must not contain missing values.")

    df[time_col] = _coerce_time(df[time_col])
    panel = PanelDataset(df, entity_col, time_col)
    if log_columns:
        panel = panel.log_transform(list(log_columns))
    logger.info("Loaded %r", panel)
    return panel
