import logging

import numpy as np
import pandas as pd

from rentpanel.exceptions import DataIntegrityError, DuplicateKeyError, MissingColumnError

logger = logging.getLogger(__name__)


def _encode_time(df: pd.DataFrame, time_col: str):
    """
    Replaces a text or categorical time column with ordered integer codes.

    The panel estimators only accept a numeric or date-like time level.
    Returns the frame and the labels (None when no encoding was needed),
    where label ``i`` belongs to code ``i``.
    """
    time = df[time_col]
    if pd.api.types.is_numeric_dtype(time) or pd.api.types.is_datetime64_any_dtype(time):
        return df, None
    if isinstance(time.dtype, pd.CategoricalDtype):
        labels = pd.Index(time.cat.categories)
        codes = time.cat.codes.to_numpy()
    else:
        labels = pd.Index(time.unique()).sort_values()
        codes = labels.get_indexer(time)
    logger.debug("Encoded %d time labels of %s as integer codes", len(labels), time_col)
    return df.assign(**{time_col: codes}), labels


class PanelDataset:
    """
    Observation rows indexed by (entity, time).

    The wrapped frame carries a sorted two-level MultiIndex. Instances are
    treated as values: every transformation returns a new PanelDataset and
    ``df`` hands out a copy.
    """
    def __init__(self, df: pd.DataFrame, entity_col: str, time_col: str):
        """
        Validates the index columns and the uniqueness of every (entity, time) key,
        then sets the MultiIndex.
        """
        missing = [c for c in (entity_col, time_col) if c not in df.columns]
        if missing:
            raise MissingColumnError(missing)

        duplicated = df.duplicated([entity_col, time_col], keep=False)
        if duplicated.any():
            keys = (
                df.loc[duplicated, [entity_col, time_col]]
                .drop_duplicates()
                .itertuples(index=False, name=None)
            )
            raise DuplicateKeyError(keys)

        self.entity_col = entity_col
        self.time_col = time_col
        df, self.time_labels = _encode_time(df, time_col)
        self._df = df.set_index([entity_col, time_col]).sort_index()
        logger.debug(
            "Indexed panel with %d rows, %d entities, %d periods",
            self.nobs, self.n_entities, self.n_periods,
        )

    @classmethod
    def from_indexed(cls, df: pd.DataFrame):
        """
        Builds a dataset from a frame that already has an (entity, time) MultiIndex.
        """
        if df.index.nlevels != 2:
            raise DataIntegrityError("Expected a two-level (entity, time) index.")
        entity_col, time_col = df.index.names
        entity_col = entity_col or "entity"
        time_col = time_col or "time"
        flat = df.copy()
        flat.index = flat.index.set_names([entity_col, time_col])
        return cls(flat.reset_index(), entity_col, time_col)

    def _replace(self, df: pd.DataFrame):
        new = object.__new__(PanelDataset)
        new.entity_col = self.entity_col
        new.time_col = self.time_col
        new.time_labels = self.time_labels
        new._df = df
        return new

    @property
    def df(self) -> pd.DataFrame:
        return self._df.copy()

    @property
    def index(self) -> pd.MultiIndex:
        return self._df.index

    @property
    def columns(self) -> list:
        return self._df.columns.tolist()

    @property
    def nobs(self) -> int:
        return len(self._df)

    @property
    def entities(self) -> pd.Index:
        return self._df.index.get_level_values(0).unique()

    @property
    def periods(self) -> pd.Index:
        return self._df.index.get_level_values(1).unique().sort_values()

    @property
    def n_entities(self) -> int:
        return len(self.entities)

    @property
    def n_periods(self) -> int:
        return len(self.periods)

    @property
    def period_counts(self) -> pd.Series:
        """Number of observed periods T_i for each entity."""
        return self._df.groupby(level=0).size()

    @property
    def is_balanced(self) -> bool:
        return bool((self.period_counts == self.n_periods).all())

    def __len__(self):
        return self.nobs

    def __repr__(self):
        kind = "balanced" if self.is_balanced else "unbalanced"
        return (
            f"PanelDataset({self.entity_col!r} x {self.time_col!r}, {kind}, "
            f"nobs={self.nobs}, entities={self.n_entities}, periods={self.n_periods})"
        )

    def require(self, columns):
        missing = [c for c in columns if c not in self._df.columns]
        if missing:
            raise MissingColumnError(missing)

    def select(self, columns):
        """
        Restricts the dataset to ``columns`` while keeping the (entity, time) index.
        """
        columns = list(columns)
        self.require(columns)
        return self._replace(self._df[columns].copy())

    def dropna(self, columns=None):
        columns = self.columns if columns is None else list(columns)
        self.require(columns)
        kept = self._df.dropna(subset=columns)
        dropped = len(self._df) - len(kept)
        if dropped:
            logger.warning("Dropped %d rows with missing values in %s", dropped, columns)
        return self._replace(kept.copy())

    def subsample(self, column: str, value):
        """
        Keeps the rows where ``column`` equals ``value``. The column may be a
        regular column or one of the index levels.
        """
        if column == self.time_col and self.time_labels is not None and value in self.time_labels:
            value = self.time_labels.get_loc(value)
        if column in self._df.index.names:
            mask = self._df.index.get_level_values(column) == value
        elif column in self._df.columns:
            mask = (self._df[column] == value).to_numpy()
        else:
            raise MissingColumnError([column])
        sub = self._df.loc[mask].copy()
        if sub.empty:
            raise DataIntegrityError(f"No observations with {column} == {value!r}.")
        return self._replace(sub)

    def log_transform(self, cols: list, prefix: str = "log_"):
        """
        Adds ln(x) companions of the given columns, named ``prefix + column``.
        """
        self.require(cols)
        df = self._df.copy()
        for col in cols:
            values = df[col]
            if (values.dropna() <= 0).any():
                raise DataIntegrityError(
                    f"Column {col} has non-positive values and cannot be log transformed."
                )
            df[f"{prefix}{col}"] = np.log(values)
        return self._replace(df)

    def entity_means(self, columns) -> pd.DataFrame:
        columns = list(columns)
        self.require(columns)
        return self._df[columns].groupby(level=0).mean()

    def within_transform(self, columns) -> pd.DataFrame:
        """
        Demeans each column within its entity: z_it - mean_t(z_it).
        """
        columns = list(columns)
        self.require(columns)
        data = self._df[columns]
        return data - data.groupby(level=0).transform("mean")
