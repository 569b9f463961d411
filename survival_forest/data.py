"""Survival Data Access

This module holds the tabular side of survival tree growing: covariates,
survival times and event indicators, addressed by row index. Trees never
touch the underlying DataFrame directly; they go through the accessors
below so that a node only ever sees its own rows.

Key Components:
- SurvivalData: row/column access, distinct split values, event-time grid
- load_survival_data: read a delimited text file into SurvivalData
"""

import logging

import numpy as np
import pandas as pd

from survival_forest.global_names import BINARY_SPLIT_VALUES, STATUS, TIME

logger = logging.getLogger(__name__)


class SurvivalData:
    """Covariates plus right-censored outcome for a set of samples.

    Args:
        X (pd.DataFrame or array-like): Covariate matrix, one row per sample
        time (array-like): Observed survival or censoring time per sample
        status (array-like): Event indicator per sample (1 = event, 0 = censored)
        binary_features (iterable): Names or indices of binary-coded variables.
            These are only ever split at 0 and 1, whatever values the node holds.

    Attributes:
        X (pd.DataFrame): Covariates
        covariates (np.ndarray): Covariates as a float matrix
        time (np.ndarray): Survival times
        status (np.ndarray): Event indicators as integers
        feature_names (list): Column names of X
    """

    def __init__(self, X, time, status, binary_features=()):
        if not isinstance(X, pd.DataFrame):
            X = pd.DataFrame(np.asarray(X, dtype=np.float64))
        self.X = X.reset_index(drop=True)
        self.feature_names = list(self.X.columns)

        try:
            self.covariates = self.X.to_numpy(dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise ValueError(f"All covariates must be numeric: {e}") from e

        self.time = np.asarray(time, dtype=np.float64)
        status = np.asarray(status)
        if self.time.shape != (self.n_samples,) or status.shape != (self.n_samples,):
            raise ValueError(
                f"time and status must have one entry per row; got {self.time.shape}, "
                f"{status.shape} for {self.n_samples} rows")
        if not np.isin(status, (0, 1)).all():
            raise ValueError("status must only contain 0 (censored) and 1 (event)")
        self.status = status.astype(np.int64)

        self.binary_features = {self._variable_index(f) for f in binary_features}

    @classmethod
    def from_frame(cls, df, time_column=TIME, status_column=STATUS, binary_features=()):
        """Split a DataFrame holding covariates and outcome columns."""
        for column in (time_column, status_column):
            if column not in df.columns:
                raise ValueError(f"Variable {column} not found.")
        X = df.drop(columns=[time_column, status_column])
        return cls(X, df[time_column].to_numpy(), df[status_column].to_numpy(),
                   binary_features=binary_features)

    @property
    def n_samples(self):
        return self.covariates.shape[0]

    @property
    def n_features(self):
        return self.covariates.shape[1]

    def _variable_index(self, variable):
        if isinstance(variable, (int, np.integer)):
            if not 0 <= variable < self.n_features:
                raise ValueError(f"Variable index {variable} out of range.")
            return int(variable)
        try:
            return self.feature_names.index(variable)
        except ValueError:
            raise ValueError(f"Variable {variable} not found.") from None

    # Per-row access

    def survival_time(self, row):
        return float(self.time[row])

    def event(self, row):
        return int(self.status[row])

    def value(self, row, variable):
        return float(self.covariates[row, variable])

    # Vectorised access for a set of rows

    def survival_times(self, rows):
        return self.time[rows]

    def statuses(self, rows):
        return self.status[rows]

    def values(self, rows, variable):
        return self.covariates[rows, variable]

    def distinct_values(self, rows, variable):
        """Candidate split values of one variable within a set of rows.

        Returns the ascending unique values without the largest one, since
        splitting there would send every row to the left child. Binary-coded
        variables always yield (0, 1).

        Args:
            rows (array-like): Row indices of the node
            variable (int): Variable index

        Returns:
            np.ndarray: Candidate thresholds, possibly empty
        """
        if variable in self.binary_features:
            return np.array(BINARY_SPLIT_VALUES)
        return np.unique(self.covariates[rows, variable])[:-1]

    def unique_event_times(self, rows=None):
        """Sorted unique times at which at least one event was observed."""
        if rows is None:
            rows = slice(None)
        time, status = self.time[rows], self.status[rows]
        return np.unique(time[status == 1])

    def subset(self, rows):
        """New SurvivalData restricted to the given rows (re-indexed from 0)."""
        rows = np.asarray(rows)
        return SurvivalData(self.X.iloc[rows], self.time[rows], self.status[rows],
                            binary_features=sorted(self.binary_features))


def load_survival_data(path, time_column=TIME, status_column=STATUS, binary_features=()):
    """Load a delimited text file into SurvivalData.

    The first line is a header. The separator is detected from it: comma,
    then semicolon, otherwise any whitespace.

    Args:
        path (str or Path): Input file
        time_column (str): Name of the survival time column
        status_column (str): Name of the event indicator column
        binary_features (iterable): Binary-coded variable names

    Returns:
        SurvivalData: Loaded data

    Raises:
        ValueError: If a cell is not numeric or a row has the wrong number of fields
    """
    with open(path, 'r', encoding='utf-8') as f:
        header = f.readline()

    if ',' in header:
        sep = ','
    elif ';' in header:
        sep = ';'
    else:
        sep = r'\s+'

    try:
        df = pd.read_csv(path, sep=sep, engine='python')
    except pd.errors.ParserError as e:
        raise ValueError(f"Could not read {path}: {e}") from e

    non_numeric = [c for c in df.columns if not pd.api.types.is_numeric_dtype(df[c])]
    if non_numeric:
        raise ValueError(f"Could not read {path}. Non-numeric columns: {non_numeric}")
    if df.isna().to_numpy().any():
        raise ValueError(f"Could not read {path}. Too few columns in a row or missing values.")

    logger.info("Loaded %d rows and %d columns from %s", df.shape[0], df.shape[1], path)
    return SurvivalData.from_frame(df, time_column, status_column, binary_features)
