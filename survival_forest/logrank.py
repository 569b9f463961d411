"""Log-rank Split Criterion

Death and at-risk bookkeeping on a fixed event-time grid, and the log-rank
statistic used to score candidate splits of a survival tree node.

All counting is done on integer numpy arrays local to one call. Counts for
a node are a pair of length-T vectors; counts for the right children of
every candidate threshold of one variable are (n_splits, T) matrices indexed
by (split index, timepoint index).

Notation follows Ishwaran et al. (2008): d_t / Y_t are deaths and number at
risk in the parent, d_t1 / Y_t1 the same in the right child.
"""

from collections import namedtuple

import numpy as np

from survival_forest.global_names import LOGRANK_INVALID

RiskTable = namedtuple('RiskTable', ['deaths', 'at_risk', 'num_unique_death_times'])


def check_timepoints(timepoints):
    """Validate an event-time grid and return it as a float array.

    Raises:
        ValueError: If the grid is not one-dimensional, finite and strictly increasing
    """
    timepoints = np.asarray(timepoints, dtype=np.float64)
    if timepoints.ndim != 1:
        raise ValueError(f"Timepoints must be one-dimensional, got shape {timepoints.shape}")
    if not np.isfinite(timepoints).all():
        raise ValueError("Timepoints must be finite")
    if np.any(np.diff(timepoints) <= 0):
        raise ValueError("Timepoints must be strictly increasing")
    return timepoints


def _exit_indices(times, timepoints):
    # First grid index whose timepoint is not less than the survival time
    return np.searchsorted(timepoints, times, side='left')


def _count_exits(group, n_groups, exit_idx, is_event, n_timepoints):
    """Deaths and numbers at risk for disjoint groups of rows.

    Args:
        group (np.ndarray): Group index of every row, in [0, n_groups)
        n_groups (int): Number of groups
        exit_idx (np.ndarray): Exit grid index of every row
        is_event (np.ndarray): 1 where the row ends in an event
        n_timepoints (int): Grid size T

    Returns:
        tuple: (deaths, leaving), each (n_groups, T + 1) int64; column T of
            leaving collects rows surviving past the last timepoint
    """
    leaving = np.zeros((n_groups, n_timepoints + 1), dtype=np.int64)
    deaths = np.zeros((n_groups, n_timepoints + 1), dtype=np.int64)
    np.add.at(leaving, (group, exit_idx), 1)
    np.add.at(deaths, (group, exit_idx), is_event)
    return deaths, leaving


def _to_at_risk(deaths, leaving):
    # At risk at t: rows leaving strictly after t, plus the deaths at t
    n_timepoints = leaving.shape[1] - 1
    deaths = deaths[:, :n_timepoints]
    at_risk = np.cumsum(leaving[:, ::-1], axis=1)[:, ::-1][:, 1:] + deaths
    return deaths, at_risk


def compute_death_counts(times, status, timepoints):
    """Number of deaths and samples at risk per timepoint for one node.

    A row is at risk at every timepoint strictly before its survival time.
    At the first timepoint not less than its survival time it is counted
    at risk and dead if it had an event; a censored row leaves the risk set
    there. Rows outliving the whole grid are at risk everywhere.

    Args:
        times (np.ndarray): Survival times of the node's rows
        status (np.ndarray): Event indicators of the node's rows
        timepoints (np.ndarray): Event-time grid

    Returns:
        RiskTable: deaths and at_risk (length T) plus the number of
            timepoints with at least one death
    """
    times = np.asarray(times, dtype=np.float64)
    is_event = (np.asarray(status) == 1).astype(np.int64)
    group = np.zeros(times.shape[0], dtype=np.intp)
    deaths, at_risk = _to_at_risk(*_count_exits(
        group, 1, _exit_indices(times, timepoints), is_event, len(timepoints)))
    deaths, at_risk = deaths[0], at_risk[0]
    return RiskTable(deaths, at_risk, int(np.count_nonzero(deaths)))


def right_child_death_counts(values, times, status, timepoints, split_values):
    """Deaths and numbers at risk in the right child of every candidate split.

    The right child of split i holds the rows with value > split_values[i].
    Rows are binned by how many sorted thresholds lie strictly below their
    value; the right child of the k-th smallest threshold is the union of
    the bins above k, so one reverse cumulative sum over the bins yields
    every split without a rows x splits table.

    Returns:
        tuple: (deaths_right, at_risk_right, n_right) where the first two are
            (n_splits, T) and n_right holds the right-child row counts
    """
    values = np.asarray(values, dtype=np.float64)
    split_values = np.asarray(split_values, dtype=np.float64)
    is_event = (np.asarray(status) == 1).astype(np.int64)
    n_splits = split_values.shape[0]

    order = np.argsort(split_values, kind='stable')
    # Row falls right of sorted split k exactly when k < group
    group = np.searchsorted(split_values[order], values, side='left')
    deaths, leaving = _count_exits(
        group, n_splits + 1, _exit_indices(np.asarray(times, dtype=np.float64), timepoints),
        is_event, len(timepoints))

    deaths_sorted = np.cumsum(deaths[::-1], axis=0)[::-1][1:]
    leaving_sorted = np.cumsum(leaving[::-1], axis=0)[::-1][1:]

    deaths_right = np.empty_like(deaths_sorted)
    leaving_right = np.empty_like(leaving_sorted)
    deaths_right[order] = deaths_sorted
    leaving_right[order] = leaving_sorted

    deaths_right, at_risk_right = _to_at_risk(deaths_right, leaving_right)
    return deaths_right, at_risk_right, leaving_right.sum(axis=1)


def logrank_statistics(deaths, at_risk, deaths_right, at_risk_right):
    """Log-rank statistic of every candidate split.

    Timepoints are scanned in increasing order; the scan ends at the first
    timepoint with fewer than two samples at risk and skips timepoints
    without deaths.

    Args:
        deaths (np.ndarray): Parent deaths, length T
        at_risk (np.ndarray): Parent numbers at risk, length T
        deaths_right (np.ndarray): Right-child deaths, (n_splits, T)
        at_risk_right (np.ndarray): Right-child numbers at risk, (n_splits, T)

    Returns:
        np.ndarray: |U| / sqrt(V) per split, LOGRANK_INVALID where V == 0
    """
    deaths_right = np.atleast_2d(deaths_right)
    at_risk_right = np.atleast_2d(at_risk_right)

    too_small = np.flatnonzero(at_risk < 2)
    end = too_small[0] if too_small.size else len(at_risk)
    used = np.flatnonzero(deaths[:end] > 0)

    di = deaths[used].astype(np.float64)
    Yi = at_risk[used].astype(np.float64)
    di1 = deaths_right[:, used].astype(np.float64)
    Yi1 = at_risk_right[:, used].astype(np.float64)

    nominator = (di1 - Yi1 * (di / Yi)).sum(axis=1)
    ratio = Yi1 / Yi
    denominator_squared = (ratio * (1.0 - ratio) * ((Yi - di) / (Yi - 1)) * di).sum(axis=1)

    logrank = np.full(deaths_right.shape[0], LOGRANK_INVALID)
    valid = denominator_squared != 0
    logrank[valid] = np.abs(nominator[valid]) / np.sqrt(denominator_squared[valid])
    return logrank


def find_best_split_value(values, times, status, timepoints, risk, split_values, min_node_size):
    """Best threshold of one variable for a node.

    Thresholds leaving fewer than min_node_size rows on either side are not
    scored. Among the rest the highest statistic wins; on equal statistics
    the threshold appearing first in split_values is kept.

    Args:
        values (np.ndarray): The variable's values on the node's rows
        times (np.ndarray): Survival times of the node's rows
        status (np.ndarray): Event indicators of the node's rows
        timepoints (np.ndarray): Event-time grid
        risk (RiskTable): The node's own counts
        split_values (array-like): Candidate thresholds
        min_node_size (int): Minimum number of rows per child

    Returns:
        tuple: (best_value, best_logrank); best_value is None and
            best_logrank is LOGRANK_INVALID when no threshold is valid
    """
    split_values = np.asarray(split_values, dtype=np.float64)
    if split_values.size == 0:
        return None, LOGRANK_INVALID

    deaths_right, at_risk_right, n_right = right_child_death_counts(
        values, times, status, timepoints, split_values)
    n_left = len(values) - n_right

    logrank = logrank_statistics(risk.deaths, risk.at_risk, deaths_right, at_risk_right)
    logrank[(n_right < min_node_size) | (n_left < min_node_size)] = LOGRANK_INVALID

    best = int(np.argmax(logrank))
    if logrank[best] > LOGRANK_INVALID:
        return float(split_values[best]), float(logrank[best])
    return None, LOGRANK_INVALID
