"""Random Survival Forest

Bagged log-rank survival trees. All trees share one event-time grid built
from the full training set, so their cumulative hazard predictions can be
averaged point by point.

Trees are independent: each one only reads the shared SurvivalData and its
own bootstrap rows, so they can be grown in parallel with joblib.
"""

import logging
import numbers

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.utils import check_random_state

from survival_forest.SurvivalTree import Tree
from survival_forest.global_names import MAX_DEPTH, MAX_FEATURES, MIN_NODE_SIZE, N_ESTIMATORS, RANDOM_STATE
from survival_forest.logrank import check_timepoints
from survival_forest.methods import concordance_from_chf

logger = logging.getLogger(__name__)


def bootstrap_sample_ids(data, tree_random):
    """Bootstrap rows for one tree.

    Draws n rows with replacement and keeps the unique ones. When the data
    holds both censored and uncensored rows, draws again until the sample
    does too.

    Args:
        data (SurvivalData): Training data
        tree_random (np.random.RandomState): Random state of the tree

    Returns:
        np.ndarray: Sorted unique in-bag row indices
    """
    n_samples = data.n_samples
    both_statuses = len(np.unique(data.status)) == 2
    while True:
        indices = np.unique(tree_random.choice(n_samples, n_samples, replace=True))
        if not both_statuses or len(np.unique(data.status[indices])) == 2:
            return indices


class Forest:
    """Random Survival Forest of log-rank survival trees.

    Parameters:
        n_estimators (int, default=100): Number of trees in the forest
        min_node_size (int, default=3): Minimum number of rows in each child
        max_depth (int, optional): Maximum depth of trees. None for unlimited depth
        max_features (int, 'sqrt' or None, default='sqrt'): Number of variables
            tried at each node. 'sqrt' uses floor(sqrt(n_features)), None all
        random_state (int, default=1234): Random seed for reproducibility
        deterministic (bool, default=True): Grow trees one after another
            instead of with joblib
        n_jobs (int, default=-1): joblib workers when not deterministic

    Attributes:
        timepoints_ (np.ndarray): Event-time grid shared by all trees
        estimators (list): Fitted Tree objects
        oob_sample_ids_ (list): Out-of-bag rows of every tree
        surv (pd.DataFrame): Last survival function prediction from predict()
    """

    def __init__(self, n_estimators=N_ESTIMATORS, min_node_size=MIN_NODE_SIZE, max_depth=MAX_DEPTH,
                 max_features=MAX_FEATURES, random_state=RANDOM_STATE, deterministic=True, n_jobs=-1):
        self.n_estimators = n_estimators
        self.min_node_size = min_node_size
        self.max_depth = max_depth
        self.max_features = max_features
        self.random_state = random_state
        self.deterministic = deterministic
        self.n_jobs = n_jobs

        self.timepoints_ = None
        self.estimators = None
        self.oob_sample_ids_ = None
        self.n_samples_ = None
        self.surv = None

    def _resolve_max_features(self, n_features):
        if self.max_features is None:
            return n_features
        if self.max_features == 'sqrt':
            return max(1, int(np.floor(np.sqrt(n_features))))
        if isinstance(self.max_features, bool) or not isinstance(self.max_features, numbers.Integral):
            raise ValueError(f"max_features must be None, 'sqrt' or an integer, got {self.max_features!r}")
        if not 1 <= self.max_features <= n_features:
            raise ValueError(f"max_features must be between 1 and {n_features}, got {self.max_features}")
        return int(self.max_features)

    def fit_one_tree(self, data, tree_random_state, max_feature):
        """Grow one tree on a bootstrap sample.

        Returns:
            tuple: (Tree, out-of-bag row indices)
        """
        tree_random = np.random.RandomState(tree_random_state)
        inbag = bootstrap_sample_ids(data, tree_random)

        estimator = Tree(timepoints=self.timepoints_,
                         min_node_size=self.min_node_size,
                         max_depth=self.max_depth,
                         max_feature=max_feature,
                         random_state=tree_random_state,
                         forest=True,
                         )
        estimator.fit(data, inbag)
        return estimator, np.setdiff1d(np.arange(data.n_samples), inbag)

    def fit(self, data):
        """Train the forest.

        Args:
            data (SurvivalData): Training data

        Returns:
            Forest: Self for method chaining
        """
        if self.n_estimators < 1:
            raise ValueError(f"n_estimators must be at least 1, got {self.n_estimators}")

        random_state = check_random_state(self.random_state)
        self.timepoints_ = check_timepoints(data.unique_event_times())
        self.n_samples_ = data.n_samples
        max_feature = self._resolve_max_features(data.n_features)
        tree_random_states = [random_state.randint(0, 10000) for _ in range(self.n_estimators)]

        if self.deterministic:
            results = [self.fit_one_tree(data, rs, max_feature) for rs in tree_random_states]
        else:
            results = Parallel(n_jobs=self.n_jobs)(
                delayed(self.fit_one_tree)(data, rs, max_feature) for rs in tree_random_states)

        self.estimators = [estimator for estimator, _ in results]
        self.oob_sample_ids_ = [oob for _, oob in results]

        if all(len(estimator.nodes) == 1 for estimator in self.estimators):
            logger.warning("No tree in the forest could be split; predictions are the pooled hazard")
        logger.info("Fitted forest of %d trees on %d samples, %d timepoints, %d variables per node",
                    len(self.estimators), data.n_samples, len(self.timepoints_), max_feature)
        return self

    def _check_fitted(self):
        if not self.estimators:
            raise ValueError("The forest has not been trained yet. Please call fit() method first.")

    def predict(self, X):
        """Ensemble cumulative hazard, the mean of the trees' curves.

        Returns:
            np.ndarray: (n_samples, T) cumulative hazard
        """
        self._check_fitted()
        chf = None
        for estimator in self.estimators:
            tree_chf = estimator.predict(X)
            chf = tree_chf if chf is None else chf + tree_chf
        return chf / len(self.estimators)

    def predict_survival_function(self, X):
        """Survival curves exp(-chf), one column per sample, indexed by timepoint."""
        chf = self.predict(X)
        self.surv = pd.DataFrame({f"Survival_{i}": np.exp(-chf[i]) for i in range(chf.shape[0])},
                                 index=self.timepoints_)
        return self.surv

    def ctd(self, data):
        """Harrell's C-index of the forest on a SurvivalData table."""
        chf = self.predict(data.covariates)
        return concordance_from_chf(data.time, data.status, chf)

    def oob_prediction_error(self, data):
        """Out-of-bag prediction error, 1 - C-index.

        Each training sample is predicted by the trees it was out-of-bag
        for; samples that were in-bag for every tree are left out.

        Args:
            data (SurvivalData): The data the forest was fitted on
        """
        self._check_fitted()
        if data.n_samples != self.n_samples_:
            raise ValueError(f"Forest was fitted on {self.n_samples_} samples, got {data.n_samples}")

        chf_sum = np.zeros((data.n_samples, len(self.timepoints_)))
        counts = np.zeros(data.n_samples, dtype=np.int64)
        for estimator, oob in zip(self.estimators, self.oob_sample_ids_):
            if len(oob) == 0:
                continue
            chf_sum[oob] += estimator.predict(data.covariates[oob])
            counts[oob] += 1

        used = counts > 0
        if not used.any():
            raise ValueError("No sample was out-of-bag; cannot compute the out-of-bag error")
        chf = chf_sum[used] / counts[used, np.newaxis]
        return 1.0 - concordance_from_chf(data.time[used], data.status[used], chf)
