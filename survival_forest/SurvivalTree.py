"""Log-rank Survival Tree

This module implements a single survival tree of a random survival forest.
Nodes are split on the variable and threshold maximising the log-rank
statistic between the two children; terminal nodes store the
Nelson-Aalen-type cumulative hazard of their samples on the tree's
event-time grid.

Key Components:
- Node: split descriptor or terminal cumulative hazard curve
- Tree: node splitting, recursive growth, prediction and the split table
  used to rebuild a grown tree

Every node is decided once: its risk table is computed from its own rows,
used for the split search or the hazard curve, and then dropped. Only the
decision is kept on the node.
"""

import logging

import numpy as np
import pandas as pd

from survival_forest.global_names import LOGRANK_INVALID, MAX_DEPTH, MIN_NODE_SIZE, RANDOM_STATE
from survival_forest.logrank import check_timepoints, compute_death_counts, find_best_split_value
from survival_forest.methods import concordance_from_chf

logger = logging.getLogger(__name__)


class Node:
    """Survival tree node.

    Attributes:
        index (int): Position of the node in the tree's node list
        feature (int): Split variable (None for terminal nodes)
        threshold (float): Split value; rows with value > threshold go right
        logrank (float): Statistic of the chosen split
        value (np.ndarray): Cumulative hazard on the grid (terminal nodes only)
        left (Node): Left child
        right (Node): Right child
        leaf (bool): Whether this is a terminal node
        depth (int): Depth of this node in the tree
        n_samples (int): Number of rows the node was grown from
    """

    def __init__(self,
                 index=0,
                 feature=None,
                 threshold=None,
                 value=None,
                 left=None,
                 right=None,
                 depth=None,
                 n_samples=0,
                 ):
        self.index = index
        self.feature = feature
        self.threshold = threshold
        self.logrank = None
        self.value = value
        self.left = left
        self.right = right
        self.leaf = False
        self.depth = depth
        self.n_samples = n_samples

    def _predict(self, risk):
        """Turn the node into a terminal node.

        The cumulative hazard at timepoint t is the running sum of
        deaths / at_risk up to t; timepoints nobody is at risk at add 0.

        Args:
            risk (RiskTable): The node's death and at-risk counts
        """
        deaths = risk.deaths.astype(np.float64)
        at_risk = risk.at_risk.astype(np.float64)
        hazard = np.divide(deaths, at_risk, out=np.zeros_like(deaths), where=at_risk != 0)
        self.value = np.cumsum(hazard)

        self.leaf = True
        self.feature = None
        self.threshold = None
        self.left = None
        self.right = None


class Tree:
    """Survival tree grown with the log-rank splitting rule.

    Parameters:
        timepoints (array-like, optional): Event-time grid. Defaults to the
            unique event times of the whole training set passed to fit()
        min_node_size (int, default=3): Minimum number of rows in each child
        max_depth (int, optional): Maximum tree depth. None for unlimited depth
        max_feature (int, optional): Number of variables drawn per node in
            forest mode
        random_state (int, default=1234): Seed of the per-node variable draws
        forest (bool, default=False): Whether this tree is part of a forest

    Attributes:
        timepoints_ (np.ndarray): Grid the tree was grown on
        tree_ (Node): Root node
        nodes (list): All nodes, indexed by Node.index
        n_features_ (int): Number of variables in the training data
    """

    def __init__(self, timepoints=None,
                 min_node_size=MIN_NODE_SIZE,
                 max_depth=MAX_DEPTH,
                 max_feature=None,
                 random_state=RANDOM_STATE,
                 forest=False, ):
        self.timepoints = timepoints
        self.min_node_size = min_node_size
        self.max_depth = max_depth
        self.max_feature = max_feature
        self.random_state = random_state
        self.forest = forest

        self.timepoints_ = None
        self.tree_ = None
        self.nodes = []
        self.n_features_ = None
        self._random = None

    def fit(self, data, sample_ids=None):
        """Grow the tree on some rows of a SurvivalData table.

        Args:
            data (SurvivalData): Training data
            sample_ids (array-like, optional): Rows to grow the tree from.
                Defaults to every row

        Returns:
            Tree: Self for method chaining

        Raises:
            ValueError: On an invalid grid, an empty sample set or
                min_node_size below 1
        """
        if self.min_node_size < 1:
            raise ValueError(f"min_node_size must be at least 1, got {self.min_node_size}")
        if self.max_feature is not None and not 1 <= self.max_feature <= data.n_features:
            raise ValueError(f"max_feature must be between 1 and {data.n_features}, got {self.max_feature}")

        if self.timepoints is None:
            self.timepoints_ = check_timepoints(data.unique_event_times())
        else:
            self.timepoints_ = check_timepoints(self.timepoints)
        if len(self.timepoints_) == 0:
            logger.warning("Event-time grid is empty; every node will be terminal")

        if sample_ids is None:
            sample_ids = np.arange(data.n_samples)
        sample_ids = np.asarray(sample_ids, dtype=np.intp)

        self.n_features_ = data.n_features
        self.nodes = []
        self._random = np.random.RandomState(self.random_state)
        self.tree_ = self._grow_tree(data, sample_ids)

        logger.info("Grew tree with %d nodes (%d terminal) from %d samples",
                    len(self.nodes), sum(node.leaf for node in self.nodes), len(sample_ids))
        return self

    def _grow_tree(self, data, sample_ids, depth=0):
        """Create a node for sample_ids and, unless it is terminal, its subtrees.

        Children are grown depth-first, left before right, so node indices
        follow pre-order.
        """
        node = Node(index=len(self.nodes), depth=depth, n_samples=len(sample_ids))
        self.nodes.append(node)

        if self.max_depth is not None and depth >= self.max_depth:
            node._predict(self._death_counts(data, sample_ids))
            return node

        terminal = self.split_node(data, node, sample_ids, self._choose_features())
        if terminal:
            return node

        goes_right = data.values(sample_ids, node.feature) > node.threshold
        node.left = self._grow_tree(data, sample_ids[~goes_right], depth + 1)
        node.right = self._grow_tree(data, sample_ids[goes_right], depth + 1)
        return node

    def _death_counts(self, data, sample_ids):
        if len(sample_ids) == 0:
            raise ValueError("Cannot compute death counts for a node without samples")
        return compute_death_counts(data.survival_times(sample_ids), data.statuses(sample_ids),
                                    self.timepoints_)

    def _choose_features(self):
        """Candidate split variables of the next node.

        In forest mode max_feature variables are drawn without replacement,
        in random order; otherwise all variables are used in column order.
        """
        if self.forest and self.max_feature is not None:
            return self._random.choice(self.n_features_, self.max_feature, replace=False)
        return range(self.n_features_)

    def split_node(self, data, node, sample_ids, candidate_features):
        """Decide whether a node is split, and where.

        Computes the node's risk table once, then evaluates every candidate
        variable with the log-rank criterion. The search is skipped when the
        node holds fewer than 2 * min_node_size rows. If no variable yields
        a valid split the node becomes terminal with its cumulative hazard.

        Args:
            data (SurvivalData): Training data
            node (Node): Node to decide
            sample_ids (np.ndarray): Rows of the node
            candidate_features (iterable): Variables to try, in order

        Returns:
            bool: True if the node is terminal, False if a split was recorded

        Note:
            On equal statistics the earlier variable in candidate_features
            and, within a variable, the earlier threshold is kept.
        """
        risk = self._death_counts(data, sample_ids)

        best_logrank = LOGRANK_INVALID
        best_feature, best_value = None, None

        if len(sample_ids) >= 2 * self.min_node_size:
            times = data.survival_times(sample_ids)
            status = data.statuses(sample_ids)
            for feature in candidate_features:
                split_values = data.distinct_values(sample_ids, feature)
                if len(split_values) == 0:
                    continue

                value, logrank = find_best_split_value(data.values(sample_ids, feature), times, status,
                                                       self.timepoints_, risk, split_values,
                                                       self.min_node_size)
                if logrank > best_logrank:
                    best_logrank = logrank
                    best_feature = int(feature)
                    best_value = value

        if best_logrank < 0:
            node._predict(risk)
            logger.debug("Node %d terminal: %d samples, %d unique death times",
                         node.index, len(sample_ids), risk.num_unique_death_times)
            return True

        node.feature = best_feature
        node.threshold = best_value
        node.logrank = best_logrank
        logger.debug("Node %d split on variable %d at %s (logrank %.4f, %d samples)",
                     node.index, best_feature, best_value, best_logrank, len(sample_ids))
        return False

    def _check_fitted(self):
        if self.tree_ is None:
            raise ValueError("The tree has not been trained yet. Please call fit() method first.")

    def _terminal_node(self, x):
        node = self.tree_
        while not node.leaf:
            if x[node.feature] > node.threshold:
                node = node.right
            else:
                node = node.left
        return node

    def apply(self, X):
        """Index of the terminal node reached by every sample."""
        self._check_fitted()
        X = _as_covariates(X, self.n_features_)
        return np.array([self._terminal_node(x).index for x in X], dtype=np.intp)

    def predict(self, X):
        """Cumulative hazard of every sample on the tree's grid.

        Args:
            X (pd.DataFrame or np.ndarray): Covariates, same columns as in fit()

        Returns:
            np.ndarray: (n_samples, T) cumulative hazard
        """
        self._check_fitted()
        X = _as_covariates(X, self.n_features_)
        chf = np.empty((X.shape[0], len(self.timepoints_)))
        for i, x in enumerate(X):
            chf[i] = self._terminal_node(x).value
        return chf

    def predict_survival_function(self, X):
        """Survival curves exp(-chf), one column per sample, indexed by timepoint."""
        chf = self.predict(X)
        return pd.DataFrame({f"Survival_{i}": np.exp(-chf[i]) for i in range(chf.shape[0])},
                            index=self.timepoints_)

    def prediction_accuracy(self, data, sample_ids=None):
        """Harrell's C-index of the tree on some rows (e.g. its out-of-bag rows)."""
        self._check_fitted()
        if sample_ids is None:
            sample_ids = np.arange(data.n_samples)
        sample_ids = np.asarray(sample_ids, dtype=np.intp)
        chf = self.predict(data.covariates[sample_ids])
        return concordance_from_chf(data.time[sample_ids], data.status[sample_ids], chf)

    def terminal_chf(self):
        """Terminal node indices and their cumulative hazard curves."""
        self._check_fitted()
        terminal_nodes = [node.index for node in self.nodes if node.leaf]
        return terminal_nodes, [self.nodes[i].value.tolist() for i in terminal_nodes]

    def to_arrays(self):
        """Split table and hazard curves of the grown tree.

        Returns:
            dict: child_node_ids ((left, right) per node, (0, 0) for terminal
                nodes), split_var_ids, split_values, chf (empty list for
                non-terminal nodes) and timepoints
        """
        self._check_fitted()
        child_node_ids, split_var_ids, split_values, chf = [], [], [], []
        for node in self.nodes:
            if node.leaf:
                child_node_ids.append((0, 0))
                split_var_ids.append(0)
                split_values.append(0.0)
                chf.append(node.value.tolist())
            else:
                child_node_ids.append((node.left.index, node.right.index))
                split_var_ids.append(node.feature)
                split_values.append(node.threshold)
                chf.append([])
        return {
            'child_node_ids': child_node_ids,
            'split_var_ids': split_var_ids,
            'split_values': split_values,
            'chf': chf,
            'timepoints': self.timepoints_.tolist(),
        }

    @classmethod
    def from_arrays(cls, child_node_ids, split_var_ids, split_values, chf, timepoints, **kwargs):
        """Rebuild a grown tree from the output of to_arrays().

        The root is node 0, which is never anybody's child, so a (0, 0)
        child pair marks a terminal node.
        """
        if not (len(child_node_ids) == len(split_var_ids) == len(split_values) == len(chf)) \
                or len(child_node_ids) == 0:
            raise ValueError("Split table columns must be non-empty and of equal length")

        tree = cls(timepoints=timepoints, **kwargs)
        tree.timepoints_ = check_timepoints(timepoints)
        tree.nodes = [Node(index=i) for i in range(len(child_node_ids))]

        for node, (left, right), feature, threshold, curve in zip(
                tree.nodes, child_node_ids, split_var_ids, split_values, chf):
            if left == 0 and right == 0:
                node.value = np.asarray(curve, dtype=np.float64)
                if node.value.shape != tree.timepoints_.shape:
                    raise ValueError(f"Terminal node {node.index} has {node.value.shape[0]} hazard "
                                     f"values for {len(tree.timepoints_)} timepoints")
                node.leaf = True
            else:
                # Nodes are stored in pre-order, so children always follow their parent
                if not (node.index < left < len(tree.nodes) and node.index < right < len(tree.nodes)) \
                        or left == right:
                    raise ValueError(f"Node {node.index} has invalid child ids ({left}, {right})")
                node.feature = int(feature)
                node.threshold = float(threshold)
                node.left = tree.nodes[left]
                node.right = tree.nodes[right]

        tree.tree_ = tree.nodes[0]
        tree.tree_.depth = 0
        stack = [tree.tree_]
        while stack:
            node = stack.pop()
            for child in (node.left, node.right):
                if child is not None:
                    child.depth = node.depth + 1
                    stack.append(child)

        features = [node.feature for node in tree.nodes if not node.leaf]
        tree.n_features_ = max(features) + 1 if features else None
        return tree


def _as_covariates(X, n_features=None):
    if isinstance(X, pd.DataFrame):
        X = X.to_numpy(dtype=np.float64)
    X = np.atleast_2d(np.asarray(X, dtype=np.float64))
    if n_features is not None and X.shape[1] < n_features:
        raise ValueError(f"Expected {n_features} variables, got {X.shape[1]}")
    return X
