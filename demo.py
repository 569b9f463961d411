import argparse
import logging
import os

from survival_forest.SurvivalForest import Forest
from survival_forest.data import load_survival_data
from survival_forest.global_names import MIN_NODE_SIZE, N_ESTIMATORS, RANDOM_STATE, STATUS, TIME
from survival_forest.methods import store_forest


def parse_args():
    parser = argparse.ArgumentParser(description="Train a random survival forest on a delimited data file.")
    parser.add_argument("data", help="Input file (comma, semicolon or whitespace separated, with header)")
    parser.add_argument("--time-column", default=TIME)
    parser.add_argument("--status-column", default=STATUS)
    parser.add_argument("--binary-features", nargs="*", default=[],
                        help="Binary-coded variables, only split at 0 and 1")
    parser.add_argument("--n-estimators", type=int, default=N_ESTIMATORS)
    parser.add_argument("--min-node-size", type=int, default=MIN_NODE_SIZE)
    parser.add_argument("--max-depth", type=int, default=None)
    parser.add_argument("--max-features", default="sqrt",
                        help="Variables tried per node: an integer or 'sqrt'")
    parser.add_argument("--seed", type=int, default=RANDOM_STATE)
    parser.add_argument("--parallel", action="store_true", help="Grow trees with joblib")
    parser.add_argument("--output", default="rsf_models/forest.pkl")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args()


def main():
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(name)s %(levelname)s %(message)s")

    data = load_survival_data(args.data, args.time_column, args.status_column, args.binary_features)
    print(f"data size: {data.n_samples}, variables: {data.n_features}")

    max_features = args.max_features if args.max_features == "sqrt" else int(args.max_features)
    rsf = Forest(n_estimators=args.n_estimators,
                 min_node_size=args.min_node_size,
                 max_depth=args.max_depth,
                 max_features=max_features,
                 random_state=args.seed,
                 deterministic=not args.parallel)
    rsf.fit(data)

    print(f"OOB prediction error: {rsf.oob_prediction_error(data):.4f}")
    print(f"Training C-index: {rsf.ctd(data):.4f}")

    os.makedirs(os.path.dirname(args.output) or ".", exist_ok=True)
    store_forest(rsf, args.output)
    print(f"RSF model saved at {args.output}")


if __name__ == "__main__":
    main()
