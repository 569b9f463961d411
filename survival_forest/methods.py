import logging
import pickle

import numpy as np
from sksurv.metrics import concordance_index_censored

logger = logging.getLogger(__name__)


def store_forest(model, filename):
    with open(filename, 'wb') as fw:
        pickle.dump(model, fw)
    logger.info("Model saved at %s", filename)


def load_forest(filename):
    with open(filename, 'rb') as fr:
        return pickle.load(fr)


def concordance_from_chf(time, status, chf):
    """Harrell's C-index with the summed cumulative hazard as risk score.

    The curve is summed over timepoints as a real number, so samples whose
    curves differ by less than one unit of hazard still rank correctly.

    Args:
        time (np.ndarray): Observed times
        status (np.ndarray): Event indicators (1 = event)
        chf (np.ndarray): (n_samples, T) cumulative hazard predictions

    Returns:
        float: Concordance index

    Raises:
        ValueError: If every sample is censored
    """
    risk_score = np.asarray(chf, dtype=np.float64).sum(axis=1)
    cindex = concordance_index_censored(np.asarray(status) == 1,
                                        np.asarray(time, dtype=np.float64), risk_score)[0]
    return float(cindex)
