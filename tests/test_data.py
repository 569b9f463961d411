from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from survival_forest.data import SurvivalData, load_survival_data


def _frame() -> pd.DataFrame:
    return pd.DataFrame({
        "age": [50.0, 61.0, 50.0, 72.0, 44.0],
        "snp": [0.0, 2.0, 1.0, 0.0, 2.0],
        "time": [3.0, 5.0, 5.0, 8.0, 1.0],
        "status": [1, 0, 1, 1, 0],
    })


def test_from_frame_splits_covariates_and_outcome() -> None:
    data = SurvivalData.from_frame(_frame())
    assert data.feature_names == ["age", "snp"]
    assert data.n_samples == 5 and data.n_features == 2
    assert data.survival_time(1) == 5.0
    assert data.event(1) == 0
    assert data.value(3, 0) == 72.0
    np.testing.assert_array_equal(data.values([0, 3], 0), [50.0, 72.0])
    np.testing.assert_array_equal(data.statuses([0, 1]), [1, 0])


def test_distinct_values_drop_the_largest() -> None:
    data = SurvivalData.from_frame(_frame())
    np.testing.assert_array_equal(data.distinct_values(np.arange(5), 0), [44.0, 50.0, 61.0])
    np.testing.assert_array_equal(data.distinct_values([0, 2], 0), [])
    np.testing.assert_array_equal(data.distinct_values([0, 1, 2], 1), [0.0, 1.0])


def test_binary_features_always_split_at_zero_and_one() -> None:
    data = SurvivalData.from_frame(_frame(), binary_features=["snp"])
    np.testing.assert_array_equal(data.distinct_values([0, 3], 1), [0.0, 1.0])
    np.testing.assert_array_equal(data.distinct_values([0, 3], 0), [50.0])


def test_unique_event_times() -> None:
    data = SurvivalData.from_frame(_frame())
    np.testing.assert_array_equal(data.unique_event_times(), [3.0, 5.0, 8.0])
    np.testing.assert_array_equal(data.unique_event_times([1, 4]), [])


def test_subset_reindexes_rows() -> None:
    data = SurvivalData.from_frame(_frame(), binary_features=["snp"])
    sub = data.subset([3, 1])
    assert sub.n_samples == 2
    assert sub.survival_time(0) == 8.0
    assert sub.binary_features == {1}


def test_invalid_inputs() -> None:
    with pytest.raises(ValueError, match="status"):
        SurvivalData(np.zeros((2, 1)), time=[1.0, 2.0], status=[1, 2])
    with pytest.raises(ValueError, match="one entry per row"):
        SurvivalData(np.zeros((2, 1)), time=[1.0], status=[1, 0])
    with pytest.raises(ValueError, match="not found"):
        SurvivalData.from_frame(_frame(), time_column="os")
    with pytest.raises(ValueError, match="not found"):
        SurvivalData.from_frame(_frame(), binary_features=["gene"])
    with pytest.raises(ValueError, match="numeric"):
        SurvivalData(pd.DataFrame({"grade": ["high", "low"]}), time=[1.0, 2.0], status=[1, 0])


@pytest.mark.parametrize("sep", [",", ";", " ", "\t"])
def test_load_survival_data_detects_separator(tmp_path, sep) -> None:
    path = tmp_path / "data.txt"
    path.write_text(_frame().to_csv(sep=sep, index=False))
    data = load_survival_data(path)
    assert data.feature_names == ["age", "snp"]
    np.testing.assert_array_equal(data.time, [3.0, 5.0, 5.0, 8.0, 1.0])


def test_load_survival_data_rejects_non_numeric_cells(tmp_path) -> None:
    path = tmp_path / "data.csv"
    path.write_text("age,time,status\n50,3,1\nold,5,0\n")
    with pytest.raises(ValueError, match="Non-numeric"):
        load_survival_data(path)

    path.write_text("age,time,status\n50,3,1\n61,5\n")
    with pytest.raises(ValueError, match="Too few columns"):
        load_survival_data(path)
