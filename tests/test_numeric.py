import numpy as np
import pytest
from numeric import (
    argmax,
    bincount,
    col_normalize_log_weights,
    compact_labels,
    row_normalize_log_weights,
    sample_weighted,
    unique_with_indices,
)


class TestNormalizeLogWeights:
    def test_row_normalize(self):
        weights = np.log(np.array([[1.0, 2.0, 4.0]] * 3))
        row_normalize_log_weights(weights)
        np.testing.assert_allclose(weights, [[0.25, 0.5, 1.0]] * 3, atol=1e-4)

    def test_col_normalize(self):
        weights = np.log(np.array([[1.0, 2.0, 4.0]] * 3))
        col_normalize_log_weights(weights)
        np.testing.assert_allclose(weights, np.ones((3, 3)), atol=1e-4)

    def test_returns_same_array(self):
        weights = np.zeros((2, 2))
        assert row_normalize_log_weights(weights) is weights

    def test_extreme_magnitudes(self):
        weights = np.array([[-1e300, 700.0, 0.0], [700.0, 700.0, -1e300], [-1e300, -1e300, 1.0]])
        row_normalize_log_weights(weights)
        scaled = weights / weights.max(axis=1, keepdims=True)
        assert np.isfinite(scaled).all()
        assert ((scaled >= 0) & (scaled <= 1)).all()
        np.testing.assert_allclose(scaled.max(axis=1), 1.0)


class TestSampleWeighted:
    def test_single_support(self, rng):
        weights = np.tile([0.0, 1.0, 0.0], (5000, 1))
        assert (sample_weighted(weights, rng) == 1).all()

    def test_unnormalized_frequencies(self, rng):
        weights = np.tile([2.0, 6.0], (20000, 1))
        labels = sample_weighted(weights, rng)
        assert abs(labels.mean() - 0.75) < 0.02

    def test_never_picks_zero_weight(self, rng):
        weights = np.tile([1.0, 0.0, 1.0, 0.0], (5000, 1))
        labels = sample_weighted(weights, rng)
        assert set(np.unique(labels)) == {0, 2}

    def test_huge_weights(self, rng):
        weights = np.tile([1e308, 1e308], (4000, 1))
        labels = sample_weighted(weights, rng)
        assert abs(labels.mean() - 0.5) < 0.05

    def test_tiny_weights(self, rng):
        weights = np.tile([5e-324, 0.0, 5e-324], (4000, 1))
        labels = sample_weighted(weights, rng)
        assert set(np.unique(labels)) == {0, 2}

    def test_zero_row_raises(self, rng):
        with pytest.raises(ValueError, match="zero"):
            sample_weighted(np.array([[1.0, 1.0], [0.0, 0.0]]), rng)

    @pytest.mark.parametrize("bad", [-1.0, np.nan, np.inf])
    def test_invalid_row_raises(self, rng, bad):
        with pytest.raises(ValueError, match="row 0"):
            sample_weighted(np.array([[1.0, bad]]), rng)

    def test_not_2d_raises(self, rng):
        with pytest.raises(ValueError):
            sample_weighted(np.array([1.0, 2.0]), rng)

    def test_no_rows(self, rng):
        assert sample_weighted(np.empty((0, 3)), rng).shape == (0,)


class TestArgmax:
    def test_first_of_ties(self):
        assert argmax(np.array([1.0, 3.0, 3.0, 2.0])) == 1

    def test_all_minus_inf(self):
        assert argmax(np.full(4, -np.inf)) == 0


class TestUniqueWithIndices:
    def test_first_appearance_order(self):
        unique, indices = unique_with_indices([1, 1, 2, 2, 3, 3, 4, 4, 5, 5, 1], sort=False)
        assert unique == [1, 2, 3, 4, 5]
        assert indices.tolist() == [0, 0, 1, 1, 2, 2, 3, 3, 4, 4, 0]

    def test_sorted(self):
        unique, indices = unique_with_indices([7, 3, 7, 5], sort=True)
        assert unique == [3, 5, 7]
        assert indices.tolist() == [2, 0, 2, 1]

    def test_compacts_label_space(self):
        data = [10, 40, 10, 20]
        unique, indices = unique_with_indices(data)
        assert [unique[i] for i in indices] == data


class TestBincount:
    def test_counts(self):
        counts = bincount([1, 1, 2, 2, 3, 3, 4, 4, 5, 5])
        assert sorted(counts.items()) == [(1, 2), (2, 2), (3, 2), (4, 2), (5, 2)]

    def test_empty(self):
        assert not bincount([])


class TestCompactLabels:
    def test_adjacent_removals(self):
        labels = np.array([0, 1, 0, 1, 4], dtype=np.int64)
        compact_labels(labels, np.array([2, 3], dtype=np.int64))
        assert labels.tolist() == [0, 1, 0, 1, 2]

    def test_separate_removals(self):
        labels = np.array([0, 2, 4, 5], dtype=np.int64)
        compact_labels(labels, np.array([1, 3], dtype=np.int64))
        assert labels.tolist() == [0, 1, 2, 3]
