"""
Tests for Return Binner
=======================
"""

import math

import pytest

from stds.core.exceptions import InvalidStateError
from stds.tree import Binner

SCENARIO_RETURNS = [0.02, -0.00980392, 0.02970297, -0.04807692]


class TestBinnerFit:
    """Test boundary fitting."""

    def test_edges(self):
        binner = Binner(4).fit([0.0, 0.4])
        assert binner.is_fitted
        assert binner.edges == pytest.approx((0.0, 0.1, 0.2, 0.3, 0.4))

    def test_bins_are_contiguous(self):
        binner = Binner(5).fit(SCENARIO_RETURNS)
        bins = binner.bins()
        assert len(bins) == 5
        assert bins[0].lower_bound == pytest.approx(min(SCENARIO_RETURNS))
        assert bins[-1].upper_bound == pytest.approx(max(SCENARIO_RETURNS))
        for left, right in zip(bins, bins[1:]):
            assert left.upper_bound == right.lower_bound
        assert [b.index for b in bins] == list(range(5))

    def test_frozen_after_fit(self):
        binner = Binner(4).fit([0.0, 1.0])
        with pytest.raises(InvalidStateError):
            binner.fit([5.0, 10.0])
        assert binner.edges[-1] == 1.0

    def test_ignores_non_finite(self):
        binner = Binner(2).fit([0.0, float('nan'), 1.0, float('inf')])
        assert binner.edges == pytest.approx((0.0, 0.5, 1.0))

    def test_no_finite_values(self):
        with pytest.raises(ValueError):
            Binner(4).fit([float('nan')])

    def test_too_few_bins(self):
        with pytest.raises(ValueError):
            Binner(1)

    def test_unfitted(self):
        binner = Binner(4)
        assert binner.bins() == []
        with pytest.raises(InvalidStateError):
            binner.bin(0.0)


class TestBinnerBin:
    """Test value to index mapping."""

    @pytest.fixture
    def binner(self):
        return Binner(4).fit(SCENARIO_RETURNS)

    def test_scenario_symbols(self, binner):
        assert binner.transform(SCENARIO_RETURNS) == [3, 1, 3, 0]

    def test_min_maps_to_first_bin(self, binner):
        assert binner.bin(min(SCENARIO_RETURNS)) == 0

    def test_max_maps_to_last_bin(self, binner):
        assert binner.bin(max(SCENARIO_RETURNS)) == 3

    def test_clamps_out_of_range(self, binner):
        assert binner.bin(10.0) == 3
        assert binner.bin(-10.0) == 0

    def test_non_finite_maps_to_middle(self, binner):
        assert binner.bin(float('nan')) == 2
        assert binner.bin(math.inf) == 2

    def test_deterministic(self, binner):
        assert [binner.bin(0.001) for _ in range(5)] == [binner.bin(0.001)] * 5

    def test_indices_in_range(self, binner):
        for i in range(-100, 101):
            assert 0 <= binner.bin(i / 1000.0) < 4


class TestDegenerateRange:
    """All training returns identical."""

    def test_degenerate(self):
        binner = Binner(4).fit([0.01, 0.01, 0.01])
        assert binner.bin(0.01) == 0
        assert binner.bin(0.0) == 0
        assert binner.bin(0.02) == 3
