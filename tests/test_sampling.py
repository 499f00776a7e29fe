"""Unit tests for segment sampling."""

import math

import pytest

from conftest import make_manifest
from errors import EmptySelection
from sampling import LEVELS, All, Cap, Stride, custom_level, sample, sample_for_level


class TestSample:
    """Tests for the All/Stride/Cap policies."""

    @pytest.mark.parametrize("count", [1, 7, 100, 6543])
    def test_all_returns_every_index(self, count):
        result = sample(make_manifest(count), All())

        assert result == list(range(count))

    @pytest.mark.parametrize("count,n", [
        (1, 1),
        (10, 3),
        (100, 10),
        (101, 10),
        (7999, 50),
        (5, 20),
    ])
    def test_stride_is_increasing_subsequence_from_zero(self, count, n):
        result = sample(make_manifest(count), Stride(n))

        assert result[0] == 0
        assert len(result) == math.ceil(count / n)
        assert all(b - a == n for a, b in zip(result, result[1:]))
        assert result[-1] < count

    def test_cap_truncates_instead_of_spreading(self):
        result = sample(make_manifest(1000), Cap(5))

        assert result == [0, 1, 2, 3, 4]

    def test_cap_larger_than_manifest_returns_everything(self):
        assert sample(make_manifest(3), Cap(50)) == [0, 1, 2]

    @pytest.mark.parametrize("policy", [All(), Stride(3), Cap(10)])
    def test_empty_manifest_is_empty_selection(self, policy):
        with pytest.raises(EmptySelection):
            sample(make_manifest(0), policy)

    def test_invalid_policy_values_rejected(self):
        with pytest.raises(ValueError):
            Stride(0)
        with pytest.raises(ValueError):
            Cap(0)


class TestSampleForLevel:
    """Tests for stride-then-cap composition of named levels."""

    def test_stride_applied_before_cap(self):
        level = custom_level(LEVELS["balanced"], stride=5, cap=100)

        result = sample_for_level(make_manifest(8000), level)

        assert len(result) == 100
        assert result[:3] == [0, 5, 10]
        assert result[-1] == 495

    def test_cap_above_strided_count_keeps_whole_stride(self):
        result = sample_for_level(make_manifest(8000), LEVELS["balanced"])

        # 8000 / 20 = 400 segments, under the 500 cap
        assert len(result) == 400
        assert result[-1] == 7980

    def test_complete_level_takes_every_segment(self):
        assert sample_for_level(make_manifest(250), LEVELS["complete"]) == list(range(250))

    def test_cap_zero_removes_limit(self):
        level = custom_level(LEVELS["fast"], cap=0)

        result = sample_for_level(make_manifest(20000), level)

        assert len(result) == 400

    def test_empty_manifest_raises(self):
        with pytest.raises(EmptySelection):
            sample_for_level(make_manifest(0), LEVELS["fast"])

    def test_levels_carry_their_own_thresholds(self):
        thresholds = [LEVELS[name].min_caption_bytes for name in ("fast", "balanced", "thorough", "complete")]

        assert thresholds == sorted(thresholds)
        assert LEVELS["complete"].skip_failed_segments is False

    def test_custom_level_rejects_bad_stride(self):
        with pytest.raises(ValueError):
            custom_level(LEVELS["fast"], stride=0)
