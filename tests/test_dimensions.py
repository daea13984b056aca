import pytest

from core.errors import ErrorKind, FormatUnrecognized
from loaders.dimensions import (
    CANDIDATE_SHAPES,
    CandidateShape,
    ProbeStrategy,
    ShapeSource,
    VolumeShape,
    generic_shape_search,
    integer_cube_root,
    probe_shape,
)


STANDARD_BYTES = 640 * 304 * 304 * 4


def test_standard_length_uses_exact_path_without_probing():
    assert STANDARD_BYTES == 236584960
    result = probe_shape(STANDARD_BYTES, 4)
    assert result.shape == VolumeShape(640, 304, 304)
    assert result.source is ShapeSource.EXACT
    assert result.probes == 0


def test_standard_length_accepted_by_strict_strategy():
    result = probe_shape(STANDARD_BYTES, 4, strategy=ProbeStrategy.STRICT)
    assert result.shape == (640, 304, 304)


def test_ambiguous_length_resolves_to_unique_exact_curated_triple():
    result = probe_shape(2611200, 4)
    assert result.shape == VolumeShape(160, 120, 34)
    assert result.source is ShapeSource.CURATED
    assert result.shape.is_exact(2611200, 4)


def test_strict_strategy_rejects_non_standard_length():
    with pytest.raises(FormatUnrecognized) as info:
        probe_shape(2611200, 4, strategy=ProbeStrategy.STRICT)
    assert info.value.kind is ErrorKind.FORMAT_UNRECOGNIZED
    assert info.value.byte_length == 2611200


def test_curated_strategy_does_not_fall_through_to_generic_search():
    with pytest.raises(FormatUnrecognized):
        probe_shape(50 * 60 * 70 * 4, 4, strategy=ProbeStrategy.CURATED)


def test_curated_candidates_must_match_exactly():
    # One element short of 160x120x34: a "fits within" check would accept it.
    byte_length = (160 * 120 * 34 - 1) * 4
    with pytest.raises(FormatUnrecognized):
        probe_shape(byte_length, 4, strategy=ProbeStrategy.CURATED)


def test_generic_search_prefers_most_cubic_then_smallest_depth():
    result = probe_shape(50 * 60 * 70 * 4, 4)
    assert result.source is ShapeSource.GENERIC
    assert result.shape == VolumeShape(50, 60, 70)
    assert result.probes > len(CANDIDATE_SHAPES)


def test_generic_search_returns_exact_factorizations_only():
    for n in (210000, 4096, 12 * 13 * 14, 99 * 100 * 101):
        shape, _ = generic_shape_search(n)
        assert shape is not None
        assert shape.element_count == n


def test_prime_element_count_is_unrecognized():
    with pytest.raises(FormatUnrecognized):
        probe_shape(7919 * 4, 4)


def test_length_not_multiple_of_element_size_is_unrecognized():
    with pytest.raises(FormatUnrecognized):
        probe_shape(1_000_002, 4)


def test_custom_candidate_list_is_evaluated_in_order():
    candidates = (
        CandidateShape(10, 10, 10, "first"),
        CandidateShape(20, 5, 10, "second"),
    )
    result = probe_shape(1000 * 4, 4, candidates=candidates, strategy=ProbeStrategy.CURATED)
    assert result.shape == (10, 10, 10)
    assert result.probes == 1


def test_invalid_element_size():
    with pytest.raises(ValueError):
        probe_shape(400, 0)


def test_volume_shape_helpers():
    shape = VolumeShape(2, 3, 4)
    assert shape.element_count == 24
    assert shape.byte_length(4) == 96
    assert shape.is_exact(96, 4)
    assert not shape.is_exact(100, 4)
    assert str(shape) == "2x3x4"


@pytest.mark.parametrize("n, expected", [(0, 0), (1, 1), (26, 2), (27, 3), (64, 4), (10 ** 18, 10 ** 6)])
def test_integer_cube_root(n, expected):
    assert integer_cube_root(n) == expected
