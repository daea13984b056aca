import numpy as np

from processors.normalize import denormalize_volume, normalize_volume, quantize_uint8, sanitize_volume


def test_constant_volume_normalizes_to_zeros():
    volume = np.full((4, 5, 6), 7.0, dtype=np.float32)
    normalized = normalize_volume(volume)
    assert normalized.degenerate
    assert normalized.data.shape == volume.shape
    assert not normalized.data.any()
    assert normalized.vmin == normalized.vmax == 7.0


def test_normalize_maps_to_unit_range_and_inverts():
    rng = np.random.default_rng(1)
    volume = rng.uniform(-50.0, 300.0, size=(6, 7, 8)).astype(np.float32)
    normalized = normalize_volume(volume)
    assert normalized.data.dtype == np.float32
    assert normalized.data.min() == 0.0
    assert normalized.data.max() == 1.0
    restored = denormalize_volume(normalized.data, normalized.vmin, normalized.vmax)
    np.testing.assert_allclose(restored, volume, rtol=1e-5, atol=1e-3)


def test_integer_volume_is_normalized_in_float():
    volume = np.arange(24, dtype=np.uint16).reshape(2, 3, 4)
    normalized = normalize_volume(volume)
    assert np.issubdtype(normalized.data.dtype, np.floating)
    assert normalized.data[0, 0, 0] == 0.0
    assert normalized.data[1, 2, 3] == 1.0


def test_sanitize_replaces_nan_and_inf():
    volume = np.ones((2, 2, 2), dtype=np.float32)
    volume[0, 0, 0] = np.nan
    volume[1, 1, 1] = np.inf
    volume[0, 1, 0] = -np.inf
    clean, n_bad = sanitize_volume(volume)
    assert n_bad == 3
    assert np.isfinite(clean).all()
    assert clean[0, 0, 0] == 0.0
    assert clean[1, 1, 1] == 0.0
    assert np.isnan(volume[0, 0, 0])


def test_sanitize_leaves_finite_volume_untouched():
    volume = np.zeros((2, 2, 2), dtype=np.float32)
    clean, n_bad = sanitize_volume(volume)
    assert n_bad == 0
    assert clean is volume


def test_quantize_rounds_half_up_and_clips():
    data = np.array([-0.2, 0.0, 0.5, 1.0, 1.3], dtype=np.float64)
    assert quantize_uint8(data).tolist() == [0, 0, 128, 255, 255]
    assert quantize_uint8(data).dtype == np.uint8


def test_normalize_survives_ranges_wider_than_float32():
    volume = np.array([-3e38, 0.0, 3e38], dtype=np.float32)
    normalized = normalize_volume(volume)
    assert normalized.data.dtype == np.float32
    assert np.isfinite(normalized.data).all()
    np.testing.assert_array_equal(normalized.data, [0.0, 0.5, 1.0])

    restored = denormalize_volume(normalized.data, normalized.vmin, normalized.vmax)
    assert restored.dtype == np.float32
    np.testing.assert_array_equal(restored, volume)


def test_denormalize_stays_within_source_range():
    big = float(np.finfo(np.float32).max)
    restored = denormalize_volume(np.array([0.0, 1.0, 1.0000001], dtype=np.float32), -big, big)
    assert np.isfinite(restored).all()
    assert restored.max() == np.float32(big)
