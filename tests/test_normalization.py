import numpy as np
import pytest

from normalization import (
    DEFAULT_STATS,
    NormalizationStats,
    denormalize,
    load_normalization_params,
    normalize,
    save_normalization_params,
)


def test_roundtrip_recovers_positions():
    rng = np.random.default_rng(0)
    vertices = rng.uniform(-5.0, 5.0, size=(64, 3))
    s = DEFAULT_STATS
    encoded = normalize(vertices, s.pos_mean, s.pos_std)
    np.testing.assert_allclose(denormalize(encoded, s.pos_mean, s.pos_std), vertices, rtol=1e-12, atol=1e-12)


def test_normalize_matches_per_channel_formula():
    vertex = np.array([1.0, 2.0, 3.0])
    out = normalize(vertex, (0.5, 1.0, -1.0), (2.0, 4.0, 0.5))
    np.testing.assert_allclose(out, [0.25, 0.25, 8.0])
    np.testing.assert_allclose(denormalize(out, (0.5, 1.0, -1.0), (2.0, 4.0, 0.5)), vertex)


def test_disabled_codec_is_identity():
    vertices = np.array([[0.3, -1.0, 7.5], [1e6, -1e-6, 0.0]])
    s = DEFAULT_STATS
    normalized = normalize(vertices, s.pos_mean, s.pos_std, enabled=False)
    denormalized = denormalize(vertices, s.disp_mean, s.disp_std, enabled=False)
    assert np.array_equal(normalized, vertices)
    assert np.array_equal(denormalized, vertices)
    assert normalized is not vertices


def test_zero_std_is_rejected_at_construction():
    with pytest.raises(ValueError, match="pos_std"):
        NormalizationStats(pos_mean=(0, 0, 0), pos_std=(1, 0, 1), disp_mean=(0, 0, 0), disp_std=(1, 1, 1))
    with pytest.raises(ValueError, match="disp_std"):
        NormalizationStats(pos_mean=(0, 0, 0), pos_std=(1, 1, 1), disp_mean=(0, 0, 0), disp_std=(0, 0, 0))


def test_stats_require_three_components():
    with pytest.raises(ValueError, match="3 components"):
        NormalizationStats(pos_mean=(0, 0), pos_std=(1, 1, 1), disp_mean=(0, 0, 0), disp_std=(1, 1, 1))


def test_default_stats_hold_training_constants():
    assert DEFAULT_STATS.pos_mean == pytest.approx((0.12910223, -0.03005729, -0.2029736))
    assert DEFAULT_STATS.disp_std == pytest.approx((0.01928047, 0.02270363, 0.01108402))


def test_save_and_load_params(tmp_path):
    path = tmp_path / "normalization_params.pkl"
    save_normalization_params(DEFAULT_STATS, path)
    loaded = load_normalization_params(path)
    for field_name in ("pos_mean", "pos_std", "disp_mean", "disp_std"):
        assert getattr(loaded, field_name) == pytest.approx(getattr(DEFAULT_STATS, field_name), rel=1e-6)


def test_load_missing_params_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_normalization_params(tmp_path / "missing.pkl")
