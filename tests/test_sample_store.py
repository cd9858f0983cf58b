import numpy as np
import pytest

from fmmm_posterior.config import ChunkLayout
from fmmm_posterior.errors import DomainError, ShapeMismatchError
from fmmm_posterior.sample_store import (
    ChunkedDraws,
    chunk_layout_of,
    load_parameter,
    load_posterior_samples,
    write_chunks,
    write_posterior_samples,
)


def test_two_chunks_reassemble_in_order(tmp_path):
    a = np.arange(18, dtype=float).reshape(3, 2, 3)
    b = -np.arange(18, dtype=float).reshape(3, 2, 3) - 1.0
    np.save(tmp_path / "Nu0.npy", a)
    np.save(tmp_path / "Nu1.npy", b)

    out = load_parameter(tmp_path, "nu", 2)
    np.testing.assert_array_equal(out, np.concatenate([a, b], axis=0))


def test_uneven_chunks_use_per_file_offsets(tmp_path):
    a = np.full((2, 3, 1), 1.0)
    b = np.full((4, 3, 1), 2.0)
    np.save(tmp_path / "Chi0.npy", a)
    np.save(tmp_path / "Chi1.npy", b)

    shape, counts = chunk_layout_of(tmp_path, "chi", 2)
    assert shape == (3, 1)
    assert counts == [2, 4]

    out = load_parameter(tmp_path, "chi", 2)
    assert out.shape == (6, 3, 1)
    assert np.all(out[:2] == 1.0) and np.all(out[2:] == 2.0)

    with pytest.raises(ShapeMismatchError) as exc:
        load_parameter(tmp_path, "chi", 2, n_draws_per_file=3)
    assert exc.value.file_index == 0


def test_scalar_parameter_chunks(tmp_path):
    np.save(tmp_path / "Sigma0.npy", np.array([1.0, 2.0]))
    np.save(tmp_path / "Sigma1.npy", np.array([3.0]))
    out = load_parameter(tmp_path, "sigma", 2)
    np.testing.assert_array_equal(out, [1.0, 2.0, 3.0])


def test_shape_mismatch_names_parameter_and_file(tmp_path):
    np.save(tmp_path / "Nu0.npy", np.zeros((3, 2, 3)))
    np.save(tmp_path / "Nu1.npy", np.zeros((3, 2, 4)))
    with pytest.raises(ShapeMismatchError) as exc:
        load_parameter(tmp_path, "nu", 2)
    assert exc.value.parameter == "nu"
    assert exc.value.file_index == 1
    assert "file_index=1" in str(exc.value)


def test_missing_chunk_file(tmp_path):
    np.save(tmp_path / "Nu0.npy", np.zeros((3, 2, 3)))
    with pytest.raises(FileNotFoundError, match="Nu1.npy"):
        load_parameter(tmp_path, "nu", 2)


def test_unreadable_chunk_file(tmp_path):
    (tmp_path / "Nu0.npy").write_bytes(b"not an array")
    with pytest.raises(OSError) as exc:
        load_parameter(tmp_path, "nu", 1)
    assert exc.value.__cause__ is not None


def test_write_chunks_splits_along_draw_axis(tmp_path):
    draws = np.arange(7 * 2, dtype=float).reshape(7, 2)
    paths = write_chunks(tmp_path, "z", draws, 3)
    assert [p.name for p in paths] == ["Z0.npy", "Z1.npy", "Z2.npy"]
    assert [np.load(p).shape[0] for p in paths] == [3, 2, 2]
    np.testing.assert_array_equal(load_parameter(tmp_path, "z", 3), draws)

    with pytest.raises(ValueError):
        write_chunks(tmp_path, "z", draws, 8)


def test_custom_layout(tmp_path):
    layout = ChunkLayout.from_mapping({"stems": {"nu": "MeanCoef"}, "mmap": False})
    draws = np.ones((4, 2, 3))
    write_chunks(tmp_path, "nu", draws, 2, layout=layout)
    assert (tmp_path / "MeanCoef1.npy").is_file()
    np.testing.assert_array_equal(load_parameter(tmp_path, "nu", 2, layout=layout), draws)


def test_posterior_samples_round_trip(tmp_path, make_samples):
    samples = make_samples(S=7, C=2)
    write_posterior_samples(tmp_path, samples, 3)

    loaded = load_posterior_samples(tmp_path, 3, covariate_adjusted=True)
    assert loaded.n_draws == 7
    for name in ("nu", "phi", "z", "chi", "sigma", "eta", "xi"):
        np.testing.assert_array_equal(getattr(loaded, name), getattr(samples, name))

    plain = load_posterior_samples(tmp_path, 3)
    assert not plain.covariate_adjusted


def test_chunked_draws_stream_in_global_order(tmp_path, make_samples):
    samples = make_samples(S=5)
    write_posterior_samples(tmp_path, samples, 2)

    lazy = ChunkedDraws(tmp_path, 2)
    assert len(lazy) == 5
    assert lazy.counts == [3, 2]
    assert [c.n_draws for c in lazy.iter_chunks()] == [3, 2]

    # Restartable: two passes see the same draws.
    for _ in range(2):
        for s, draw in enumerate(lazy):
            np.testing.assert_array_equal(draw.phi, samples.phi[s])
            assert draw.sigma == pytest.approx(float(samples.sigma[s]))


def test_chunked_draws_reject_disagreeing_counts(tmp_path, make_samples):
    samples = make_samples(S=6)
    write_posterior_samples(tmp_path, samples, 2)
    np.save(tmp_path / "Chi0.npy", np.asarray(samples.chi[:2]))
    np.save(tmp_path / "Chi1.npy", np.asarray(samples.chi[2:]))

    with pytest.raises(ShapeMismatchError) as exc:
        ChunkedDraws(tmp_path, 2)
    assert exc.value.parameter == "chi"
    assert exc.value.file_index == 0


def test_chunked_draws_report_file_and_global_draw(tmp_path, make_samples):
    samples = make_samples(S=6)
    write_posterior_samples(tmp_path, samples, 2)
    np.save(tmp_path / "Sigma1.npy", np.array([1.0, -1.0, 1.0]))

    lazy = ChunkedDraws(tmp_path, 2)
    with pytest.raises(DomainError) as exc:
        list(lazy)
    assert exc.value.parameter == "sigma"
    assert exc.value.file_index == 1
    assert exc.value.coordinate == (4,)
    assert "file_index=1" in str(exc.value)
