from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import numpy as np

from .config import DEFAULT_LAYOUT, ChunkLayout
from .errors import DomainError, ShapeMismatchError
from .samples import PosteriorDraw, PosteriorSamples

logger = logging.getLogger(__name__)

CORE_PARAMETERS = ("nu", "phi", "z", "chi", "sigma")
COVARIATE_PARAMETERS = ("eta", "xi")


def chunk_path(directory: str | Path, parameter: str, index: int, *, layout: ChunkLayout = DEFAULT_LAYOUT) -> Path:
    return Path(directory).expanduser() / layout.filename(parameter, index)


def _open_chunk(path: Path, *, parameter: str, index: int, mmap: bool) -> np.ndarray:
    if not path.is_file():
        raise FileNotFoundError(f"Missing chunk file {path} (parameter={parameter!r}, file_index={int(index)}).")
    try:
        arr = np.load(path, mmap_mode="r" if mmap else None, allow_pickle=False)
    except (OSError, ValueError) as e:
        raise OSError(f"Unreadable chunk file {path} (parameter={parameter!r}, file_index={int(index)}).") from e
    if not isinstance(arr, np.ndarray):
        raise OSError(f"Chunk file {path} does not hold a single array (parameter={parameter!r}, file_index={int(index)}).")
    if arr.ndim < 1:
        raise ShapeMismatchError(
            f"Chunk file {path} has no draw axis (shape {arr.shape}).",
            parameter=parameter,
            file_index=index,
        )
    return arr


def chunk_layout_of(
    directory: str | Path,
    parameter: str,
    n_files: int,
    *,
    n_draws_per_file: int | None = None,
    layout: ChunkLayout = DEFAULT_LAYOUT,
) -> tuple[tuple[int, ...], list[int]]:
    """Read only the chunk headers and return (per-draw shape, per-file draw counts).

    Chunk 0 fixes the canonical per-draw shape; every later chunk must match it exactly.
    Only the leading (draw) axis may differ between files, unless `n_draws_per_file`
    pins it.
    """
    if int(n_files) < 1:
        raise ValueError("n_files must be at least 1.")
    if n_draws_per_file is not None and int(n_draws_per_file) < 1:
        raise ValueError("n_draws_per_file must be positive when provided.")
    directory = Path(directory)

    canonical: tuple[int, ...] | None = None
    counts: list[int] = []
    for i in range(int(n_files)):
        path = chunk_path(directory, parameter, i, layout=layout)
        head = _open_chunk(path, parameter=parameter, index=i, mmap=True)
        if canonical is None:
            canonical = tuple(int(d) for d in head.shape[1:])
        elif tuple(head.shape[1:]) != canonical:
            raise ShapeMismatchError(
                f"Per-draw shape {tuple(head.shape[1:])} disagrees with chunk 0 shape {canonical}.",
                parameter=parameter,
                file_index=i,
            )
        if n_draws_per_file is not None and int(head.shape[0]) != int(n_draws_per_file):
            raise ShapeMismatchError(
                f"Chunk holds {int(head.shape[0])} draws, expected {int(n_draws_per_file)}.",
                parameter=parameter,
                file_index=i,
            )
        counts.append(int(head.shape[0]))
        del head
    assert canonical is not None
    return canonical, counts


def load_parameter(
    directory: str | Path,
    parameter: str,
    n_files: int,
    *,
    n_draws_per_file: int | None = None,
    layout: ChunkLayout = DEFAULT_LAYOUT,
) -> np.ndarray:
    """Reassemble the numbered chunk files of one parameter into a contiguous array.

    The result has the draw axis first; chunk i occupies the slab immediately after
    chunk i-1, so global draw order is file index first, then position within file.
    Destination offsets come from the per-file draw counts, not from append order.
    """
    canonical, counts = chunk_layout_of(
        directory, parameter, n_files, n_draws_per_file=n_draws_per_file, layout=layout
    )
    offsets = np.concatenate([[0], np.cumsum(counts)]).astype(int)
    total = int(offsets[-1])
    if total == 0:
        raise DomainError("Chunk files hold no draws.", parameter=parameter)

    out = np.empty((total,) + canonical, dtype=float)
    for i in range(int(n_files)):
        path = chunk_path(directory, parameter, i, layout=layout)
        chunk = _open_chunk(path, parameter=parameter, index=i, mmap=layout.mmap)
        lo, hi = int(offsets[i]), int(offsets[i + 1])
        if chunk.shape != (hi - lo,) + canonical:
            # The file changed between the header pass and this read.
            raise ShapeMismatchError(
                f"Chunk shape {chunk.shape} changed while loading.",
                parameter=parameter,
                file_index=i,
            )
        out[lo:hi] = chunk
        logger.debug("loaded %s: %d draws at offset %d", path.name, hi - lo, lo)
        del chunk

    logger.info("reassembled %s from %d files: %d draws of shape %s", parameter, int(n_files), total, canonical)
    return out


def load_posterior_samples(
    directory: str | Path,
    n_files: int,
    *,
    covariate_adjusted: bool = False,
    n_draws_per_file: int | None = None,
    layout: ChunkLayout = DEFAULT_LAYOUT,
) -> PosteriorSamples:
    """Load every model parameter and return one shape-checked `PosteriorSamples`."""
    names = CORE_PARAMETERS + (COVARIATE_PARAMETERS if covariate_adjusted else ())
    arrays = {
        name: load_parameter(directory, name, n_files, n_draws_per_file=n_draws_per_file, layout=layout)
        for name in names
    }
    return PosteriorSamples(**arrays)


def write_chunks(
    directory: str | Path,
    parameter: str,
    draws: np.ndarray,
    n_files: int,
    *,
    layout: ChunkLayout = DEFAULT_LAYOUT,
) -> list[Path]:
    """Split `draws` along the draw axis into `n_files` near-equal chunk files."""
    draws = np.asarray(draws, dtype=float)
    if draws.ndim < 1:
        raise ValueError("draws must have a leading draw axis.")
    if int(n_files) < 1 or int(n_files) > max(int(draws.shape[0]), 1):
        raise ValueError("n_files must be in [1, number of draws].")
    directory = Path(directory).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    paths = []
    for i, slab in enumerate(np.array_split(draws, int(n_files), axis=0)):
        path = chunk_path(directory, parameter, i, layout=layout)
        np.save(path, np.ascontiguousarray(slab), allow_pickle=False)
        paths.append(path)
    return paths


def write_posterior_samples(
    directory: str | Path,
    samples: PosteriorSamples,
    n_files: int,
    *,
    layout: ChunkLayout = DEFAULT_LAYOUT,
) -> None:
    names = CORE_PARAMETERS + (COVARIATE_PARAMETERS if samples.covariate_adjusted else ())
    for name in names:
        write_chunks(directory, name, getattr(samples, name), n_files, layout=layout)


class ChunkedDraws:
    """Lazy, restartable, finite sequence of posterior draws backed by chunk files.

    Only chunk headers are read on construction (to validate shapes and count the
    draws); iteration loads one file index at a time for all parameters, so memory
    is bounded by the largest chunk rather than the whole chain.
    """

    def __init__(
        self,
        directory: str | Path,
        n_files: int,
        *,
        covariate_adjusted: bool = False,
        n_draws_per_file: int | None = None,
        layout: ChunkLayout = DEFAULT_LAYOUT,
    ) -> None:
        self.directory = Path(directory)
        self.n_files = int(n_files)
        self.covariate_adjusted = bool(covariate_adjusted)
        self.layout = layout
        self.parameters = CORE_PARAMETERS + (COVARIATE_PARAMETERS if covariate_adjusted else ())

        counts_ref: list[int] | None = None
        for name in self.parameters:
            _, counts = chunk_layout_of(
                self.directory, name, self.n_files, n_draws_per_file=n_draws_per_file, layout=layout
            )
            if counts_ref is None:
                counts_ref = counts
                continue
            for i, (a, b) in enumerate(zip(counts_ref, counts, strict=True)):
                if a != b:
                    raise ShapeMismatchError(
                        f"Chunk holds {b} draws but {self.parameters[0]} chunk holds {a}.",
                        parameter=name,
                        file_index=i,
                    )
        assert counts_ref is not None
        self.counts = counts_ref
        if sum(self.counts) == 0:
            raise DomainError("Chunk files hold no draws.", parameter=self.parameters[0])

    @property
    def n_draws(self) -> int:
        return int(sum(self.counts))

    def __len__(self) -> int:
        return self.n_draws

    def iter_chunks(self) -> Iterator[PosteriorSamples]:
        offset = 0
        for i in range(self.n_files):
            if self.counts[i] == 0:
                continue
            arrays = {}
            for name in self.parameters:
                path = chunk_path(self.directory, name, i, layout=self.layout)
                arrays[name] = np.asarray(_open_chunk(path, parameter=name, index=i, mmap=self.layout.mmap), dtype=float)
            try:
                chunk = PosteriorSamples(**arrays)
            except (DomainError, ShapeMismatchError) as e:
                # Report the file and the global draw position, not the chunk-local one.
                coord = None
                if e.coordinate is not None:
                    coord = (int(e.coordinate[0]) + offset,) + tuple(e.coordinate[1:])
                raise type(e)(e._base_message, parameter=e.parameter, file_index=i, coordinate=coord) from e
            offset += self.counts[i]
            yield chunk

    def __iter__(self) -> Iterator[PosteriorDraw]:
        for chunk in self.iter_chunks():
            yield from chunk
