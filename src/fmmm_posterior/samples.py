from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Iterator, Sequence

import numpy as np

from .errors import DomainError, ShapeMismatchError


def to_zero_based(index: int, size: int, *, kind: str) -> int:
    """Convert an external 1-based cluster/subject/covariate index to a 0-based offset."""
    if isinstance(index, (bool, np.bool_)) or int(index) != index:
        raise IndexError(f"{kind} index must be an integer, got {index!r}.")
    i = int(index)
    if i < 1 or i > int(size):
        raise IndexError(f"{kind} index {i} out of range 1..{int(size)}.")
    return i - 1


def _as_float(name: str, x, ndim: int) -> np.ndarray:
    a = np.asarray(x, dtype=float)
    if a.ndim != ndim:
        raise ShapeMismatchError(f"{name} must have {ndim} dimensions, got shape {a.shape}.", parameter=name)
    return a


def _check_block_shapes(
    *,
    nu: np.ndarray,
    phi: np.ndarray,
    z: np.ndarray,
    chi: np.ndarray,
    eta: np.ndarray | None,
    xi: np.ndarray | None,
    lead: tuple[int, ...],
) -> None:
    """Cross-check the parameter blocks, with `lead` leading axes (0 for a draw, 1 for a set)."""
    nl = len(lead)
    K, P = nu.shape[nl:]
    N = phi.shape[-1]
    I = z.shape[nl]
    expected = {
        "nu": (nu, lead + (K, P)),
        "phi": (phi, lead + (K, P, N)),
        "z": (z, lead + (I, K)),
        "chi": (chi, lead + (I, N)),
    }
    if (eta is None) != (xi is None):
        raise ValueError("Covariate-adjusted draws need both eta and xi (or neither).")
    if eta is not None and xi is not None:
        C = eta.shape[-1]
        expected["eta"] = (eta, lead + (K, P, C))
        expected["xi"] = (xi, lead + (K, P, N, C))
    for name, (arr, shape) in expected.items():
        if arr.shape != shape:
            raise ShapeMismatchError(f"{name} has shape {arr.shape}, expected {shape}.", parameter=name)


@dataclass(frozen=True)
class PosteriorDraw:
    """One posterior draw of the functional mixed-membership model.

    Shapes: nu (K, P), phi (K, P, N), z (I, K), chi (I, N), sigma scalar variance,
    and for covariate-adjusted models eta (K, P, C) and xi (K, P, N, C).
    """

    nu: np.ndarray
    phi: np.ndarray
    z: np.ndarray
    chi: np.ndarray
    sigma: float
    eta: np.ndarray | None = None
    xi: np.ndarray | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "nu", _as_float("nu", self.nu, 2))
        object.__setattr__(self, "phi", _as_float("phi", self.phi, 3))
        object.__setattr__(self, "z", _as_float("z", self.z, 2))
        object.__setattr__(self, "chi", _as_float("chi", self.chi, 2))
        object.__setattr__(self, "sigma", float(self.sigma))
        if self.eta is not None:
            object.__setattr__(self, "eta", _as_float("eta", self.eta, 3))
        if self.xi is not None:
            object.__setattr__(self, "xi", _as_float("xi", self.xi, 4))
        _check_block_shapes(nu=self.nu, phi=self.phi, z=self.z, chi=self.chi, eta=self.eta, xi=self.xi, lead=())

    @property
    def covariate_adjusted(self) -> bool:
        return self.eta is not None

    @property
    def n_clusters(self) -> int:
        return int(self.nu.shape[0])

    @property
    def n_basis(self) -> int:
        return int(self.nu.shape[1])

    @property
    def n_subjects(self) -> int:
        return int(self.z.shape[0])

    @property
    def n_components(self) -> int:
        return int(self.phi.shape[2])

    @property
    def n_covariates(self) -> int:
        return 0 if self.eta is None else int(self.eta.shape[2])


@dataclass(frozen=True)
class PosteriorSamples:
    """Contiguous posterior draws, draw axis first.

    Built once (usually by `sample_store.load_posterior_samples`) and read-only
    afterwards. Every draw shares K, P, I, N (and C); every `sigma` is positive.
    """

    nu: np.ndarray
    phi: np.ndarray
    z: np.ndarray
    chi: np.ndarray
    sigma: np.ndarray
    eta: np.ndarray | None = None
    xi: np.ndarray | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "nu", _as_float("nu", self.nu, 3))
        object.__setattr__(self, "phi", _as_float("phi", self.phi, 4))
        object.__setattr__(self, "z", _as_float("z", self.z, 3))
        object.__setattr__(self, "chi", _as_float("chi", self.chi, 3))
        object.__setattr__(self, "sigma", _as_float("sigma", self.sigma, 1))
        if self.eta is not None:
            object.__setattr__(self, "eta", _as_float("eta", self.eta, 4))
        if self.xi is not None:
            object.__setattr__(self, "xi", _as_float("xi", self.xi, 5))

        S = int(self.nu.shape[0])
        if S == 0:
            raise DomainError("Posterior sample set is empty.", parameter="nu")
        for f in fields(self):
            arr = getattr(self, f.name)
            if arr is not None and arr.shape[0] != S:
                raise ShapeMismatchError(
                    f"{f.name} holds {arr.shape[0]} draws but nu holds {S}.",
                    parameter=f.name,
                )
        _check_block_shapes(nu=self.nu, phi=self.phi, z=self.z, chi=self.chi, eta=self.eta, xi=self.xi, lead=(S,))

        bad = np.flatnonzero(~(self.sigma > 0.0))
        if bad.size:
            raise DomainError(
                f"Residual variance must be positive, got {self.sigma[bad[0]]!r}.",
                parameter="sigma",
                coordinate=(int(bad[0]),),
            )
        for f in fields(self):
            arr = getattr(self, f.name)
            if arr is not None:
                ro = arr.view()
                ro.setflags(write=False)
                object.__setattr__(self, f.name, ro)

    @classmethod
    def stack(cls, draws: Sequence[PosteriorDraw]) -> "PosteriorSamples":
        """Stack individual draws into a sample set."""
        if len(draws) == 0:
            raise DomainError("Posterior sample set is empty.")
        adjusted = draws[0].covariate_adjusted
        return cls(
            nu=np.stack([d.nu for d in draws]),
            phi=np.stack([d.phi for d in draws]),
            z=np.stack([d.z for d in draws]),
            chi=np.stack([d.chi for d in draws]),
            sigma=np.array([d.sigma for d in draws], dtype=float),
            eta=np.stack([d.eta for d in draws]) if adjusted else None,
            xi=np.stack([d.xi for d in draws]) if adjusted else None,
        )

    @property
    def covariate_adjusted(self) -> bool:
        return self.eta is not None

    @property
    def n_draws(self) -> int:
        return int(self.nu.shape[0])

    @property
    def n_clusters(self) -> int:
        return int(self.nu.shape[1])

    @property
    def n_basis(self) -> int:
        return int(self.nu.shape[2])

    @property
    def n_subjects(self) -> int:
        return int(self.z.shape[1])

    @property
    def n_components(self) -> int:
        return int(self.phi.shape[3])

    @property
    def n_covariates(self) -> int:
        return 0 if self.eta is None else int(self.eta.shape[3])

    def __len__(self) -> int:
        return self.n_draws

    def __iter__(self) -> Iterator[PosteriorDraw]:
        for s in range(self.n_draws):
            yield self.draw(s)

    def draw(self, s: int) -> PosteriorDraw:
        """Return draw `s` (0-based position in global draw order)."""
        s = int(s)
        if s < 0 or s >= self.n_draws:
            raise IndexError(f"draw index {s} out of range 0..{self.n_draws - 1}.")
        return PosteriorDraw(
            nu=self.nu[s],
            phi=self.phi[s],
            z=self.z[s],
            chi=self.chi[s],
            sigma=float(self.sigma[s]),
            eta=None if self.eta is None else self.eta[s],
            xi=None if self.xi is None else self.xi[s],
        )

    def posterior_mean(self) -> PosteriorDraw:
        """Plug-in parameter set: the elementwise posterior mean of every block."""
        return PosteriorDraw(
            nu=self.nu.mean(axis=0),
            phi=self.phi.mean(axis=0),
            z=self.z.mean(axis=0),
            chi=self.chi.mean(axis=0),
            sigma=float(self.sigma.mean()),
            eta=None if self.eta is None else self.eta.mean(axis=0),
            xi=None if self.xi is None else self.xi.mean(axis=0),
        )
