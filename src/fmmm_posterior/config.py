from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Literal, Mapping

PARAMETERS = ("nu", "phi", "z", "chi", "sigma", "eta", "xi")

ZeroSpreadPolicy = Literal["exclude", "raise"]


def _default_stems() -> dict[str, str]:
    return {
        "nu": "Nu",
        "phi": "Phi",
        "z": "Z",
        "chi": "Chi",
        "sigma": "Sigma",
        "eta": "Eta",
        "xi": "Xi",
    }


@dataclass(frozen=True)
class ChunkLayout:
    """On-disk naming of chunk files: ``<directory>/<stem><index><suffix>``."""

    stems: dict[str, str] = field(default_factory=_default_stems)
    suffix: str = ".npy"
    mmap: bool = True

    def __post_init__(self) -> None:
        missing = [p for p in PARAMETERS if p not in self.stems]
        if missing:
            raise ValueError(f"ChunkLayout.stems is missing entries for {missing}.")
        if not self.suffix.startswith("."):
            raise ValueError("ChunkLayout.suffix must start with '.'.")

    def stem(self, parameter: str) -> str:
        if parameter not in self.stems:
            raise KeyError(f"Unknown parameter '{parameter}'. Known: {sorted(self.stems)}")
        return self.stems[parameter]

    def filename(self, parameter: str, index: int) -> str:
        return f"{self.stem(parameter)}{int(index)}{self.suffix}"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ChunkLayout":
        data = dict(data)
        if "stems" in data:
            # Partial overrides keep the default stem for every other parameter.
            data["stems"] = {**_default_stems(), **dict(data["stems"])}
        return _from_mapping(cls, data)


@dataclass(frozen=True)
class IntervalSettings:
    """Probabilities used by the pointwise and simultaneous credible intervals."""

    probabilities: tuple[float, float, float] = (0.025, 0.5, 0.975)
    simultaneous_level: float = 0.95
    zero_spread: ZeroSpreadPolicy = "exclude"

    def __post_init__(self) -> None:
        p = tuple(float(v) for v in self.probabilities)
        if len(p) != 3:
            raise ValueError("probabilities must hold exactly (lower, median, upper).")
        if not (0.0 < p[0] < p[1] < p[2] < 1.0):
            raise ValueError("probabilities must be strictly increasing inside (0, 1).")
        object.__setattr__(self, "probabilities", p)
        if not (0.0 < float(self.simultaneous_level) < 1.0):
            raise ValueError("simultaneous_level must be in (0, 1).")
        if self.zero_spread not in ("exclude", "raise"):
            raise ValueError(f"Unsupported zero_spread policy: {self.zero_spread!r}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "IntervalSettings":
        data = dict(data)
        if "probabilities" in data:
            data["probabilities"] = tuple(data["probabilities"])
        return _from_mapping(cls, data)


def _from_mapping(cls, data: Mapping[str, Any]):
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {unknown}")
    return cls(**dict(data))


DEFAULT_LAYOUT = ChunkLayout()
DEFAULT_INTERVALS = IntervalSettings()
