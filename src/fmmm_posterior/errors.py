from __future__ import annotations


class PostProcessingError(Exception):
    """Base class for failures while summarizing stored posterior draws.

    The optional context fields are appended to the message so that an aborted run
    points at the parameter, chunk file or grid cell that caused it.
    """

    def __init__(
        self,
        message: str,
        *,
        parameter: str | None = None,
        file_index: int | None = None,
        coordinate: tuple[int, ...] | None = None,
    ) -> None:
        self._base_message = message
        self.parameter = parameter
        self.file_index = file_index
        self.coordinate = coordinate
        context = []
        if parameter is not None:
            context.append(f"parameter={parameter!r}")
        if file_index is not None:
            context.append(f"file_index={int(file_index)}")
        if coordinate is not None:
            context.append(f"coordinate={tuple(int(c) for c in coordinate)}")
        if context:
            message = f"{message} ({', '.join(context)})"
        super().__init__(message)

    def __reduce__(self):
        # Keep the context fields when errors cross process boundaries.
        return (
            _rebuild,
            (type(self), self._base_message, self.parameter, self.file_index, self.coordinate),
        )


class ShapeMismatchError(PostProcessingError, ValueError):
    """A chunk file disagrees with the canonical per-draw shape set by chunk 0."""


class DomainError(PostProcessingError, ValueError):
    """A value lies outside the domain where the computation is defined."""


def _rebuild(cls, message, parameter, file_index, coordinate):
    return cls(message, parameter=parameter, file_index=file_index, coordinate=coordinate)
