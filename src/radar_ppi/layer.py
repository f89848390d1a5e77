"""
Raster layer: values plus an explicit per-cell state.
"""

from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np

from .exceptions import InvalidArgument
from .polar import CellState


@dataclass(frozen=True, eq=False, repr=False)
class Layer:
    """
    One named raster of a PPI or composite.

    Attributes
    ----------
    values : np.ndarray
        float64 values, shape (ny, nx), NaN wherever the cell is not PRESENT
    state : np.ndarray
        int8 CellState codes, shape (ny, nx)

    Both arrays are read-only.
    """

    values: np.ndarray
    state: np.ndarray

    def __post_init__(self):
        state = np.array(self.state, dtype=np.int8, copy=True)
        values = np.array(self.values, dtype=np.float64, copy=True)
        if values.ndim != 2 or values.shape != state.shape:
            raise InvalidArgument(
                f"Layer values {values.shape} and state {state.shape} must be 2D arrays of equal shape"
            )
        values[state != CellState.PRESENT] = np.nan
        values.flags.writeable = False
        state.flags.writeable = False
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "state", state)

    @classmethod
    def absent(cls, shape: Tuple[int, int]) -> "Layer":
        """A layer with every cell NODATA."""
        return cls(np.full(shape, np.nan), np.full(shape, CellState.NODATA, dtype=np.int8))

    @property
    def shape(self) -> Tuple[int, int]:
        return self.values.shape

    @property
    def present(self) -> np.ndarray:
        return self.state == CellState.PRESENT

    @property
    def nodata(self) -> np.ndarray:
        return self.state == CellState.NODATA

    @property
    def undetect(self) -> np.ndarray:
        return self.state == CellState.UNDETECT

    def masked(self) -> np.ma.MaskedArray:
        """Values as a masked array, masking NODATA and UNDETECT cells."""
        return np.ma.masked_array(self.values, mask=~self.present)

    def filled(self, nodata: float = np.nan, undetect: float = np.nan) -> np.ndarray:
        """Plain float array with a fill value for each kind of absent cell."""
        out = np.array(self.values, copy=True)
        out[self.nodata] = nodata
        out[self.undetect] = undetect
        return out

    def count(self) -> Dict[str, int]:
        """Number of cells in each state."""
        return {s.name.lower(): int(np.count_nonzero(self.state == s)) for s in CellState}

    def equals(self, other: "Layer") -> bool:
        """True when states and present values are identical."""
        return (
            isinstance(other, Layer)
            and np.array_equal(self.state, other.state)
            and np.array_equal(self.values, other.values, equal_nan=True)
        )

    def __repr__(self) -> str:
        counts = ", ".join(f"{k}={v:,}" for k, v in self.count().items())
        return f"Layer(shape={self.shape}, {counts})"
