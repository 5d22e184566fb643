from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from .errors import ShapeMismatchError
from .half import float16_bits_to_float32, float32_to_float16_bits


SUPPORTED_DTYPES = ("float32", "float16")


@dataclass(frozen=True)
class Tensor:
    """
    Immutable, named, shape-carrying numeric buffer.

    `data` is always a read-only NumPy array whose shape is the tensor shape and whose
    dtype is float32 or float16. Construct through `from_buffer` / `from_array` so the
    length == product(shape) invariant is checked once.
    """

    name: str
    data: np.ndarray

    @classmethod
    def from_buffer(
        cls,
        name: str,
        buffer: Union[np.ndarray, Sequence[float], bytes],
        shape: Sequence[int],
        dtype: str = "float32",
    ) -> "Tensor":
        """
        Wrap a flat buffer. For `dtype="float16"` a uint16 buffer is read as raw bit patterns.
        """

        if dtype not in SUPPORTED_DTYPES:
            raise ValueError(f"Unsupported tensor dtype {dtype!r}; expected one of {SUPPORTED_DTYPES}")
        shape = tuple(int(d) for d in shape)
        if any(d < 0 for d in shape):
            raise ShapeMismatchError(f"Tensor {name!r}: negative dimension in shape {shape}")

        if isinstance(buffer, (bytes, bytearray, memoryview)):
            flat = np.frombuffer(buffer, dtype=np.float16 if dtype == "float16" else np.float32)
        else:
            flat = np.asarray(buffer)
            if dtype == "float16":
                if flat.dtype == np.uint16:
                    flat = flat.view(np.float16)
                elif flat.dtype != np.float16:
                    flat = float32_to_float16_bits(flat).view(np.float16)
            else:
                flat = flat.astype(np.float32)
        flat = flat.reshape(-1)

        expected = int(np.prod(shape, dtype=np.int64)) if shape else 1
        if flat.size != expected:
            raise ShapeMismatchError(
                f"Tensor {name!r}: buffer has {flat.size} elements but shape {shape} needs {expected}"
            )
        return cls._frozen(name, flat.reshape(shape))

    @classmethod
    def from_array(cls, name: str, array: np.ndarray) -> "Tensor":
        a = np.asarray(array)
        if a.dtype == np.float16:
            return cls._frozen(name, a)
        return cls._frozen(name, a.astype(np.float32))

    @classmethod
    def _frozen(cls, name: str, array: np.ndarray) -> "Tensor":
        data = np.array(array, copy=True)
        data.setflags(write=False)
        return cls(name=name, data=data)

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(int(d) for d in self.data.shape)

    @property
    def dtype(self) -> str:
        return "float16" if self.data.dtype == np.float16 else "float32"

    @property
    def rank(self) -> int:
        return self.data.ndim

    def __len__(self) -> int:
        return int(self.data.size)

    def at(self, *index: int) -> float:
        """Element access by full multi-dimensional index (negative indices not allowed)."""
        if len(index) != self.rank:
            raise ShapeMismatchError(f"Tensor {self.name!r}: index {index} does not match rank {self.rank}")
        for i, (idx, dim) in enumerate(zip(index, self.shape)):
            if idx < 0 or idx >= dim:
                raise IndexError(f"Tensor {self.name!r}: index {idx} out of range for axis {i} (size {dim})")
        return float(self.data[index])

    def expect_rank(self, rank: int) -> "Tensor":
        if self.rank != rank:
            raise ShapeMismatchError(f"Tensor {self.name!r}: expected rank {rank}, got shape {self.shape}")
        return self

    def expect_shape(self, shape: Sequence[Optional[int]]) -> "Tensor":
        """`None` entries match any size."""
        expected = tuple(shape)
        ok = len(expected) == self.rank and all(e is None or e == d for e, d in zip(expected, self.shape))
        if not ok:
            shown = tuple("?" if e is None else e for e in expected)
            raise ShapeMismatchError(f"Tensor {self.name!r}: expected shape {shown}, got {self.shape}")
        return self

    def to_float32(self) -> np.ndarray:
        """Float32 copy of the data; float16 tensors are decoded bit-exactly."""
        if self.data.dtype == np.float16:
            return float16_bits_to_float32(self.data)
        return np.array(self.data, dtype=np.float32, copy=True)

    def to_float16(self) -> "Tensor":
        if self.data.dtype == np.float16:
            return self
        return Tensor._frozen(self.name, float32_to_float16_bits(self.data).view(np.float16))

    def as_float32(self) -> "Tensor":
        if self.data.dtype == np.float32:
            return self
        return Tensor._frozen(self.name, self.to_float32())
