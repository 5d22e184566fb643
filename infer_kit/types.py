from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np


@dataclass(frozen=True)
class Detection:
    """
    One detected box in original image pixel coordinates.

    `score` is the final confidence: objectness x class likelihood for exports that
    carry objectness, the class likelihood alone otherwise.
    """

    x1: float
    y1: float
    x2: float
    y2: float
    score: float
    class_id: int

    def __post_init__(self) -> None:
        if self.x1 > self.x2 or self.y1 > self.y2:
            raise ValueError(f"Detection corners out of order: {self.as_xyxy()}")

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x1, self.y1, self.x2, self.y2

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    def to_yolo(self, image_width: int, image_height: int) -> Tuple[int, float, float, float, float]:
        """
        Normalized YOLO label form: (class_id, cx, cy, w, h), all relative to the image size.
        """

        if image_width <= 0 or image_height <= 0:
            raise ValueError(f"Image size must be positive, got {(image_width, image_height)}")
        cx = (self.x1 + self.x2) / 2 / image_width
        cy = (self.y1 + self.y2) / 2 / image_height
        return self.class_id, cx, cy, self.width / image_width, self.height / image_height


@dataclass(frozen=True)
class ResizeRatio:
    """original dimension / model input dimension, per axis."""

    x: float
    y: float

    def to_model(self, x: float, y: float) -> Tuple[float, float]:
        """Map an original-image pixel coordinate into model input space."""
        return x / self.x, y / self.y

    def to_original(self, x: float, y: float) -> Tuple[float, float]:
        return x * self.x, y * self.y


@dataclass(frozen=True)
class PromptPoint:
    x: float
    y: float
    label: int = 1  # 1 = foreground, 0 = background

    def __post_init__(self) -> None:
        if self.label not in (0, 1):
            raise ValueError(f"Prompt label must be 0 (background) or 1 (foreground), got {self.label!r}")


@dataclass(frozen=True)
class Mask:
    """
    Binary segmentation mask, `data` is a read-only bool array of shape (height, width).
    """

    width: int
    height: int
    data: np.ndarray

    def __post_init__(self) -> None:
        if self.data.shape != (self.height, self.width):
            raise ValueError(f"Mask data shape {self.data.shape} != declared {(self.height, self.width)}")
        if self.data.dtype != np.bool_:
            raise ValueError(f"Mask data must be boolean, got {self.data.dtype}")

    @classmethod
    def from_array(cls, array: np.ndarray) -> "Mask":
        data = np.array(array, dtype=bool, copy=True)
        data.setflags(write=False)
        h, w = data.shape
        return cls(width=int(w), height=int(h), data=data)

    @property
    def area(self) -> int:
        return int(self.data.sum())

    def to_image(self) -> np.ndarray:
        """uint8 image with 255 for foreground, 0 for background."""
        return self.data.astype(np.uint8) * 255
