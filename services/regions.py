"""
Region Layouts and Cropping

A region layout is a fixed table of normalized (0-1) bounding boxes describing
where each field sits on a rectified document of one template. Cropping is
purely geometric: no OCR, no parsing, deterministic, and it never reads outside
the source image.

The Ontario driver's licence boxes are intentionally generous to tolerate
imperfect rectification and framing; a crop may catch part of a neighbouring
field. If a field is systematically missed, tune its box here.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional

import numpy as np


def clamp01(n: float) -> float:
    return min(1.0, max(0.0, float(n)))


@dataclass(frozen=True)
class NormalizedRegion:
    """Rectangle relative to a rectified document; each component clamps to [0, 1]."""
    x: float
    y: float
    w: float
    h: float

    def __post_init__(self):
        for name in ("x", "y", "w", "h"):
            object.__setattr__(self, name, clamp01(getattr(self, name)))

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "w": self.w, "h": self.h}


@dataclass(frozen=True)
class RegionLayout:
    """Named set of regions for one supported document template."""
    name: str
    version: int
    regions: Mapping[str, NormalizedRegion] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "regions", MappingProxyType(dict(self.regions)))

    def __getitem__(self, key: str) -> NormalizedRegion:
        return self.regions[key]

    def __contains__(self, key: str) -> bool:
        return key in self.regions

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "regions": {k: v.to_dict() for k, v in self.regions.items()},
        }


# Field keys shared by the OCR orchestrator and the parsers
PHOTO = "photo"
NAME = "name"
DL_NUMBER = "dlNumber"
DOB = "dob"
EXPIRY = "expiry"

TEXT_FIELDS = (NAME, DL_NUMBER, DOB, EXPIRY)


ONTARIO_DL_LAYOUT = RegionLayout(
    name="ontario_dl",
    version=1,
    regions={
        # Portrait photo (approximation, no face detection involved)
        PHOTO: NormalizedRegion(x=0.03, y=0.18, w=0.28, h=0.68),
        # Surname / given names block
        NAME: NormalizedRegion(x=0.33, y=0.14, w=0.64, h=0.22),
        # Licence number, #####-#####-#####
        DL_NUMBER: NormalizedRegion(x=0.33, y=0.38, w=0.64, h=0.14),
        DOB: NormalizedRegion(x=0.33, y=0.56, w=0.30, h=0.14),
        # Usually next to "4b EXP"
        EXPIRY: NormalizedRegion(x=0.63, y=0.56, w=0.34, h=0.14),
    },
)

LAYOUTS: Mapping[str, RegionLayout] = MappingProxyType({
    ONTARIO_DL_LAYOUT.name: ONTARIO_DL_LAYOUT,
})


def get_layout(name: str) -> RegionLayout:
    """Look up a layout by template name."""
    try:
        return LAYOUTS[name]
    except KeyError:
        raise KeyError(f"Unknown document layout '{name}'. Known: {sorted(LAYOUTS)}") from None


def pixel_bounds(region: NormalizedRegion, width: int, height: int):
    """
    Pixel box ``(x0, y0, x1, y1)`` for a region, clamped inside a ``width`` x
    ``height`` image and never smaller than 1x1.
    """
    x0 = min(max(round(region.x * width), 0), width - 1)
    y0 = min(max(round(region.y * height), 0), height - 1)
    x1 = min(max(round((region.x + region.w) * width), x0 + 1), width)
    y1 = min(max(round((region.y + region.h) * height), y0 + 1), height)
    return x0, y0, x1, y1


def crop_region(image: np.ndarray, region: NormalizedRegion) -> np.ndarray:
    """Copy the pixel block covered by ``region`` out of ``image``."""
    height, width = image.shape[:2]
    if width == 0 or height == 0:
        raise ValueError("Cannot crop an empty image")
    x0, y0, x1, y1 = pixel_bounds(region, width, height)
    return image[y0:y1, x0:x1].copy()


def crop_regions(
    image: np.ndarray,
    layout: RegionLayout = ONTARIO_DL_LAYOUT,
    names: Optional[Iterable[str]] = None,
) -> Dict[str, np.ndarray]:
    """Crop every (or every named) region of ``layout`` out of ``image``."""
    keys = list(names) if names is not None else list(layout.regions)
    return {key: crop_region(image, layout[key]) for key in keys}
