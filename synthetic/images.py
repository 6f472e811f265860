"""Synthetic textile images.

Creates small grayscale PNGs resembling a woven fabric so that runtime
inspection, training and benchmarks can run without the vendor sample
resources. Good images are a flat mid-gray weave with mild noise; bad images
carry one dark rectangular blotch covering at least ``defect_fraction`` of
the image area.

Features:
- `TextileImageOptions` Pydantic model for generation knobs.
- Deterministic output per (seed, index).
- Naming that matches the label filters used by training: good images are
  `000000.png`, bad ones `bad000001.png`.

Example:
    from synthetic.images import TextileImageOptions, write_textile_images

    images = write_textile_images('temp/images', n_good=4, n_bad=2)
    print(images.bad_paths[0])  # temp/images/bad000004.png
"""

from __future__ import annotations

from dataclasses import dataclass
import math
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
from PIL import Image
from pydantic import BaseModel, Field


class TextileImageOptions(BaseModel):
    """Options controlling synthetic textile images.

    width/height: Image size in pixels.
    base_level: Mean normalized intensity of the fabric.
    weave_amplitude: Amplitude of the weave pattern (normalized intensity).
    weave_period: Period of the weave in pixels.
    noise_std: Standard deviation of the pixel noise, clipped at 3 sigma.
    defect_level: Normalized intensity of the blotch on bad images.
    defect_fraction: Minimum share of the image area covered by the blotch.
    seed: Base seed; image ``i`` uses ``seed + i``.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    width: int = Field(128, ge=16)
    height: int = Field(128, ge=16)
    base_level: float = Field(0.5, ge=0.3, le=0.7)
    weave_amplitude: float = Field(0.08, ge=0.0, le=0.1)
    weave_period: int = Field(8, ge=2)
    noise_std: float = Field(0.02, ge=0.0, le=0.03)
    defect_level: float = Field(0.1, ge=0.0, le=1.0)
    defect_fraction: float = Field(0.08, ge=0.01, le=0.5)
    seed: int = 2025


@dataclass(frozen=True)
class TextileImageSet:
    """Paths of a generated image set.

    Attributes
    ----------
    directory : Path
        Folder holding the images.
    good_paths : List[Path]
        Defect-free images, in index order.
    bad_paths : List[Path]
        Images with a blotch, in index order.
    """

    directory: Path
    good_paths: List[Path]
    bad_paths: List[Path]

    @property
    def all_paths(self) -> List[Path]:
        # good images take the lower indices
        return self.good_paths + self.bad_paths


def _weave(options: TextileImageOptions) -> np.ndarray:
    yy, xx = np.mgrid[0 : options.height, 0 : options.width]
    phase = 2.0 * np.pi / options.weave_period
    return options.weave_amplitude * np.sin(phase * xx) * np.sin(phase * yy)


def defect_box(options: TextileImageOptions, rng: np.random.Generator) -> tuple:
    """Return (top, left, height, width) of a blotch covering at least ``defect_fraction``."""
    side = math.ceil(math.sqrt(options.defect_fraction * options.width * options.height))
    box_h = min(side, options.height)
    box_w = min(math.ceil(options.defect_fraction * options.width * options.height / box_h), options.width)
    top = int(rng.integers(0, options.height - box_h + 1))
    left = int(rng.integers(0, options.width - box_w + 1))
    return top, left, box_h, box_w


def generate_textile_image(bad: bool = False, index: int = 0, options: Optional[TextileImageOptions] = None) -> np.ndarray:
    """Generate one textile image as an ``(height, width)`` uint8 array."""
    options = options or TextileImageOptions()
    rng = np.random.default_rng(options.seed + index)

    noise = np.clip(rng.normal(0.0, options.noise_std, (options.height, options.width)), -3 * options.noise_std, 3 * options.noise_std)
    level = options.base_level + _weave(options) + noise

    if bad:
        top, left, box_h, box_w = defect_box(options, rng)
        level[top : top + box_h, left : left + box_w] = options.defect_level

    return np.round(np.clip(level, 0.0, 1.0) * 255.0).astype(np.uint8)


def write_textile_images(
    directory: Union[str, Path],
    n_good: int = 4,
    n_bad: int = 2,
    options: Optional[TextileImageOptions] = None,
) -> TextileImageSet:
    """Write ``n_good`` good then ``n_bad`` bad PNGs into ``directory``.

    Indices run across both groups so every file name is unique.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    good_paths: List[Path] = []
    bad_paths: List[Path] = []
    for index in range(n_good + n_bad):
        bad = index >= n_good
        path = directory / (f"bad{index:06d}.png" if bad else f"{index:06d}.png")
        Image.fromarray(generate_textile_image(bad, index, options)).save(path)
        (bad_paths if bad else good_paths).append(path)

    return TextileImageSet(directory=directory, good_paths=good_paths, bad_paths=bad_paths)
