"""Synthetic data helpers for vidi-client.

Public API to generate minimal, valid synthetic inputs:
- Textile images, good and defective (images)
- Runtime workspaces for the simulated backend (workspaces)
- High-level `build_textile_resources` to assemble a resources folder laid
  out like the vendor samples (`images/` and `runtime/Textile.vrws`)

These utilities are intended for demos, tests, and quick E2E exercises.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .images import TextileImageOptions, TextileImageSet, defect_box, generate_textile_image, write_textile_images
from .workspaces import WorkspaceSynthOptions, textile_tools, write_textile_workspace

__all__ = [
    # Images
    "TextileImageOptions",
    "TextileImageSet",
    "defect_box",
    "generate_textile_image",
    "write_textile_images",
    # Workspaces
    "WorkspaceSynthOptions",
    "textile_tools",
    "write_textile_workspace",
    # Result objects
    "TextileResources",
    # High-level builders
    "build_textile_resources",
]


@dataclass(frozen=True)
class TextileResources:
    """Result object for `build_textile_resources`.

    Attributes
    ----------
    root_dir : Path
        Base output directory.
    images : TextileImageSet
        Generated images under `<root_dir>/images`.
    runtime_path : Path
        Runtime workspace `<root_dir>/runtime/Textile.vrws`.
    """

    root_dir: Path
    images: TextileImageSet
    runtime_path: Path

    @property
    def images_dir(self) -> Path:
        return self.images.directory


def build_textile_resources(
    out_root: Union[str, Path],
    *,
    n_good: int = 4,
    n_bad: int = 2,
    chain: bool = False,
    image_options: Optional[TextileImageOptions] = None,
) -> TextileResources:
    """Build a resources folder with images and a trained runtime workspace.

    Creates:
    - `<out_root>/images/` with `n_good` good and `n_bad` bad PNGs
    - `<out_root>/runtime/Textile.vrws` whose red tool `analyze` is trained on
      the same intensity statistics (plus `classify` and `locate` when
      `chain` is True)
    """
    out_root = Path(out_root)
    images = write_textile_images(out_root / "images", n_good=n_good, n_bad=n_bad, options=image_options)
    runtime_path = write_textile_workspace(
        out_root / "runtime" / "Textile.vrws",
        WorkspaceSynthOptions(chain=chain),
        image_options,
    )
    return TextileResources(root_dir=out_root, images=images, runtime_path=runtime_path)
