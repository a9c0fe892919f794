"""Normalize arbitrary raster images into size-bounded PNGs.

The image variation endpoint only accepts PNG input below a byte ceiling, so
every source image is re-encoded as PNG and, while the encoding is still too
large, repeatedly downscaled to 90% of its width (height follows the aspect
ratio) and re-encoded. The loop is bounded both by an iteration count and by a
minimum width; running into either bound while still over the ceiling is a
`NormalizationError` rather than an endless loop.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from doc_renew.errors import NormalizationError

logger = logging.getLogger(__name__)

PNG_MAX_FILE_SIZE = 4 * 1024 * 1024  # 4MB
SHRINK_FACTOR = 0.9
MAX_SHRINK_ITERATIONS = 64
MIN_WIDTH = 1


@dataclass
class NormalizedImage:
    """A PNG encoding of a source image that fits under the size ceiling."""

    data: bytes
    width: int
    height: int
    path: Path | None = None
    # Width after each encoding attempt, starting with the original width.
    widths: list[int] = field(default_factory=list)

    @property
    def encoded_size(self) -> int:
        return len(self.data)

    @property
    def iterations(self) -> int:
        return max(len(self.widths) - 1, 0)


def _encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG", optimize=True)
    return buffer.getvalue()


def _prepare(image: Image.Image) -> Image.Image:
    """Convert modes PNG cannot store (CMYK, YCbCr, ...) to RGB or RGBA."""
    if image.mode in ("RGB", "RGBA", "L", "LA"):
        return image
    if image.mode in ("P", "PA"):
        return image.convert("RGBA")
    if image.mode in ("1", "I", "I;16", "F"):
        return image.convert("L")
    return image.convert("RGB")


def scaled_size(width: int, height: int, factor: float = SHRINK_FACTOR) -> tuple[int, int]:
    """Return `(width, height)` shrunk by `factor`, preserving aspect ratio.

    Both dimensions are rounded and never drop below 1 pixel. The width
    always decreases by at least one pixel while it is above 1, so the shrink
    loop makes progress even on tiny images.
    """
    new_width = max(MIN_WIDTH, min(width - 1, round(width * factor)))
    new_height = max(1, round(height * new_width / width))
    return new_width, new_height


def normalize_image(
    source: bytes,
    max_bytes: int = PNG_MAX_FILE_SIZE,
    factor: float = SHRINK_FACTOR,
    max_iterations: int = MAX_SHRINK_ITERATIONS,
) -> NormalizedImage:
    """Encode an image as PNG and shrink it until it fits in `max_bytes`.

    Args:
        source: Raw bytes of any image format Pillow can decode.
        max_bytes: Inclusive size ceiling for the PNG encoding.
        factor: Width scale applied on each shrink step.
        max_iterations: Maximum number of shrink steps.

    Returns:
        A `NormalizedImage` whose `encoded_size` is at most `max_bytes`.

    Raises:
        NormalizationError: If the image cannot be decoded, or is still over
            the ceiling after `max_iterations` steps or at 1 pixel wide.
    """
    try:
        with Image.open(io.BytesIO(source)) as opened:
            opened.load()
            image = _prepare(opened)
            if image is opened:
                image = opened.copy()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise NormalizationError(f"Could not decode image: {e}") from e

    data = _encode_png(image)
    widths = [image.width]
    iterations = 0

    while len(data) > max_bytes:
        if iterations >= max_iterations or image.width <= MIN_WIDTH:
            raise NormalizationError(
                f"PNG is still {len(data)} bytes (ceiling {max_bytes}) after "
                f"{iterations} shrink steps at {image.width}x{image.height}."
            )
        size = scaled_size(image.width, image.height, factor)
        image = image.resize(size, Image.Resampling.LANCZOS)
        data = _encode_png(image)
        widths.append(image.width)
        iterations += 1
        logger.debug(f"Shrunk image to {image.width}x{image.height}: {len(data) / 1024:.1f}KB")

    return NormalizedImage(data=data, width=image.width, height=image.height, widths=widths)


def normalize_file(path: Path, max_bytes: int = PNG_MAX_FILE_SIZE) -> NormalizedImage:
    """Read an image file and normalize it. See `normalize_image`."""
    try:
        source = Path(path).read_bytes()
    except OSError as e:
        raise NormalizationError(f"Could not read image {path}: {e}") from e
    normalized = normalize_image(source, max_bytes=max_bytes)
    normalized.path = Path(path)
    logger.info(
        f"Normalized {path} to {normalized.width}x{normalized.height} PNG "
        f"({normalized.encoded_size / 1024:.1f}KB, {normalized.iterations} shrink steps)"
    )
    return normalized


def png_path_for(path: Path) -> Path:
    """Return `path` with its extension replaced by `.png`."""
    return Path(path).with_suffix(".png")
