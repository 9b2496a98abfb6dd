"""Guidance map I/O: color, direction and importance images.

Loads the three guidance images of a painting job and derives direction maps
from other image types:
    1. Color map: RGB image, decoded to sRGB [0,1]
    2. Direction map: (r, g) encode a flow vector, (c / 255) * 2 - 1, with the
       image y axis pointing up; decoded to pixel space (+y down)
    3. Importance map: red channel / 255
    4. Direction from a normal map: flow = normal × view (0, 0, 1), i.e. the
       direction of constant height on the surface
    5. Direction from an edge map: flow perpendicular to the Sobel gradient,
       so strokes run along edges instead of across them

Public API:
    load_guidance_fields(color_path, direction_path, importance_path) → GuidanceFields
    create_direction_map_from_normal(input_path, output_path=None) → Path
    create_direction_map_from_edge(input_path, output_path=None) → Path
    visualize_direction_map(direction, grid=(100, 100)) → uint8 RGB image

Direction encoding:
    A vector whose decoded length is below DIRECTION_DEAD_ZONE (mid-gray,
    127/128) means "no flow information" and decodes to (0, 0).

Used by:
    - scripts/paint.py: all subcommands
"""

import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import cv2
import numpy as np

from src.genetic_painter.errors import InputMismatchError
from src.genetic_painter.guidance import GuidanceFields
from src.utils import fs

logger = logging.getLogger(__name__)

# One 8-bit quantization step on each axis around mid-gray
DIRECTION_DEAD_ZONE = 2.0 / 255.0

# Gradient magnitude (Sobel on [0,1] gray) below which an edge map has no direction
EDGE_MIN_GRADIENT = 1e-3


# ============================================================================
# DIRECTION ENCODING
# ============================================================================

def decode_direction_image(rgb: np.ndarray) -> np.ndarray:
    """uint8 direction image → (H, W, 2) float32 pixel-space unit vectors.

    Parameters
    ----------
    rgb : np.ndarray
        (H, W, 3) uint8; r → dx, g → dy with image y up

    Returns
    -------
    np.ndarray
        (H, W, 2) float32, +y down, unit length or exactly zero
    """
    rgb = np.asarray(rgb, dtype=np.float32)
    dx = rgb[..., 0] / 255.0 * 2.0 - 1.0
    dy = 1.0 - rgb[..., 1] / 255.0 * 2.0
    direction = np.stack([dx, dy], axis=-1)

    norm = np.linalg.norm(direction, axis=-1, keepdims=True)
    valid = norm >= DIRECTION_DEAD_ZONE
    return np.where(valid, direction / np.where(valid, norm, 1.0), 0.0).astype(np.float32)


def encode_direction_image(direction: np.ndarray) -> np.ndarray:
    """(H, W, 2) pixel-space direction → (H, W, 3) uint8 image (y up, b = 0)."""
    direction = np.asarray(direction, dtype=np.float32)
    if direction.ndim != 3 or direction.shape[2] != 2:
        raise InputMismatchError(f"direction must be (H, W, 2), got {direction.shape}")
    h, w = direction.shape[:2]
    out = np.zeros((h, w, 3), dtype=np.uint8)
    out[..., 0] = np.rint((direction[..., 0] + 1.0) * 0.5 * 255.0).clip(0, 255)
    out[..., 1] = np.rint((1.0 - direction[..., 1]) * 0.5 * 255.0).clip(0, 255)
    return out


def _normalize(vectors: np.ndarray, min_norm: float) -> np.ndarray:
    norm = np.linalg.norm(vectors, axis=-1, keepdims=True)
    valid = norm >= min_norm
    return np.where(valid, vectors / np.where(valid, norm, 1.0), 0.0).astype(np.float32)


def default_direction_map_path(input_path: Union[str, Path]) -> Path:
    """`photo.png` → `photo.dir.png` (no extension: `photo.dir`)."""
    input_path = Path(input_path)
    if input_path.suffix:
        return input_path.with_suffix(".dir" + input_path.suffix)
    return input_path.with_name(input_path.name + ".dir")


# ============================================================================
# DIRECTION DERIVATION
# ============================================================================

def direction_from_normal(normal_rgb: np.ndarray) -> np.ndarray:
    """Flow field from a tangent-space normal map.

    Parameters
    ----------
    normal_rgb : np.ndarray
        (H, W, 3) uint8 normal map, n = c / 255 * 2 - 1, green = +y up

    Returns
    -------
    np.ndarray
        (H, W, 2) float32 pixel-space directions; flat (view-facing)
        normals give zero vectors
    """
    n = np.asarray(normal_rgb, dtype=np.float32)[..., :3] / 255.0 * 2.0 - 1.0
    n = n / np.maximum(np.linalg.norm(n, axis=-1, keepdims=True), 1e-12)
    # n × (0, 0, 1) = (ny, -nx, 0) in image-up coordinates
    dir_up = np.stack([n[..., 1], -n[..., 0]], axis=-1)
    direction = _normalize(dir_up, DIRECTION_DEAD_ZONE)
    direction[..., 1] *= -1.0
    return direction


def direction_from_edge(
    edge_gray: np.ndarray,
    blur_ksize: int = 5,
    sobel_ksize: int = 3
) -> np.ndarray:
    """Flow field running along the edges of a grayscale edge map.

    Parameters
    ----------
    edge_gray : np.ndarray
        (H, W) uint8 edge or line image
    blur_ksize : int
        Gaussian blur kernel size applied first (odd; 0 or 1 disables), so
        thin lines produce a gradient band on both sides
    sobel_ksize : int
        Sobel aperture size

    Returns
    -------
    np.ndarray
        (H, W, 2) float32 pixel-space directions, zero where the gradient
        is flat
    """
    gray = np.asarray(edge_gray, dtype=np.float32) / 255.0
    if gray.ndim != 2:
        raise InputMismatchError(f"edge map must be (H, W), got {gray.shape}")
    if blur_ksize > 1:
        gray = cv2.GaussianBlur(gray, (blur_ksize, blur_ksize), 0)

    gx = cv2.Sobel(gray, cv2.CV_32F, 1, 0, ksize=sobel_ksize)
    gy = cv2.Sobel(gray, cv2.CV_32F, 0, 1, ksize=sobel_ksize)
    # Rotate the gradient by 90° to follow iso-lines
    return _normalize(np.stack([-gy, gx], axis=-1), EDGE_MIN_GRADIENT)


def create_direction_map_from_normal(
    input_path: Union[str, Path],
    output_path: Optional[Union[str, Path]] = None
) -> Path:
    """Convert a normal map image into a direction map image."""
    output_path = Path(output_path) if output_path else default_direction_map_path(input_path)
    direction = direction_from_normal(fs.load_image(input_path, "RGB"))
    fs.atomic_save_image(encode_direction_image(direction), output_path)
    logger.info(f"Direction map from normal map {input_path} saved to {output_path}")
    return output_path


def create_direction_map_from_edge(
    input_path: Union[str, Path],
    output_path: Optional[Union[str, Path]] = None
) -> Path:
    """Convert an edge map image into a direction map image."""
    output_path = Path(output_path) if output_path else default_direction_map_path(input_path)
    direction = direction_from_edge(fs.load_image(input_path, "L"))
    fs.atomic_save_image(encode_direction_image(direction), output_path)
    logger.info(f"Direction map from edge map {input_path} saved to {output_path}")
    return output_path


# ============================================================================
# VISUALIZATION
# ============================================================================

def visualize_direction_map(
    direction: np.ndarray,
    grid: Tuple[int, int] = (100, 100),
    background: Optional[np.ndarray] = None
) -> np.ndarray:
    """Draw one arrow per grid cell showing the local flow direction.

    Parameters
    ----------
    direction : np.ndarray
        (H, W, 2) pixel-space directions
    grid : tuple of int
        Arrows along (x, y); clamped to the image size
    background : np.ndarray, optional
        (H, W, 3) uint8 image to draw on; defaults to black

    Returns
    -------
    np.ndarray
        (H, W, 3) uint8 RGB; cells without direction get a dot
    """
    direction = np.asarray(direction, dtype=np.float32)
    h, w = direction.shape[:2]
    if background is None:
        canvas = np.zeros((h, w, 3), dtype=np.uint8)
    else:
        if background.shape[:2] != (h, w):
            raise InputMismatchError(
                f"background {background.shape[:2]} does not match direction ({h}, {w})"
            )
        canvas = np.ascontiguousarray(background[..., :3], dtype=np.uint8).copy()

    nx = max(1, min(int(grid[0]), w))
    ny = max(1, min(int(grid[1]), h))
    cell_w, cell_h = w / nx, h / ny
    half = 0.4 * min(cell_w, cell_h)
    color = (255, 255, 255)

    for j in range(ny):
        cy = (j + 0.5) * cell_h
        for i in range(nx):
            cx = (i + 0.5) * cell_w
            dx, dy = direction[min(int(cy), h - 1), min(int(cx), w - 1)]
            if dx == 0.0 and dy == 0.0:
                cv2.circle(canvas, (int(cx), int(cy)), 1, color, -1)
                continue
            start = (int(round(cx - dx * half)), int(round(cy - dy * half)))
            end = (int(round(cx + dx * half)), int(round(cy + dy * half)))
            cv2.arrowedLine(canvas, start, end, color, 1, cv2.LINE_AA, tipLength=0.3)
    return canvas


def visualize_direction_map_file(
    input_path: Union[str, Path],
    output_path: Optional[Union[str, Path]] = None,
    grid: Tuple[int, int] = (100, 100)
) -> Path:
    """Render the arrows of a direction map image to `<stem>.arrows<ext>`."""
    input_path = Path(input_path)
    if output_path is None:
        output_path = input_path.with_name(input_path.stem + ".arrows" + (input_path.suffix or ".png"))
    output_path = Path(output_path)
    direction = decode_direction_image(fs.load_image(input_path, "RGB"))
    fs.atomic_save_image(visualize_direction_map(direction, grid), output_path)
    logger.info(f"Direction map visualization saved to {output_path}")
    return output_path


# ============================================================================
# GUIDANCE LOADING
# ============================================================================

def load_guidance_fields(
    color_path: Union[str, Path],
    direction_path: Union[str, Path],
    importance_path: Union[str, Path]
) -> GuidanceFields:
    """Decode the three guidance images into GuidanceFields.

    Raises
    ------
    FileNotFoundError
        If any image is missing
    InputMismatchError
        If the images differ in dimensions
    DegenerateSamplingError
        If the importance map is entirely black
    """
    color_u8 = fs.load_image(color_path, "RGB")
    direction_u8 = fs.load_image(direction_path, "RGB")
    importance_u8 = fs.load_image(importance_path, "RGB")

    sizes = {
        'color': color_u8.shape[:2],
        'direction': direction_u8.shape[:2],
        'importance': importance_u8.shape[:2],
    }
    if len(set(sizes.values())) != 1:
        detail = ", ".join(f"{k}={v[1]}x{v[0]}" for k, v in sizes.items())
        raise InputMismatchError(f"Guidance images differ in size: {detail}")

    guidance = GuidanceFields(
        color=color_u8.astype(np.float32) / 255.0,
        direction=decode_direction_image(direction_u8),
        importance=importance_u8[..., 0].astype(np.float32) / 255.0,
    )
    logger.info(
        f"Loaded guidance {guidance.width}x{guidance.height} from "
        f"{color_path}, {direction_path}, {importance_path}"
    )
    return guidance
