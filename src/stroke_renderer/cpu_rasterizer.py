"""CPU rasterizer for stroke individuals.

Deterministic, pure-CPU renderer honoring the painter's render contract:

    render(individual) -> (H, W, 4) float32 RGBA in [0,1]

Architecture:
    - Strokes consumed in paint order (ascending importance)
    - Each skeleton drawn as an anti-aliased thick polyline (OpenCV, 1/16 px
      sub-pixel precision) into a coverage mask restricted to the stroke's
      bounding box
    - Coverage composited "over" the canvas with the stroke color at full
      opacity; the canvas starts transparent black
    - Optional output size: skeleton and thickness are scaled from guidance
      pixels to output pixels (used for saving high-resolution images)

Invariants:
    - Output matches the guidance dimensions unless a size is requested
    - Color is sRGB [0,1], same encoding as the guidance color field
    - Stateless between calls, so one renderer may be shared by worker threads

Usage:
    from src.stroke_renderer.cpu_rasterizer import CPUStrokeRenderer

    renderer = CPUStrokeRenderer(width=guidance.width, height=guidance.height)
    rgba = renderer.render(individual)
    renderer.render_to_file(individual, "out.png", size=(1920, 1080))
"""

import logging
from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

import cv2
import numpy as np

from src.utils import fs

logger = logging.getLogger(__name__)

# cv2 sub-pixel shift: coordinates are fixed point with 4 fractional bits
_SHIFT = 4
_SHIFT_SCALE = float(1 << _SHIFT)


class CPUStrokeRenderer:
    """OpenCV polyline rasterizer with alpha-over compositing.

    Attributes
    ----------
    width, height : int
        Guidance field dimensions (stroke coordinates are in these pixels)
    """

    def __init__(self, width: int, height: int):
        if width < 1 or height < 1:
            raise ValueError(f"Renderer size must be positive, got {width}x{height}")
        self.width = int(width)
        self.height = int(height)
        logger.info(f"CPUStrokeRenderer initialized: canvas={self.width}x{self.height}")

    def new_canvas(self, size: Optional[Tuple[int, int]] = None) -> Tuple[np.ndarray, np.ndarray]:
        """Transparent black canvas (rgb, alpha) of `size` = (W, H)."""
        w, h = size if size is not None else (self.width, self.height)
        return np.zeros((h, w, 3), dtype=np.float32), np.zeros((h, w), dtype=np.float32)

    def render_stroke(
        self,
        canvas: np.ndarray,
        alpha_map: np.ndarray,
        stroke,
        scale: Tuple[float, float] = (1.0, 1.0)
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Composite one stroke onto the canvas in place.

        Parameters
        ----------
        canvas : np.ndarray
            (H, W, 3) float32 sRGB
        alpha_map : np.ndarray
            (H, W) float32 coverage accumulation
        stroke : Stroke
            Stroke in guidance pixel coordinates
        scale : tuple of float
            (sx, sy) guidance px → canvas px

        Returns
        -------
        canvas, alpha_map : np.ndarray
            The same arrays, updated
        """
        h, w = alpha_map.shape
        sx, sy = scale
        pts = stroke.skeleton.astype(np.float64) * np.array([sx, sy])
        line_px = max(1, int(round(stroke.thickness * 0.5 * (sx + sy))))
        pad = line_px // 2 + 2

        x0 = max(0, int(np.floor(pts[:, 0].min())) - pad)
        y0 = max(0, int(np.floor(pts[:, 1].min())) - pad)
        x1 = min(w, int(np.ceil(pts[:, 0].max())) + pad + 1)
        y1 = min(h, int(np.ceil(pts[:, 1].max())) + pad + 1)
        if x0 >= x1 or y0 >= y1:
            return canvas, alpha_map

        mask = np.zeros((y1 - y0, x1 - x0), dtype=np.uint8)
        local = np.round((pts - np.array([x0, y0])) * _SHIFT_SCALE).astype(np.int32)
        cv2.polylines(mask, [local.reshape(-1, 1, 2)], False, 255,
                      thickness=line_px, lineType=cv2.LINE_AA, shift=_SHIFT)

        a = mask.astype(np.float32) / 255.0
        rgb = np.asarray(stroke.color[:3], dtype=np.float32)
        roi = canvas[y0:y1, x0:x1]
        roi *= (1.0 - a)[..., None]
        roi += a[..., None] * rgb
        a_roi = alpha_map[y0:y1, x0:x1]
        a_roi += a * (1.0 - a_roi)
        return canvas, alpha_map

    def render_strokes(
        self,
        strokes: Iterable,
        size: Optional[Tuple[int, int]] = None
    ) -> np.ndarray:
        """Render strokes in the given order into a fresh RGBA buffer."""
        canvas, alpha_map = self.new_canvas(size)
        out_h, out_w = alpha_map.shape
        scale = (out_w / self.width, out_h / self.height)
        for stroke in strokes:
            self.render_stroke(canvas, alpha_map, stroke, scale)
        return np.concatenate([canvas, alpha_map[..., None]], axis=-1)

    def render(self, individual, size: Optional[Tuple[int, int]] = None) -> np.ndarray:
        """Render an Individual in paint order.

        Parameters
        ----------
        individual : Individual
            Candidate painting
        size : tuple of int, optional
            Output (W, H); defaults to the guidance dimensions

        Returns
        -------
        np.ndarray
            (H, W, 4) float32 RGBA in [0,1]
        """
        return self.render_strokes(individual.paint_order(), size)

    def render_to_file(
        self,
        individual,
        path: Union[str, Path],
        size: Optional[Tuple[int, int]] = None
    ) -> Path:
        """Render and save as an 8-bit RGBA image (format from extension)."""
        rgba = self.render(individual, size)
        img = np.clip(rgba * 255.0, 0.0, 255.0).astype(np.uint8)
        path = Path(path)
        fs.ensure_dir(path.parent)
        fs.atomic_save_image(img, path)
        logger.debug(f"Saved render {img.shape[1]}x{img.shape[0]} to {path}")
        return path
