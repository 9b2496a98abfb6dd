"""Color space conversions and perceptual color difference.

Provides:
    - sRGB → linear RGB (exact sRGB transfer function)
    - linear RGB → CIE XYZ → CIE L*a*b* (D65 illuminant)
    - sRGB → Lab shortcut used for guidance colors and rendered pixels
    - ΔE2000: Perceptual color difference (CIEDE2000 formula), vectorized in
      torch and as a scalar version for single color pairs

Used by:
    - Guidance fields: Lab cache of the target colors
    - Stroke synthesizer: hop termination (stroke color vs. guidance color)
    - Fitness evaluator: per-pixel color loss

The tensor functions take torch tensors with the channel axis LAST, i.e. (..., 3).
That covers single colors (3,), pixel lists (N, 3) and images (H, W, 3)
with the same code path, matching the numpy (H, W, C) layout of the
guidance fields and renderer output.

Invariants:
    - Guidance colors and rendered pixels are sRGB [0,1]
    - Lab coordinates: L[0,100], a,b approximately [-128, 127]
"""

import math
from typing import Sequence

import torch

_POW25_7 = 25.0 ** 7


def srgb_to_linear(img: torch.Tensor) -> torch.Tensor:
    """Convert sRGB [0,1] to linear RGB [0,1].

    Parameters
    ----------
    img : torch.Tensor
        sRGB values, shape (..., 3), range [0, 1]

    Returns
    -------
    torch.Tensor
        Linear RGB, same shape, range [0, 1]

    Notes
    -----
    Uses exact sRGB transfer function (not gamma 2.2 approximation):
        - Linear region for small values: x / 12.92
        - Power region: ((x + 0.055) / 1.055)^2.4
    """
    img = torch.clamp(img, 0.0, 1.0)
    linear = img / 12.92
    power = torch.pow((img + 0.055) / 1.055, 2.4)
    return torch.where(img <= 0.04045, linear, power)


def rgb_to_xyz(rgb: torch.Tensor) -> torch.Tensor:
    """Convert linear RGB to CIE XYZ (D65 illuminant).

    Parameters
    ----------
    rgb : torch.Tensor
        Linear RGB, shape (..., 3), range [0, 1]

    Returns
    -------
    torch.Tensor
        XYZ coordinates, same shape, D65 white point
    """
    mat = torch.tensor([
        [0.4124564, 0.3575761, 0.1804375],
        [0.2126729, 0.7151522, 0.0721750],
        [0.0193339, 0.1191920, 0.9503041]
    ], dtype=rgb.dtype, device=rgb.device)
    if rgb.shape[-1] != 3:
        raise ValueError(f"Expected channel-last shape (..., 3), got {tuple(rgb.shape)}")
    return torch.matmul(rgb, mat.T)


def xyz_to_lab(xyz: torch.Tensor) -> torch.Tensor:
    """Convert XYZ (D65) to CIE L*a*b*.

    Parameters
    ----------
    xyz : torch.Tensor
        XYZ coordinates, shape (..., 3)

    Returns
    -------
    torch.Tensor
        Lab coordinates, same shape

    Notes
    -----
    D65 white point: X=0.95047, Y=1.0, Z=1.08883
    Uses CIE standard transform with 6/29 threshold.
    """
    ref = torch.tensor([0.95047, 1.0, 1.08883], dtype=xyz.dtype, device=xyz.device)
    xyz_norm = xyz / ref

    delta = 6.0 / 29.0
    linear = xyz_norm / (3.0 * delta * delta) + (4.0 / 29.0)
    power = torch.pow(torch.clamp(xyz_norm, min=0.0), 1.0 / 3.0)
    f = torch.where(xyz_norm <= delta ** 3, linear, power)

    fx, fy, fz = f[..., 0], f[..., 1], f[..., 2]
    L = 116.0 * fy - 16.0
    a = 500.0 * (fx - fy)
    b = 200.0 * (fy - fz)
    return torch.stack([L, a, b], dim=-1)


def srgb_to_lab(img_srgb: torch.Tensor) -> torch.Tensor:
    """Convert sRGB [0,1] to CIE L*a*b* (D65).

    Composite of srgb_to_linear, rgb_to_xyz and xyz_to_lab.
    """
    return xyz_to_lab(rgb_to_xyz(srgb_to_linear(img_srgb)))


def delta_e2000(
    lab1: torch.Tensor,
    lab2: torch.Tensor,
    kL: float = 1.0,
    kC: float = 1.0,
    kH: float = 1.0
) -> torch.Tensor:
    """Compute CIEDE2000 color difference (ΔE2000).

    Parameters
    ----------
    lab1 : torch.Tensor
        First Lab array, shape (..., 3)
    lab2 : torch.Tensor
        Second Lab array, broadcastable against lab1
    kL, kC, kH : float
        Weighting factors for lightness, chroma, hue (default 1.0)

    Returns
    -------
    torch.Tensor
        ΔE2000 values, shape (...)
        Typical perceptual threshold: ΔE < 2.3 (just noticeable difference)

    Notes
    -----
    Implements full CIEDE2000 formula (Sharma et al. 2005).
    """
    eps = 1e-10

    L1, a1, b1 = lab1[..., 0], lab1[..., 1], lab1[..., 2]
    L2, a2, b2 = lab2[..., 0], lab2[..., 1], lab2[..., 2]

    C1 = torch.sqrt(a1**2 + b1**2 + eps)
    C2 = torch.sqrt(a2**2 + b2**2 + eps)
    C_bar_7 = ((C1 + C2) / 2.0)**7
    G = 0.5 * (1.0 - torch.sqrt(C_bar_7 / (C_bar_7 + 25.0**7)))

    a1_prime = (1.0 + G) * a1
    a2_prime = (1.0 + G) * a2
    C1_prime = torch.sqrt(a1_prime**2 + b1**2 + eps)
    C2_prime = torch.sqrt(a2_prime**2 + b2**2 + eps)

    h1_prime = torch.rad2deg(torch.atan2(b1, a1_prime)) % 360.0
    h2_prime = torch.rad2deg(torch.atan2(b2, a2_prime)) % 360.0

    dL_prime = L2 - L1
    dC_prime = C2_prime - C1_prime

    # Hue difference wraps around the circle
    h_diff = h2_prime - h1_prime
    abs_diff = torch.abs(h_diff)
    dh_prime = torch.where(
        abs_diff <= 180.0,
        h_diff,
        torch.where(h2_prime <= h1_prime, h_diff + 360.0, h_diff - 360.0)
    )
    dH_prime = 2.0 * torch.sqrt(C1_prime * C2_prime + eps) * torch.sin(torch.deg2rad(dh_prime) / 2.0)

    L_bar_prime = (L1 + L2) / 2.0
    C_bar_prime = (C1_prime + C2_prime) / 2.0
    h_sum = h1_prime + h2_prime
    h_bar_prime = torch.where(
        abs_diff <= 180.0,
        h_sum / 2.0,
        torch.where(h_sum < 360.0, (h_sum + 360.0) / 2.0, (h_sum - 360.0) / 2.0)
    )

    T = (1.0
         - 0.17 * torch.cos(torch.deg2rad(h_bar_prime - 30.0))
         + 0.24 * torch.cos(torch.deg2rad(2.0 * h_bar_prime))
         + 0.32 * torch.cos(torch.deg2rad(3.0 * h_bar_prime + 6.0))
         - 0.20 * torch.cos(torch.deg2rad(4.0 * h_bar_prime - 63.0)))

    d_theta = 30.0 * torch.exp(-((h_bar_prime - 275.0) / 25.0)**2)
    C_bar_prime_7 = C_bar_prime**7
    RC = 2.0 * torch.sqrt(C_bar_prime_7 / (C_bar_prime_7 + 25.0**7))

    L_term = (L_bar_prime - 50.0)**2
    SL = 1.0 + (0.015 * L_term) / torch.sqrt(20.0 + L_term)
    SC = 1.0 + 0.045 * C_bar_prime
    SH = 1.0 + 0.015 * C_bar_prime * T
    RT = -torch.sin(torch.deg2rad(2.0 * d_theta)) * RC

    dL = dL_prime / (kL * SL)
    dC = dC_prime / (kC * SC)
    dH = dH_prime / (kH * SH)

    # Clamp guards tiny negative round-off under the root for identical colors
    return torch.sqrt(torch.clamp(dL**2 + dC**2 + dH**2 + RT * dC * dH, min=0.0))


def delta_e2000_srgb(rgb1: torch.Tensor, rgb2: torch.Tensor) -> torch.Tensor:
    """ΔE2000 between two sRGB [0,1] arrays of shape (..., 3)."""
    return delta_e2000(srgb_to_lab(rgb1), srgb_to_lab(rgb2))


def delta_e2000_scalar(
    lab1: Sequence[float],
    lab2: Sequence[float],
    kL: float = 1.0,
    kC: float = 1.0,
    kH: float = 1.0
) -> float:
    """ΔE2000 between two single Lab colors, in plain Python floats.

    Same formula and round-off guards as delta_e2000(). Used for one-pair
    lookups inside per-hop loops, where tensor dispatch overhead would
    dominate the arithmetic.
    """
    eps = 1e-10

    L1, a1, b1 = (float(v) for v in lab1)
    L2, a2, b2 = (float(v) for v in lab2)

    C1 = math.sqrt(a1 * a1 + b1 * b1 + eps)
    C2 = math.sqrt(a2 * a2 + b2 * b2 + eps)
    C_bar_7 = ((C1 + C2) / 2.0) ** 7
    G = 0.5 * (1.0 - math.sqrt(C_bar_7 / (C_bar_7 + _POW25_7)))

    a1_prime = (1.0 + G) * a1
    a2_prime = (1.0 + G) * a2
    C1_prime = math.sqrt(a1_prime * a1_prime + b1 * b1 + eps)
    C2_prime = math.sqrt(a2_prime * a2_prime + b2 * b2 + eps)

    h1_prime = math.degrees(math.atan2(b1, a1_prime)) % 360.0
    h2_prime = math.degrees(math.atan2(b2, a2_prime)) % 360.0

    dL_prime = L2 - L1
    dC_prime = C2_prime - C1_prime

    h_diff = h2_prime - h1_prime
    abs_diff = abs(h_diff)
    if abs_diff <= 180.0:
        dh_prime = h_diff
    elif h2_prime <= h1_prime:
        dh_prime = h_diff + 360.0
    else:
        dh_prime = h_diff - 360.0
    dH_prime = 2.0 * math.sqrt(C1_prime * C2_prime + eps) * math.sin(math.radians(dh_prime) / 2.0)

    L_bar_prime = (L1 + L2) / 2.0
    C_bar_prime = (C1_prime + C2_prime) / 2.0
    h_sum = h1_prime + h2_prime
    if abs_diff <= 180.0:
        h_bar_prime = h_sum / 2.0
    elif h_sum < 360.0:
        h_bar_prime = (h_sum + 360.0) / 2.0
    else:
        h_bar_prime = (h_sum - 360.0) / 2.0

    T = (1.0
         - 0.17 * math.cos(math.radians(h_bar_prime - 30.0))
         + 0.24 * math.cos(math.radians(2.0 * h_bar_prime))
         + 0.32 * math.cos(math.radians(3.0 * h_bar_prime + 6.0))
         - 0.20 * math.cos(math.radians(4.0 * h_bar_prime - 63.0)))

    d_theta = 30.0 * math.exp(-((h_bar_prime - 275.0) / 25.0) ** 2)
    C_bar_prime_7 = C_bar_prime ** 7
    RC = 2.0 * math.sqrt(C_bar_prime_7 / (C_bar_prime_7 + _POW25_7))

    L_term = (L_bar_prime - 50.0) ** 2
    SL = 1.0 + (0.015 * L_term) / math.sqrt(20.0 + L_term)
    SC = 1.0 + 0.045 * C_bar_prime
    SH = 1.0 + 0.015 * C_bar_prime * T
    RT = -math.sin(math.radians(2.0 * d_theta)) * RC

    dL = dL_prime / (kL * SL)
    dC = dC_prime / (kC * SC)
    dH = dH_prime / (kH * SH)

    return math.sqrt(max(dL * dL + dC * dC + dH * dH + RT * dC * dH, 0.0))
