"""Test color space conversions and perceptual metrics.

Tests for src.utils.color:
    - sRGB → linear RGB transfer function
    - sRGB → Lab conversion correctness
    - ΔE2000 known pairs (Sharma et al. 2005 reference data)
    - Scalar ΔE2000 matches the tensor version
    - Channel-last broadcasting over images

Known values (D65, 2° observer):
    - RGB(1,1,1) → Lab(100, 0, 0)
    - RGB(0,0,0) → Lab(0, 0, 0)
    - RGB(1,0,0) → Lab(~53.2, ~80.1, ~67.2)

Run:
    pytest tests/test_color.py -v
"""

import pytest
import torch

from src.utils import color


# ============================================================================
# TRANSFER FUNCTION / LAB
# ============================================================================

def test_srgb_to_linear_linear_region():
    """Values below 0.04045 are divided by 12.92."""
    x = torch.tensor([0.0, 0.02, 0.04], dtype=torch.float64)
    assert torch.allclose(color.srgb_to_linear(x), x / 12.92)


def test_srgb_to_linear_power_region():
    x = torch.tensor([0.5], dtype=torch.float64)
    expected = ((0.5 + 0.055) / 1.055) ** 2.4
    assert color.srgb_to_linear(x).item() == pytest.approx(expected, rel=1e-9)


def test_srgb_to_linear_clamps_out_of_range():
    x = torch.tensor([-0.5, 1.5], dtype=torch.float64)
    assert torch.allclose(color.srgb_to_linear(x), torch.tensor([0.0, 1.0], dtype=torch.float64))


@pytest.mark.parametrize("rgb,lab", [
    ((1.0, 1.0, 1.0), (100.0, 0.0, 0.0)),
    ((0.0, 0.0, 0.0), (0.0, 0.0, 0.0)),
    ((1.0, 0.0, 0.0), (53.24, 80.09, 67.20)),
])
def test_srgb_to_lab_known_values(rgb, lab):
    """Reference Lab values for primaries (tolerance covers matrix rounding)."""
    out = color.srgb_to_lab(torch.tensor(rgb, dtype=torch.float64))
    assert out.tolist() == pytest.approx(list(lab), abs=0.1)


def test_srgb_to_lab_image_shape():
    img = torch.rand(4, 5, 3)
    assert color.srgb_to_lab(img).shape == (4, 5, 3)


def test_rgb_to_xyz_requires_three_channels():
    with pytest.raises(ValueError, match="channel-last"):
        color.rgb_to_xyz(torch.rand(4, 5, 4))


# ============================================================================
# ΔE2000
# ============================================================================

def test_delta_e2000_identical_zero():
    lab = color.srgb_to_lab(torch.rand(8, 3, dtype=torch.float64))
    assert torch.allclose(color.delta_e2000(lab, lab), torch.zeros(8, dtype=torch.float64), atol=1e-6)


SHARMA_PAIRS = [
    ((50.0, 2.6772, -79.7751), (50.0, 0.0, -82.7485), 2.0425),
    ((50.0, 3.1571, -77.2803), (50.0, 0.0, -82.7485), 2.8615),
    ((50.0, 2.5, 0.0), (73.0, 25.0, -18.0), 27.1492),
    ((50.0, 2.5, 0.0), (50.0, 0.0, -2.5), 4.3065),
    ((60.2574, -34.0099, 36.2677), (60.4626, -34.1751, 39.4387), 1.2644),
    ((22.7233, 20.0904, -46.6940), (23.0331, 14.9730, -42.5619), 2.0373),
]


@pytest.mark.parametrize("lab1,lab2,expected", SHARMA_PAIRS)
def test_delta_e2000_known_pairs(lab1, lab2, expected):
    """CIEDE2000 reference pairs from Sharma, Wu & Dalal."""
    d = color.delta_e2000(
        torch.tensor(lab1, dtype=torch.float64),
        torch.tensor(lab2, dtype=torch.float64),
    )
    assert d.item() == pytest.approx(expected, abs=1e-3)


def test_delta_e2000_symmetric():
    a = color.srgb_to_lab(torch.rand(16, 3, dtype=torch.float64))
    b = color.srgb_to_lab(torch.rand(16, 3, dtype=torch.float64))
    assert torch.allclose(color.delta_e2000(a, b), color.delta_e2000(b, a), atol=1e-8)


def test_delta_e2000_broadcasts_single_color():
    """One Lab color against an image, as used by the stroke synthesizer."""
    img = color.srgb_to_lab(torch.rand(4, 6, 3))
    single = img[1, 2]
    d = color.delta_e2000(single, img)
    assert d.shape == (4, 6)
    assert d[1, 2].item() == pytest.approx(0.0, abs=1e-4)


def test_delta_e2000_black_white_large():
    d = color.delta_e2000_srgb(torch.zeros(3), torch.ones(3))
    assert d.item() == pytest.approx(100.0, abs=0.5)


# ============================================================================
# SCALAR ΔE2000
# ============================================================================

@pytest.mark.parametrize("lab1,lab2,expected", SHARMA_PAIRS)
def test_delta_e2000_scalar_known_pairs(lab1, lab2, expected):
    assert color.delta_e2000_scalar(lab1, lab2) == pytest.approx(expected, abs=1e-3)


def test_delta_e2000_scalar_identical_zero():
    assert color.delta_e2000_scalar((42.0, 10.0, -5.0), (42.0, 10.0, -5.0)) == pytest.approx(0.0, abs=1e-6)
    assert color.delta_e2000_scalar((0.0, 0.0, 0.0), (0.0, 0.0, 0.0)) == pytest.approx(0.0, abs=1e-6)


def test_delta_e2000_scalar_matches_tensor():
    """Random sRGB pairs, including hue pairs that wrap around 0°/360°."""
    gen = torch.Generator().manual_seed(3)
    a = color.srgb_to_lab(torch.rand(64, 3, generator=gen, dtype=torch.float64))
    b = color.srgb_to_lab(torch.rand(64, 3, generator=gen, dtype=torch.float64))
    expected = color.delta_e2000(a, b)
    for lab1, lab2, d in zip(a.tolist(), b.tolist(), expected.tolist()):
        assert color.delta_e2000_scalar(lab1, lab2) == pytest.approx(d, abs=1e-6)


def test_delta_e2000_scalar_accepts_numpy_rows():
    lab = color.srgb_to_lab(torch.rand(2, 3, dtype=torch.float64)).numpy()
    d = color.delta_e2000_scalar(lab[0], lab[1])
    assert isinstance(d, float)
    assert d == pytest.approx(color.delta_e2000(torch.from_numpy(lab[0]), torch.from_numpy(lab[1])).item(), abs=1e-6)
