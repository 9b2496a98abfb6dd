"""Guidance map preparation.

Modules:
    - guidance_maps: Load the three guidance images, derive direction maps
      from normal or edge images, visualize direction maps

Image encodings:
    - Color: RGB, sRGB
    - Direction: RGB with (r, g) = (dx + 1) / 2, (dy + 1) / 2, image y up;
      mid-gray (128, 128) means "no direction"
    - Importance: red channel, 0 = ignore, 255 = most important

All decoded arrays are float32 in guidance pixel space (+y down).
"""
