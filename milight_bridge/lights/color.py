"""
Conversions between the controller's hue/saturation/mired model and the
hub's RGB, CCT and white-mode model.

Hue is in degrees (0-360), saturation in percent (0-100) and color
temperature in mireds. All functions are pure.
"""

import math
from typing import Tuple

from milight_bridge.core.utils import round_half_up

HueSaturation = Tuple[int, int]


def _hue_saturation(r: float, g: float, b: float) -> HueSaturation:
    """HSV hue/saturation of normalised (0-1) channels."""
    high = max(r, g, b)
    low = min(r, g, b)
    delta = high - low
    if delta == 0:
        return 0, 0

    if high == r:
        hue = (g - b) / delta + (6 if g < b else 0)
    elif high == g:
        hue = (b - r) / delta + 2
    else:
        hue = (r - g) / delta + 4

    return round_half_up(hue * 60), round_half_up(100 * delta / high)


def rgb_to_hue_saturation(r: int, g: int, b: int) -> HueSaturation:
    """Convert an 8-bit RGB triplet to (hue, saturation).

    Pure white and every other grey map to (0, 0); hue is undefined there.
    """
    if r == 255 and g == 255 and b == 255:
        return 0, 0
    return _hue_saturation(r / 255, g / 255, b / 255)


def color_temperature_to_hue_saturation(mireds: float) -> HueSaturation:
    """Approximate the hue/saturation a white light of ``mireds`` looks like.

    Uses Tanner Helland's black-body fit with temperatures in hundreds of
    Kelvin, so 153 mireds is roughly 6500K and 370 mireds roughly 2700K.
    """
    kelvin = 10000 / mireds
    if kelvin > 66:
        red = 351.97690566805693 + 0.114206453784165 * (kelvin - 55) - 40.25366309332127 * math.log(kelvin - 55)
        green = 325.4494125711974 + 0.07943456536662342 * (kelvin - 50) - 28.0852963507957 * math.log(kelvin - 55)
        blue = 255
    else:
        red = 255
        green = 104.49216199393888 * math.log(kelvin - 2) - 0.44596950469579133 * (kelvin - 2) - 155.25485562709179
        blue = 115.67994401066147 * math.log(kelvin - 10) + 0.8274096064007395 * (kelvin - 10) - 254.76935184120902

    r, g, b = (max(0, min(255, channel)) / 255 for channel in (red, green, blue))
    return _hue_saturation(r, g, b)


def hue_saturation_to_kelvin_knob(hue: float, saturation: float) -> int:
    """Map a near-white hue/saturation onto the hub's 0-100 ``kelvin`` dial."""
    if hue > 150:
        knob = 0.5 - saturation / 40
    else:
        knob = math.sqrt(saturation * 0.0033) + 0.5
    knob = min(1, max(0, knob))
    return round_half_up(knob * 100)


def _pole(numerator: float, denominator: float) -> float:
    # hue exactly on an asymptote behaves like the curve's limit
    if denominator == 0:
        return math.copysign(math.inf, numerator)
    return numerator / denominator


def is_white_mode_region(hue: float, saturation: float) -> bool:
    """Whether a requested color is close enough to neutral to render as white.

    The boundaries are curves fitted around the warm and cool white axis of
    an RGB+CCT controller's color wheel.
    """
    if hue < 150:
        fn1 = _pole(-70, hue - 30) + 2.5
        fn2 = _pole(-70, hue - 33) + 1
        return (saturation < fn1 or hue >= 30) and (saturation > fn2 and hue < 33)

    fn3 = _pole(70, hue - 219) + 2.7
    fn4 = _pole(90, hue - 216) + 0.8
    return fn4 < saturation < fn3
