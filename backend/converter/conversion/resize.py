"""Derive output dimensions and fit mode from the requested box and the decoded image size."""
import logging
from typing import Optional

from converter.conversion.models import FitMode, ResizePlan

logger = logging.getLogger("converter.resize")


def _positive(value: Optional[int]) -> Optional[int]:
    if value is None or value <= 0:
        return None
    return value


def plan_resize(
    requested_width: Optional[int],
    requested_height: Optional[int],
    keep_aspect_ratio: bool,
    allow_upscale: bool,
    source_width: int,
    source_height: int,
) -> ResizePlan:
    """
    Compute the target size.
    - No dimensions: identity (exact, source size).
    - keep_aspect_ratio: fit inside the box (a missing axis does not constrain). Enlarging needs
      allow_upscale and both dimensions; otherwise the scale is capped at 1.
    - otherwise fill: stretch to the box; a missing axis keeps the source size.
    """
    tw, th = _positive(requested_width), _positive(requested_height)
    sw, sh = source_width, source_height
    if tw is None and th is None:
        return ResizePlan(sw, sh, FitMode.EXACT, sw, sh)

    if not keep_aspect_ratio:
        return ResizePlan(tw or sw, th or sh, FitMode.FILL, sw, sh)

    upscale = allow_upscale and tw is not None and th is not None
    scales = []
    if tw is not None:
        scales.append(tw / sw)
    if th is not None:
        scales.append(th / sh)
    scale = min(scales)
    if not upscale:
        scale = min(scale, 1.0)
    new_w = max(1, int(round(sw * scale)))
    new_h = max(1, int(round(sh * scale)))
    # Rounding must not push the free axis past the box
    if tw is not None:
        new_w = min(new_w, tw)
    if th is not None:
        new_h = min(new_h, th)
    fit_mode = FitMode.CONTAIN_ALLOW_UPSCALE if upscale else FitMode.CONTAIN_NO_UPSCALE
    logger.debug("Resize plan %sx%s -> %sx%s (%s)", sw, sh, new_w, new_h, fit_mode.value)
    return ResizePlan(new_w, new_h, fit_mode, sw, sh)
