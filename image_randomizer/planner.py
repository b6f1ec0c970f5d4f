"""Random modification planning.

Every image gets a fresh plan drawn from a pool of candidate edits. Resize,
brightness and contrast always enter the pool; the remaining families enter
when enabled and when their own coin flip succeeds. The plan is then a random
subset of two to four pool entries, so even the always-present candidates can
be left out of a given image's plan.
"""

from __future__ import annotations

import random
from typing import List, Optional

from .models import EffectKind, Modification, ModificationPlan, TransformationConfig
from .utils import random_int

MIN_PLAN_SIZE = 2
MAX_PLAN_SIZE = 4
NOISE_CEILING = 3

TARGET_RESIZE_PROBABILITY = 0.3
FLIP_PROBABILITY = 0.3
VIGNETTE_PROBABILITY = 0.3
SHARPEN_PROBABILITY = 0.4
COLOR_BALANCE_PROBABILITY = 0.3
GRAIN_PROBABILITY = 0.25
FILTER_PROBABILITY = 0.2
GRAYSCALE_PROBABILITY = 0.1
SEPIA_PROBABILITY = 0.1
NOISE_PROBABILITY = 0.05

PERCENT_RESIZE_RANGE = (80, 100)
SEPIA_RANGE = (20, 60)


def _chance(rng: random.Random, probability: float) -> bool:
    return rng.random() < probability


def build_candidate_pool(config: TransformationConfig, rng: random.Random) -> List[Modification]:
    pool: List[Modification] = []

    if config.enable_fixed_aspect_ratio or _chance(rng, TARGET_RESIZE_PROBABILITY):
        width = random_int(rng, config.target_width_min, config.target_width_max)
        height = random_int(rng, config.target_height_min, config.target_height_max)
        pool.append(Modification(EffectKind.TARGET_RESIZE, (width, height)))
    else:
        pool.append(Modification(EffectKind.RESIZE, random_int(rng, *PERCENT_RESIZE_RANGE)))

    if config.enable_rotation:
        pool.append(Modification(EffectKind.ROTATE, random_int(rng, config.rotation_min, config.rotation_max)))

    if config.enable_flip and _chance(rng, FLIP_PROBABILITY):
        pool.append(Modification(EffectKind.FLIP))

    if config.enable_blur and config.blur_max > 0:
        pool.append(Modification(EffectKind.BLUR, random_int(rng, config.blur_min, config.blur_max)))

    if config.enable_vignette and _chance(rng, VIGNETTE_PROBABILITY):
        value = random_int(rng, config.vignette_intensity_min, config.vignette_intensity_max)
        pool.append(Modification(EffectKind.VIGNETTE, value))

    if config.enable_sharpen and _chance(rng, SHARPEN_PROBABILITY):
        value = random_int(rng, config.sharpen_intensity_min, config.sharpen_intensity_max)
        pool.append(Modification(EffectKind.SHARPEN, value))

    if config.enable_color_balance and _chance(rng, COLOR_BALANCE_PROBABILITY):
        balance = (
            random_int(rng, config.color_balance_r_min, config.color_balance_r_max),
            random_int(rng, config.color_balance_g_min, config.color_balance_g_max),
            random_int(rng, config.color_balance_b_min, config.color_balance_b_max),
        )
        pool.append(Modification(EffectKind.COLOR_BALANCE, balance))

    if config.enable_grain and _chance(rng, GRAIN_PROBABILITY):
        value = random_int(rng, config.grain_intensity_min, config.grain_intensity_max)
        pool.append(Modification(EffectKind.GRAIN, value))

    if config.enable_filters and config.allowed_filters and _chance(rng, FILTER_PROBABILITY):
        pool.append(Modification(EffectKind.FILTER, rng.choice(config.allowed_filters)))

    if config.enable_grayscale and _chance(rng, GRAYSCALE_PROBABILITY):
        pool.append(Modification(EffectKind.GRAYSCALE))

    if config.enable_sepia and _chance(rng, SEPIA_PROBABILITY):
        pool.append(Modification(EffectKind.SEPIA, random_int(rng, *SEPIA_RANGE)))

    pool.append(Modification(EffectKind.BRIGHTNESS, random_int(rng, config.brightness_min, config.brightness_max)))
    pool.append(Modification(EffectKind.CONTRAST, random_int(rng, config.contrast_min, config.contrast_max)))

    if config.enable_noise and config.noise_max > 0 and _chance(rng, NOISE_PROBABILITY):
        value = random_int(rng, config.noise_min, min(config.noise_max, NOISE_CEILING))
        pool.append(Modification(EffectKind.NOISE, min(value, NOISE_CEILING)))

    return pool


def plan_modifications(config: TransformationConfig, rng: Optional[random.Random] = None) -> ModificationPlan:
    """Build a fresh random plan of 2-4 distinct edits for one image."""
    rng = rng or random.Random()
    pool = build_candidate_pool(config, rng)
    size = min(rng.randint(MIN_PLAN_SIZE, MAX_PLAN_SIZE), len(pool))
    return ModificationPlan(tuple(rng.sample(pool, size)))
