#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Normalization statistics and the per-channel affine codec used to move vertex
positions into model input space and model output back into world displacements.
"""

import logging
import os
import pickle
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)


# --- Statistics ---

@dataclass(frozen=True)
class NormalizationStats:
    """Per-channel (x, y, z) mean/std pairs for positions and displacements."""
    pos_mean: tuple
    pos_std: tuple
    disp_mean: tuple
    disp_std: tuple

    def __post_init__(self):
        for field_name in ("pos_mean", "pos_std", "disp_mean", "disp_std"):
            values = tuple(float(v) for v in np.asarray(getattr(self, field_name), dtype=float).reshape(-1))
            if len(values) != 3:
                raise ValueError(f"'{field_name}' must have 3 components, got {len(values)}")
            object.__setattr__(self, field_name, values)
        # Zero std would make normalize() divide by zero
        for field_name in ("pos_std", "disp_std"):
            if any(v == 0.0 for v in getattr(self, field_name)):
                raise ValueError(f"'{field_name}' has a zero component: {getattr(self, field_name)}")

    def to_dict(self):
        return {
            'flag_mean': np.array(self.pos_mean, dtype=np.float32),
            'flag_std': np.array(self.pos_std, dtype=np.float32),
            'disp_mean': np.array(self.disp_mean, dtype=np.float32),
            'disp_std': np.array(self.disp_std, dtype=np.float32),
        }

    @classmethod
    def from_dict(cls, params):
        return cls(pos_mean=params['flag_mean'], pos_std=params['flag_std'],
                   disp_mean=params['disp_mean'], disp_std=params['disp_std'])


# Calculated from the training corpus of the shipped model
DEFAULT_STATS = NormalizationStats(
    pos_mean=(0.12910223, -0.03005729, -0.2029736),
    pos_std=(0.2569797, 0.25402212, 0.22280896),
    disp_mean=(0.00028131, -0.00021091, -0.00083623),
    disp_std=(0.01928047, 0.02270363, 0.01108402),
)


# --- Codec ---

def normalize(values, mean, std, enabled=True):
    """Maps raw values (one triple or an (N, 3) array) to model space."""
    values = np.asarray(values, dtype=np.float64)
    if not enabled:
        return values.copy()
    return (values - np.asarray(mean, dtype=np.float64)) / np.asarray(std, dtype=np.float64)


def denormalize(values, mean, std, enabled=True):
    """Maps model-space values (one triple or an (N, 3) array) back to world units."""
    values = np.asarray(values, dtype=np.float64)
    if not enabled:
        return values.copy()
    return values * np.asarray(std, dtype=np.float64) + np.asarray(mean, dtype=np.float64)


# --- Persistence ---

def save_normalization_params(stats, filepath="normalization_params.pkl"):
    """Saves normalization statistics to a pickle file."""
    with open(filepath, "wb") as f:
        pickle.dump(stats.to_dict(), f)
    logger.info("Saved normalization parameters to %s.", filepath)


def load_normalization_params(filepath="normalization_params.pkl"):
    """Loads normalization statistics from a pickle file."""
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Normalization parameters file not found at: {filepath}")
    with open(filepath, "rb") as f:
        params = pickle.load(f)
    stats = NormalizationStats.from_dict(params)
    logger.info("Loaded normalization parameters from %s.", filepath)
    return stats
