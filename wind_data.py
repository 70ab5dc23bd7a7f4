#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Wind condition data: parsing of the per-tick text units and the ordered,
read-only sequence replayed by the simulator.
"""

import glob
import logging
import os
import re
from collections import namedtuple

import numpy as np

logger = logging.getLogger(__name__)


# --- Constants ---
WIND_SAMPLES = 8 # Wind samples per tick
WIND_VALUES = WIND_SAMPLES * 3 # x, y, z per sample

_SEPARATORS = re.compile(r"[ \r\n]+")


class MalformedWindData(ValueError):
    """Raised when a wind unit does not hold exactly WIND_VALUES numbers."""


WindFile = namedtuple("WindFile", ["name", "text"])


def parse_wind_text(text, name="<wind>", wind_values=WIND_VALUES):
    """Parses one whitespace-delimited wind unit into a flat float vector."""
    tokens = [token for token in _SEPARATORS.split(text) if token]
    if len(tokens) != wind_values:
        raise MalformedWindData(f"Wind file {name} has {len(tokens)} values, expected {wind_values}!")
    try:
        return np.array([float(token) for token in tokens], dtype=np.float32)
    except ValueError as e:
        raise MalformedWindData(f"Wind file {name} has a non-numeric value: {e}") from e


class WindSequence:
    """Ordered wind units, parsed and validated each time one is accessed."""

    def __init__(self, units, wind_values=WIND_VALUES):
        self._units = tuple(WindFile(*unit) for unit in units)
        self.wind_values = wind_values

    def __len__(self):
        return len(self._units)

    def __iter__(self):
        return iter(unit.name for unit in self._units)

    def get(self, cursor):
        if not 0 <= cursor < len(self._units):
            raise IndexError(f"Wind cursor {cursor} outside sequence of length {len(self._units)}")
        unit = self._units[cursor]
        return parse_wind_text(unit.text, unit.name, self.wind_values)

    @classmethod
    def from_texts(cls, texts, wind_values=WIND_VALUES):
        return cls([(f"wind_{i}", text) for i, text in enumerate(texts)], wind_values)


# --- Loading ---

def _natural_key(path):
    name = os.path.basename(path)
    return [int(part) if part.isdigit() else part.lower() for part in re.split(r"(\d+)", name)]


def load_wind_sequence(paths, wind_values=WIND_VALUES):
    """Reads wind text files in the given order. Order matters!"""
    units = []
    for path in paths:
        if not os.path.exists(path):
            raise FileNotFoundError(f"Wind file not found at: {path}")
        with open(path, "r", encoding="utf-8") as f:
            units.append(WindFile(os.path.basename(path), f.read()))
    logger.info("Loaded %d wind units.", len(units))
    return WindSequence(units, wind_values)


def load_wind_directory(directory, pattern="*.txt", wind_values=WIND_VALUES):
    """Loads every wind file in a directory, naturally sorted by file name."""
    if not os.path.isdir(directory):
        raise FileNotFoundError(f"Wind directory not found at: {directory}")
    paths = sorted(glob.glob(os.path.join(directory, pattern)), key=_natural_key)
    if not paths:
        logger.warning("No wind files matching '%s' in %s.", pattern, directory)
    return load_wind_sequence(paths, wind_values)
