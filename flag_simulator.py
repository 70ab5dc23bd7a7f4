#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Pipelined inference driver for the neural flag simulation.

Each call to `FlagSimulator.tick()` is one fixed-timestep simulation step:
  - Harvests the displacement predicted for the *previous* tick (if ready).
  - Denormalizes it and integrates it into the working vertices.
  - Builds the next model input from the updated vertices and the next wind unit.
  - Schedules the model without waiting for it.
  - Advances the wind cursor, resetting the flag to its rest pose when the
    wind sequence is exhausted.

Results arrive one tick late. That lag lets model execution overlap with the
CPU-side preparation and mesh update of the following tick. At most one
inference job is outstanding at any time: while a scheduled job has not been
harvested the driver does not schedule another one, but the wind cursor
still advances so resets keep to the tick clock.
"""

import logging

import numpy as np

from inference_backend import DISPLACEMENT_OUTPUT, FLAG_INPUT, WIND_INPUT
from normalization import DEFAULT_STATS, denormalize, normalize
from vertex_state import NUM_VERTICES, VertexState
from wind_data import WIND_SAMPLES, MalformedWindData

logger = logging.getLogger(__name__)


# --- Driver Phases ---
IDLE = "idle"
RUNNING = "running"


class ConfigurationError(RuntimeError):
    """Raised when the mesh or wind layout does not match the model."""


class FlagSimulator:
    """Drives the per-tick harvest / integrate / prepare / dispatch / advance cycle."""

    def __init__(self, engine, mesh, wind_sequence, stats=DEFAULT_STATS, normalization_enabled=True,
                 num_vertices=NUM_VERTICES, wind_samples=WIND_SAMPLES):
        self.engine = engine
        self.mesh = mesh
        self.wind_sequence = wind_sequence
        self.stats = stats
        self.normalization_enabled = normalization_enabled
        self.num_vertices = num_vertices
        self.wind_samples = wind_samples

        self.enabled = True
        self.state = None
        self.phase = IDLE
        self.cursor = 0

        self.tick_count = 0
        self.dispatch_count = 0
        self.harvest_count = 0
        self.skipped_ticks = 0
        self.failed_harvests = 0
        self.reset_count = 0
        self._outstanding = False
        self._closed = False

    # --- Lifecycle ---

    def start(self):
        """Validates the configuration and takes a working copy of the mesh vertices."""
        logger.info("Flag mesh vertex count: %d", self.mesh.vertex_count)
        if self.mesh.vertex_count != self.num_vertices:
            self.enabled = False
            message = f"Mesh vertex count ({self.mesh.vertex_count}) does not match model input ({self.num_vertices})!"
            logger.error(message)
            raise ConfigurationError(message)
        wind_values = getattr(self.wind_sequence, "wind_values", self.wind_samples * 3)
        if wind_values != self.wind_samples * 3:
            self.enabled = False
            message = f"Wind units hold {wind_values} values, which is not {self.wind_samples} samples of 3!"
            logger.error(message)
            raise ConfigurationError(message)
        self.state = VertexState(self.mesh)
        self.cursor = 0
        self.phase = IDLE

    def close(self):
        if self._closed:
            return
        self._closed = True
        self.enabled = False
        self.engine.dispose()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False

    @property
    def outstanding_dispatches(self):
        return self.dispatch_count - self.harvest_count - self.failed_harvests

    # --- Tick ---

    def tick(self):
        """Runs one simulation step. Returns True if the step was carried out."""
        if not self.enabled or len(self.wind_sequence) == 0:
            return False
        if self.state is None:
            raise RuntimeError("FlagSimulator.start() must be called before tick().")
        self.tick_count += 1

        # 1-2. Harvest the result scheduled on an earlier tick
        self._harvest()
        self.phase = RUNNING

        # 3-4. Prepare inputs from the current vertices and dispatch
        if self._outstanding:
            self.skipped_ticks += 1
            logger.debug("Tick %d: inference still running, skipping dispatch of wind unit %d.",
                         self.tick_count, self.cursor)
        else:
            try:
                wind = self.wind_sequence.get(self.cursor)
            except MalformedWindData as e:
                self.skipped_ticks += 1
                logger.error("Skipping dispatch for wind unit %d: %s", self.cursor, e)
            else:
                self._dispatch(self._prepare_flag_input(), wind.reshape(1, self.wind_samples, 3))

        # 5. Advance the wind cursor
        self._advance()
        return True

    def _harvest(self):
        try:
            gpu_displacements = self.engine.peek_output(DISPLACEMENT_OUTPUT)
        except Exception:
            # The failed job is finished, so the next tick may dispatch again
            if self._outstanding:
                self.failed_harvests += 1
            self._outstanding = False
            raise
        if gpu_displacements is None:
            return False
        self.harvest_count += 1
        self._outstanding = False
        displacements = self.engine.read_back(gpu_displacements)
        displacements = np.asarray(displacements, dtype=np.float64).reshape(self.num_vertices, 3)
        stats = self.stats
        self.state.integrate(denormalize(displacements, stats.disp_mean, stats.disp_std, self.normalization_enabled))
        return True

    def _prepare_flag_input(self):
        stats = self.stats
        flag = normalize(self.state.working_vertices, stats.pos_mean, stats.pos_std, self.normalization_enabled)
        return flag.astype(np.float32).reshape(1, self.num_vertices, 3)

    def _dispatch(self, flag_input, wind_input):
        self.engine.set_input(FLAG_INPUT, flag_input)
        self.engine.set_input(WIND_INPUT, wind_input)
        self.engine.schedule()
        self.dispatch_count += 1
        self._outstanding = True

    def _advance(self):
        self.cursor += 1
        if self.cursor >= len(self.wind_sequence):
            self.cursor = 0
            self.state.reset()
            self.reset_count += 1
            logger.info("--- Simulation finished, resetting to initial position. ---")
