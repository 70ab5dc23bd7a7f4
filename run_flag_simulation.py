#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Neural Flag Simulation Script

Runs a trained flag displacement model against a recorded wind sequence:
  - Loads the flag mesh, the wind units, the normalization statistics and the model.
  - Ticks the pipelined simulator at a fixed timestep for NUM_TICKS steps.
  - Saves periodic vertex snapshots and plots the mean displacement from rest.
"""

#######################
# --- Configuration --- #
#######################
# File Paths
MESH_FILE = None # Flag mesh (.obj/.ply/...). None builds the default 32 x 32 grid
WIND_DIR = "wind_sequence" # Directory of wind .txt files, natural sort order
MODEL_PATH = "flagwind_model.pth" # Trained FlagDisplacementNet state dict
NORM_PARAMS_FILE = "normalization_params.pkl" # From training. Defaults are used when missing
LOG_FILE = None

# Simulation Parameters
BACKEND = "gpu" # 'gpu' or 'cpu'
NORMALIZE = True # Must match training
NUM_TICKS = 2000
FIXED_DT = 0.02 # Seconds per tick
REALTIME = False # Sleep to hold the fixed timestep

# Model Hyperparameters (Must match the trained model!)
HIDDEN_DIM = 128
MLP_LAYERS = 3

# Output Parameters
OUTPUT_POSITIONS_FILE = "flag_positions.pkl"
OUTPUT_PLOT_FILE = "flag_displacement_plot.png"
POSITION_SAVE_INTERVAL = 10 # Ticks between stored vertex snapshots

###############################
# 1. Imports
###############################
import logging
import os
import pickle
import sys
import time

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np

import inference_backend
import normalization
import vertex_state
import wind_data
from flag_simulator import ConfigurationError, FlagSimulator
from logging_config import setup_logging

logger = logging.getLogger(__name__)


###############################
# 2. Loading
###############################

def load_inputs():
    """Loads mesh, wind sequence, normalization stats and model. Exits on failure."""
    try:
        if MESH_FILE is None:
            mesh = vertex_state.make_flag_grid()
            logger.info("Built default flag grid with %d vertices.", mesh.vertex_count)
        else:
            mesh = vertex_state.load_flag_mesh(MESH_FILE)
    except Exception as e:
        logger.error("Error loading flag mesh: %s", e)
        sys.exit(1)

    try:
        wind_sequence = wind_data.load_wind_directory(WIND_DIR)
    except FileNotFoundError as e:
        logger.error("Error loading wind data: %s", e)
        sys.exit(1)

    if os.path.exists(NORM_PARAMS_FILE):
        try:
            stats = normalization.load_normalization_params(NORM_PARAMS_FILE)
        except (ValueError, KeyError, pickle.UnpicklingError) as e:
            logger.error("Error loading normalization parameters: %s", e)
            sys.exit(1)
    else:
        logger.warning("Normalization file %s not found. Using built-in training statistics.", NORM_PARAMS_FILE)
        stats = normalization.DEFAULT_STATS

    try:
        model = inference_backend.load_model(MODEL_PATH, wind_samples=wind_data.WIND_SAMPLES,
                                             hidden_dim=HIDDEN_DIM, mlp_layers=MLP_LAYERS)
    except Exception as e:
        logger.error("Error loading model: %s", e)
        sys.exit(1)

    return mesh, wind_sequence, stats, model


###############################
# 3. Simulation Loop
###############################

def run_simulation(simulator, num_ticks, fixed_dt, realtime=False):
    """Ticks the simulator and collects periodic vertex snapshots."""
    positions_dict = {}
    mean_displacements = []
    rest = simulator.state.rest_vertices
    next_tick_time = time.perf_counter()

    for tick in range(num_ticks):
        try:
            simulator.tick()
        except Exception as e:
            logger.error("Error during tick %d: %s", tick, e)
            break

        working = simulator.state.working_vertices
        mean_displacements.append(float(np.linalg.norm(working - rest, axis=1).mean()))
        if tick % POSITION_SAVE_INTERVAL == 0:
            positions_dict[tick * fixed_dt] = working.copy()
        if tick % 100 == 0:
            logger.info("Simulated tick %d (cursor %d, resets %d)", tick, simulator.cursor, simulator.reset_count)

        if realtime:
            next_tick_time += fixed_dt
            delay = next_tick_time - time.perf_counter()
            if delay > 0:
                time.sleep(delay)

    return positions_dict, mean_displacements


def save_outputs(positions_dict, mean_displacements, fixed_dt):
    try:
        with open(OUTPUT_POSITIONS_FILE, "wb") as f:
            pickle.dump(positions_dict, f)
        logger.info("Saved flag vertex snapshots to %s", OUTPUT_POSITIONS_FILE)
    except OSError as e:
        logger.error("Error saving positions: %s", e)

    if not mean_displacements:
        logger.info("No displacement data to plot.")
        return
    times = np.arange(len(mean_displacements)) * fixed_dt
    plt.figure(figsize=(10, 6))
    plt.plot(times, mean_displacements, label='Mean displacement from rest', linestyle='-')
    plt.xlabel('Time (s)')
    plt.ylabel('Mean vertex displacement')
    plt.title('Neural Flag Simulation: Mean Displacement from Rest Pose')
    plt.legend()
    plt.grid(True)
    plt.tight_layout()
    plt.savefig(OUTPUT_PLOT_FILE)
    plt.close()
    logger.info("Saved displacement plot to %s", OUTPUT_PLOT_FILE)


def main():
    setup_logging(logging.INFO, LOG_FILE)
    mesh, wind_sequence, stats, model = load_inputs()

    engine = inference_backend.create_worker(model, BACKEND)
    with FlagSimulator(engine, mesh, wind_sequence, stats=stats, normalization_enabled=NORMALIZE) as simulator:
        try:
            simulator.start()
        except ConfigurationError:
            logger.error("Simulation disabled.")
            return 1

        start_run_time = time.time()
        positions_dict, mean_displacements = run_simulation(simulator, NUM_TICKS, FIXED_DT, REALTIME)
        logger.info("Total Simulation Loop Time: %.3f seconds", time.time() - start_run_time)
        logger.info("Ticks: %d, dispatches: %d, harvests: %d, skipped: %d, resets: %d",
                    simulator.tick_count, simulator.dispatch_count, simulator.harvest_count,
                    simulator.skipped_ticks, simulator.reset_count)

    save_outputs(positions_dict, mean_displacements, FIXED_DT)
    logger.info("Script execution complete.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
