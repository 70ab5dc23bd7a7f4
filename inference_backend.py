#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Inference backend used by the flag simulator.

`InferenceEngine` is the named-tensor contract the simulator is written
against. `TorchWorker` implements it with a PyTorch model executed on a
single background thread, so `schedule()` returns immediately and results are
collected later by non-blocking polling with `peek_output()`.
"""

import abc
import logging
import os
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import torch

import models

logger = logging.getLogger(__name__)


# --- Tensor Names ---
FLAG_INPUT = "flag_input"
WIND_INPUT = "wind_input"
DISPLACEMENT_OUTPUT = "displacement_output"


class InferenceEngine(abc.ABC):
    """Executes a fixed model given named inputs and exposes named outputs."""

    @abc.abstractmethod
    def set_input(self, name, values):
        """Stages one named input for the next schedule() call."""

    @abc.abstractmethod
    def schedule(self):
        """Starts executing the model on the staged inputs without waiting."""

    @abc.abstractmethod
    def peek_output(self, name):
        """Returns the named output if a finished result is available, else None."""

    @abc.abstractmethod
    def read_back(self, tensor):
        """Copies an output tensor into a host numpy array."""

    @abc.abstractmethod
    def dispose(self):
        """Releases the engine and everything it retains."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.dispose()
        return False


class TorchWorker(InferenceEngine):
    """Runs a FlagDisplacementNet-style model on a one-thread executor."""

    input_names = (FLAG_INPUT, WIND_INPUT)

    def __init__(self, model, device="cpu"):
        self.device = torch.device(device)
        self.model = model.to(self.device)
        self.model.eval()
        self._inputs = {}
        self._outputs = {}
        self._job = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="torch-worker")
        self._disposed = False

    @property
    def busy(self):
        return self._job is not None and not self._job.done()

    def set_input(self, name, values):
        self._check_alive()
        if name not in self.input_names:
            raise KeyError(f"Unknown model input '{name}'. Expected one of {self.input_names}.")
        tensor = torch.as_tensor(np.asarray(values), dtype=torch.float32)
        self._inputs[name] = tensor.to(self.device)

    def schedule(self):
        self._check_alive()
        # Never overwrite a result that has not been harvested yet
        if self._job is not None:
            raise RuntimeError("Cannot schedule: the previous inference job has not been harvested.")
        if self._outputs:
            raise RuntimeError(f"Cannot schedule: unconsumed outputs {sorted(self._outputs)}.")
        missing = [name for name in self.input_names if name not in self._inputs]
        if missing:
            raise KeyError(f"Missing model inputs: {missing}")
        inputs, self._inputs = self._inputs, {}
        self._job = self._executor.submit(self._execute, inputs)

    def _execute(self, inputs):
        with torch.no_grad():
            displacement = self.model(inputs[FLAG_INPUT], inputs[WIND_INPUT])
        if self.device.type == "cuda":
            torch.cuda.synchronize(self.device)
        return {DISPLACEMENT_OUTPUT: displacement}

    def peek_output(self, name):
        self._check_alive()
        if self._job is not None and self._job.done():
            job, self._job = self._job, None
            # Re-raises any exception from the model on this thread
            self._outputs = job.result()
        return self._outputs.pop(name, None)

    def read_back(self, tensor):
        return tensor.detach().to("cpu").numpy().copy()

    def dispose(self):
        if self._disposed:
            return
        self._disposed = True
        self._executor.shutdown(wait=True)
        self._job = None
        self._inputs.clear()
        self._outputs.clear()
        if self.device.type == "cuda":
            torch.cuda.empty_cache()
        logger.info("Inference worker on %s disposed.", self.device)

    def _check_alive(self):
        if self._disposed:
            raise RuntimeError("Inference worker has been disposed.")


# --- Model Loading ---

def resolve_device(backend="gpu"):
    """Maps a backend preference ('gpu' or 'cpu') to a torch device."""
    backend = backend.lower()
    if backend == "gpu":
        if torch.cuda.is_available():
            return torch.device("cuda:0")
        logger.warning("GPU backend requested but CUDA is not available. Falling back to CPU.")
        return torch.device("cpu")
    if backend == "cpu":
        return torch.device("cpu")
    raise ValueError(f"Unknown backend '{backend}'. Use 'gpu' or 'cpu'.")


def load_model(model_path, device="cpu", wind_samples=8, hidden_dim=128, mlp_layers=3):
    """Builds a FlagDisplacementNet and loads trained weights into it."""
    if not os.path.exists(model_path):
        raise FileNotFoundError(f"Trained model file not found at: {model_path}")
    model = models.FlagDisplacementNet(wind_samples=wind_samples, hidden_dim=hidden_dim, mlp_layers=mlp_layers)
    model_state_dict = torch.load(model_path, map_location=device)
    # Checkpoints saved from nn.DataParallel carry a 'module.' prefix
    if list(model_state_dict.keys())[0].startswith('module.'):
        model_state_dict = {k.partition('module.')[2]: v for k, v in model_state_dict.items()}
    model.load_state_dict(model_state_dict)
    model.eval()
    logger.info("Successfully loaded trained model from %s.", model_path)
    return model


def create_worker(model, backend="gpu"):
    """Creates an execution context for a loaded model on the preferred backend."""
    device = resolve_device(backend)
    logger.info("Using device: %s", device)
    return TorchWorker(model, device)
