#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Flag mesh host and the simulation's vertex state.

`FlagMesh` wraps a trimesh mesh and exposes the small surface the simulator
needs: a fixed-length vertex buffer and normal recomputation. `VertexState`
owns the deformable working copy of the vertices and the rest-pose backup.
"""

import logging
import os

import numpy as np
import trimesh

logger = logging.getLogger(__name__)


# --- Constants ---
NUM_VERTICES = 1024 # Must match the model
FLAG_ROWS = 32
FLAG_COLS = 32


# --- Mesh Host ---

class FlagMesh:
    """Mesh host backed by a trimesh.Trimesh. Vertex order is never changed."""

    def __init__(self, mesh):
        self.mesh = mesh

    @property
    def vertex_count(self):
        return len(self.mesh.vertices)

    @property
    def vertices(self):
        return np.array(self.mesh.vertices, dtype=np.float64)

    def set_vertices(self, vertices):
        vertices = np.asarray(vertices, dtype=np.float64)
        if vertices.shape != (self.vertex_count, 3):
            raise ValueError(f"Vertex buffer shape {vertices.shape} does not match mesh ({self.vertex_count}, 3)")
        # Assigning a new array invalidates trimesh's cached normals
        self.mesh.vertices = vertices.copy()

    def recalculate_normals(self):
        return self.mesh.vertex_normals


def make_flag_grid(rows=FLAG_ROWS, cols=FLAG_COLS, width=1.0, height=0.66):
    """Builds a rectangular flag in the x-y plane, pole edge at x = 0."""
    if rows < 2 or cols < 2:
        raise ValueError("A flag grid needs at least 2 rows and 2 columns.")
    xs = np.linspace(0.0, width, cols)
    ys = np.linspace(0.0, -height, rows)
    grid_x, grid_y = np.meshgrid(xs, ys)
    vertices = np.column_stack([grid_x.ravel(), grid_y.ravel(), np.zeros(rows * cols)])

    faces = []
    for r in range(rows - 1):
        for c in range(cols - 1):
            i = r * cols + c
            faces.append([i, i + cols, i + 1])
            faces.append([i + 1, i + cols, i + cols + 1])
    mesh = trimesh.Trimesh(vertices=vertices, faces=np.array(faces), process=False)
    return FlagMesh(mesh)


def load_flag_mesh(mesh_path, scale=1.0):
    """Loads a flag mesh without merging or reordering vertices."""
    if not os.path.exists(mesh_path):
        raise FileNotFoundError(f"Mesh file not found at: {mesh_path}")
    mesh = trimesh.load_mesh(mesh_path, process=False)
    if scale != 1.0:
        mesh.vertices = mesh.vertices * scale
    logger.info("Loaded flag mesh from %s with %d vertices. Bounds: %s", mesh_path, len(mesh.vertices), mesh.bounds.tolist())
    return FlagMesh(mesh)


# --- Vertex State ---

class VertexState:
    """Working vertex positions plus the untouched rest pose used for resets."""

    def __init__(self, mesh):
        self.mesh = mesh
        self.rest_vertices = np.array(mesh.vertices, dtype=np.float64)
        self.rest_vertices.setflags(write=False)
        self.working_vertices = self.rest_vertices.copy()

    @property
    def num_vertices(self):
        return self.rest_vertices.shape[0]

    def integrate(self, displacement_field):
        """Adds one displacement per vertex and pushes the result to the mesh."""
        displacement_field = np.asarray(displacement_field, dtype=np.float64)
        if displacement_field.shape != self.working_vertices.shape:
            raise ValueError(f"Displacement field shape {displacement_field.shape} does not match vertices {self.working_vertices.shape}")
        self.working_vertices += displacement_field
        self._update_mesh()

    def reset(self):
        """Copies the rest pose back into the working vertices."""
        np.copyto(self.working_vertices, self.rest_vertices)
        self._update_mesh()

    def _update_mesh(self):
        self.mesh.set_vertices(self.working_vertices)
        self.mesh.recalculate_normals()
