import numpy as np
import pytest

from fakes import FakeMesh
from vertex_state import NUM_VERTICES, FlagMesh, VertexState, load_flag_mesh, make_flag_grid


def test_default_grid_matches_model_vertex_count():
    mesh = make_flag_grid()
    assert mesh.vertex_count == NUM_VERTICES
    assert len(mesh.mesh.faces) == 2 * 31 * 31
    # Row-major order, pole edge at x = 0
    assert np.allclose(mesh.vertices[0], [0.0, 0.0, 0.0])
    assert mesh.vertices[1][0] > 0.0
    assert mesh.vertices[32][1] < 0.0


def test_grid_needs_two_rows_and_columns():
    with pytest.raises(ValueError):
        make_flag_grid(rows=1, cols=4)


def test_integrate_adds_displacement_and_updates_mesh():
    mesh = FakeMesh([[0.0, 0.0, 0.0], [1.0, 2.0, 3.0]])
    state = VertexState(mesh)
    state.integrate([[0.5, 0.0, -1.0], [0.0, 0.25, 0.0]])
    assert np.array_equal(state.working_vertices, [[0.5, 0.0, -1.0], [1.0, 2.25, 3.0]])
    assert np.array_equal(mesh.vertices, state.working_vertices)
    assert mesh.uploads == 1
    assert mesh.normal_updates == 1


def test_integrate_rejects_wrong_shape():
    state = VertexState(FakeMesh(np.zeros((2, 3))))
    with pytest.raises(ValueError):
        state.integrate(np.zeros((3, 3)))


def test_reset_restores_rest_pose_bitwise():
    rest = np.array([[0.1, 0.2, 0.3], [-0.7, 1e-9, 4.0]])
    mesh = FakeMesh(rest)
    state = VertexState(mesh)
    for _ in range(5):
        state.integrate(np.full((2, 3), 0.1))
    state.reset()
    assert np.array_equal(state.working_vertices, rest)
    assert state.working_vertices.tobytes() == rest.tobytes()
    assert np.array_equal(mesh.vertices, rest)
    assert mesh.normal_updates == 6


def test_rest_vertices_are_read_only():
    state = VertexState(FakeMesh(np.zeros((2, 3))))
    with pytest.raises(ValueError):
        state.rest_vertices[0, 0] = 1.0
    state.integrate(np.ones((2, 3)))
    assert np.array_equal(state.rest_vertices, np.zeros((2, 3)))


def test_flag_mesh_recomputes_normals_after_update():
    mesh = make_flag_grid(rows=4, cols=4)
    flat_normals = np.array(mesh.recalculate_normals())
    assert np.allclose(np.abs(flat_normals[:, 2]), 1.0)

    state = VertexState(mesh)
    displacement = np.zeros((16, 3))
    displacement[5, 2] = 0.5
    state.integrate(displacement)
    bent_normals = np.array(mesh.recalculate_normals())
    assert not np.allclose(bent_normals, flat_normals)
    assert np.allclose(mesh.vertices, state.working_vertices)


def test_flag_mesh_rejects_wrong_buffer_length():
    mesh = make_flag_grid(rows=3, cols=3)
    with pytest.raises(ValueError):
        mesh.set_vertices(np.zeros((8, 3)))


def test_load_flag_mesh_preserves_vertex_order(tmp_path):
    grid = make_flag_grid(rows=5, cols=6)
    path = tmp_path / "flag.ply"
    grid.mesh.export(str(path))
    loaded = load_flag_mesh(str(path))
    assert isinstance(loaded, FlagMesh)
    assert loaded.vertex_count == 30
    assert np.allclose(loaded.vertices, grid.vertices)


def test_load_flag_mesh_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_flag_mesh(str(tmp_path / "flag.obj"))
