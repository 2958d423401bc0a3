import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from pointcloud import PointCloud


def random_unit_vectors(rng, n):
    v = rng.normal(size=(n, 3))
    return v / np.linalg.norm(v, axis=1, keepdims=True)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def target_with_normals(rng):
    """Random target cloud in a unit cube with random unit normals."""
    points = rng.uniform(-1.0, 1.0, size=(200, 3))
    return PointCloud(points, random_unit_vectors(rng, 200))


@pytest.fixture
def triangle():
    """Three points spanning the XY plane."""
    return PointCloud([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
