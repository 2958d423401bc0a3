"""Unit tests for point cloud and correspondence helpers."""

import numpy as np
import pytest

from estimation import euler_zyx_to_rotation
from pointcloud import (
    PointCloud,
    as_correspondence_set,
    identity_correspondences,
    transform_points,
)


class TestPointCloud:
    def test_points_are_float64(self):
        pcd = PointCloud([[0, 0, 0], [1, 2, 3]])
        assert pcd.points.dtype == np.float64
        assert len(pcd) == 2
        assert not pcd.has_normals()

    def test_with_normals(self):
        pcd = PointCloud(np.zeros((4, 3)), np.tile([0.0, 0.0, 1.0], (4, 1)))
        assert pcd.has_normals()
        assert pcd.normals.shape == (4, 3)

    def test_empty_cloud(self):
        pcd = PointCloud(np.empty((0, 3)))
        assert len(pcd) == 0
        assert pcd.points.shape == (0, 3)

    def test_rejects_bad_point_shape(self):
        with pytest.raises(ValueError):
            PointCloud(np.zeros((5, 2)))

    def test_rejects_partial_normals(self):
        """Normals are either present for every point or absent."""
        with pytest.raises(ValueError):
            PointCloud(np.zeros((5, 3)), np.zeros((4, 3)))


class TestTransformed:
    def test_does_not_mutate_input(self):
        points = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
        pcd = PointCloud(points, [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
        before = pcd.points.copy()
        T = np.eye(4)
        T[:3, 3] = [1.0, 2.0, 3.0]

        moved = pcd.transformed(T)

        np.testing.assert_array_equal(pcd.points, before)
        np.testing.assert_allclose(moved.points, before + [1.0, 2.0, 3.0])
        # Translation does not change normals
        np.testing.assert_allclose(moved.normals, pcd.normals)

    def test_normals_stay_unit_under_scaling(self):
        pcd = PointCloud([[1.0, 1.0, 1.0]], [[0.0, 0.0, 1.0]])
        T = np.eye(4)
        T[:3, :3] = 3.0 * euler_zyx_to_rotation(0.0, np.pi / 2, 0.0)

        moved = pcd.transformed(T)

        np.testing.assert_allclose(np.linalg.norm(moved.normals, axis=1), [1.0])
        np.testing.assert_allclose(moved.normals[0], [1.0, 0.0, 0.0], atol=1e-12)

    def test_transform_points_rejects_non_homogeneous(self):
        with pytest.raises(ValueError):
            transform_points(np.zeros((2, 3)), np.eye(3))


class TestCorrespondenceSet:
    def test_from_list_of_pairs(self):
        C = as_correspondence_set([(0, 1), (2, 3)])
        assert C.dtype == np.int64
        assert C.shape == (2, 2)

    def test_empty(self):
        assert as_correspondence_set([]).shape == (0, 2)
        assert identity_correspondences(0).shape == (0, 2)

    def test_rejects_bad_shape(self):
        with pytest.raises(ValueError):
            as_correspondence_set([0, 1, 2])

    def test_identity_correspondences(self):
        np.testing.assert_array_equal(
            identity_correspondences(3), [[0, 0], [1, 1], [2, 2]]
        )
