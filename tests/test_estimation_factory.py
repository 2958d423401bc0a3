"""Unit tests for selecting an estimation variant."""

import numpy as np
import pytest

from estimation import (
    TransformationEstimation,
    TransformationEstimationPointToPlane,
    TransformationEstimationPointToPoint,
    TransformationEstimationType,
    make_estimation,
)
from pointcloud import PointCloud, identity_correspondences


@pytest.mark.parametrize(
    "kind, cls",
    [
        ("point_to_point", TransformationEstimationPointToPoint),
        (TransformationEstimationType.POINT_TO_POINT, TransformationEstimationPointToPoint),
        ("point_to_plane", TransformationEstimationPointToPlane),
        (TransformationEstimationType.POINT_TO_PLANE, TransformationEstimationPointToPlane),
    ],
)
def test_make_estimation(kind, cls):
    est = make_estimation(kind)
    assert isinstance(est, cls)
    assert isinstance(est, TransformationEstimation)
    assert est.estimation_type is TransformationEstimationType(kind)


def test_options_are_forwarded():
    assert make_estimation("point_to_point", with_scaling=True).with_scaling
    assert make_estimation("point_to_plane", on_degenerate="lstsq").on_degenerate == "lstsq"


def test_unknown_kind():
    with pytest.raises(ValueError):
        make_estimation("point_to_line")


def test_variants_share_one_contract(target_with_normals):
    """Both variants agree on a pure translation along well spread normals."""
    t = np.array([0.1, 0.0, -0.2])
    source = PointCloud(target_with_normals.points - t)
    corres = identity_correspondences(len(source))
    for kind in TransformationEstimationType:
        T = make_estimation(kind).compute_transformation(source, target_with_normals, corres)
        np.testing.assert_allclose(T[:3, 3], t, atol=1e-9)


def test_estimations_are_immutable():
    est = make_estimation("point_to_point")
    with pytest.raises(AttributeError):
        est.with_scaling = True
