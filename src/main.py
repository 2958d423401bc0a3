import argparse

import numpy as np

from pointcloud import PointCloud, identity_correspondences
from estimation import (
    DegenerateSystemError,
    TransformationEstimationType,
    euler_zyx_to_rotation,
    make_estimation,
)
from visualize import show_correspondences


def sample_sphere(n: int, rng: np.random.Generator) -> PointCloud:
    """単位球面上に一様に点をサンプリングし、法線付きの点群を返す。"""
    v = rng.normal(size=(n, 3))
    v /= np.linalg.norm(v, axis=1, keepdims=True)
    # 球面の法線は位置ベクトルそのもの
    return PointCloud(v, v.copy())


def main():
    parser = argparse.ArgumentParser(description="Transformation estimation demo")
    parser.add_argument("--points", type=int, default=500, help="Number of points")
    parser.add_argument("--seed", type=int, default=0, help="Random seed")
    parser.add_argument("--scale", type=float, default=1.0, help="Scale applied to the target")
    parser.add_argument("--show", action="store_true", help="Plot the clouds")
    args = parser.parse_args()

    rng = np.random.default_rng(args.seed)

    # ====================================
    # STEP 1: Build clouds
    # ====================================
    print("===== STEP 1: Build clouds =====")
    target = sample_sphere(args.points, rng)

    T_true = np.eye(4)
    T_true[:3, :3] = euler_zyx_to_rotation(0.02, -0.01, 0.03)
    T_true[:3, 3] = [0.05, -0.02, 0.04]
    # source = T_true^-1 · target なので、推定結果は T_true に近づく
    source = target.transformed(np.linalg.inv(T_true))
    if args.scale != 1.0:
        target = PointCloud(target.points * args.scale, target.normals)
    corres = identity_correspondences(len(source))
    print("source =", source)
    print("target =", target)

    if args.show:
        show_correspondences(source, target, corres[::10], title="Initial correspondences")

    # ====================================
    # STEP 2: Point to point
    # ====================================
    print("===== STEP 2: Point to point =====")
    for with_scaling in (False, True):
        est = make_estimation(TransformationEstimationType.POINT_TO_POINT, with_scaling=with_scaling)
        T = est.compute_transformation(source, target, corres)
        aligned = source.transformed(T)
        print(f"with_scaling={with_scaling}")
        print(np.array2string(T, precision=5, suppress_small=True))
        print(f"   RMSE before = {est.compute_rmse(source, target, corres):.6f}")
        print(f"   RMSE after  = {est.compute_rmse(aligned, target, corres):.6f}")

    # ====================================
    # STEP 3: Point to plane
    # ====================================
    print("===== STEP 3: Point to plane =====")
    est = make_estimation("point_to_plane")
    try:
        T = est.compute_transformation(source, target, corres)
    except DegenerateSystemError as exc:
        print("Degenerate system:", exc)
        return
    aligned = source.transformed(T)
    print(np.array2string(T, precision=5, suppress_small=True))
    print(f"   RMSE before = {est.compute_rmse(source, target, corres):.6f}")
    print(f"   RMSE after  = {est.compute_rmse(aligned, target, corres):.6f}")

    if args.show:
        show_correspondences(aligned, target, corres[::10], title="Point to plane")


if __name__ == "__main__":
    main()
