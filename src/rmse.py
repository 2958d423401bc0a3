# RMSE の計算
import numpy as np


def rmse_point_to_point(src: np.ndarray, tgt: np.ndarray) -> float:
    """対応済み点群間のユークリッド距離の RMSE を計算する。

    src[i] と tgt[i] が対応していると仮定し、二乗距離の平均の平方根を返す。

    Args:
        src (np.ndarray): ソース点群 (N, 3)。
        tgt (np.ndarray): ターゲット点群 (N, 3)。src と同じ順番で対応。

    Returns:
        float: RMSE 値。N = 0 のときは 0.0。
    """
    if len(src) == 0:
        return 0.0
    d2 = ((src - tgt) ** 2).sum(axis=1)
    return float(np.sqrt(d2.mean()))


def point_to_plane_residuals(
    src: np.ndarray, tgt: np.ndarray, normals: np.ndarray
) -> np.ndarray:
    """点と平面の符号付き距離 r_i = (src_i - tgt_i) · n_i を計算する。

    Args:
        src (np.ndarray): ソース点群 (N, 3)。
        tgt (np.ndarray): ターゲット点群 (N, 3)。
        normals (np.ndarray): ターゲット側の単位法線 (N, 3)。

    Returns:
        np.ndarray: 残差 (N,)。
    """
    return np.einsum("ij,ij->i", src - tgt, normals)


def rmse_point_to_plane(src: np.ndarray, tgt: np.ndarray, normals: np.ndarray) -> float:
    """点と平面の距離による RMSE を計算する。

    全対応の r_i^2 の総和を対応数で割り、その平方根を返す。

    Args:
        src (np.ndarray): ソース点群 (N, 3)。
        tgt (np.ndarray): ターゲット点群 (N, 3)。
        normals (np.ndarray): ターゲット側の単位法線 (N, 3)。

    Returns:
        float: RMSE 値。N = 0 のときは 0.0。
    """
    if len(src) == 0:
        return 0.0
    r = point_to_plane_residuals(src, tgt, normals)
    return float(np.sqrt((r**2).sum() / len(r)))
