import numpy as np


# 点群
class PointCloud:
    """位置合わせに用いる 3 次元点群。

    点座標 (N, 3) と、任意で同じ長さの法線 (N, 3) を保持する。
    法線は「全点にある」か「まったくない」かのどちらかとする。

    Args:
        points (np.ndarray): 点群座標 (N, 3)。float64 に変換して保持する。
        normals (np.ndarray | None): 各点の単位法線 (N, 3)。None の場合は法線なし。

    Attributes:
        points (np.ndarray): 点群座標 (N, 3)。
        normals (np.ndarray | None): 単位法線 (N, 3) または None。

    Raises:
        ValueError: points が (N, 3) でない場合、または normals の形状が points と異なる場合。
    """

    __slots__ = ("points", "normals")

    def __init__(self, points: np.ndarray, normals: np.ndarray | None = None):
        P = np.ascontiguousarray(points, dtype=np.float64)
        if P.size == 0:
            P = P.reshape(0, 3)
        if P.ndim != 2 or P.shape[1] != 3:
            raise ValueError(f"points must have shape (N, 3), got {P.shape}")

        if normals is not None:
            Nrm = np.ascontiguousarray(normals, dtype=np.float64)
            if Nrm.size == 0:
                Nrm = Nrm.reshape(0, 3)
            if Nrm.shape != P.shape:
                raise ValueError(
                    f"normals must match points shape {P.shape}, got {Nrm.shape}"
                )
            normals = Nrm

        self.points: np.ndarray = P
        self.normals: np.ndarray | None = normals

    def __len__(self) -> int:
        return self.points.shape[0]

    def __repr__(self) -> str:
        return f"PointCloud(n={len(self)}, has_normals={self.has_normals()})"

    def has_normals(self) -> bool:
        """法線を持つかどうか。"""
        return self.normals is not None

    def transformed(self, transformation: np.ndarray) -> "PointCloud":
        """4×4 同次変換を適用した新しい点群を返す（元の点群は変更しない）。

        法線は 3×3 ブロックで回転したあと再正規化する。
        相似変換（スケール付き）でも単位長が保たれる。

        Args:
            transformation (np.ndarray): 4×4 同次変換行列。

        Returns:
            PointCloud: 変換後の点群。
        """
        T = np.asarray(transformation, dtype=np.float64)
        points = transform_points(self.points, T)
        normals = None
        if self.normals is not None:
            normals = self.normals @ T[:3, :3].T
            norm = np.linalg.norm(normals, axis=1, keepdims=True)
            # ゼロ法線はそのまま
            normals = np.divide(normals, norm, out=normals, where=norm > 0)
        return PointCloud(points, normals)


def transform_points(points: np.ndarray, transformation: np.ndarray) -> np.ndarray:
    """点群 (N, 3) に 4×4 同次変換を適用する。

    Args:
        points (np.ndarray): 点群 (N, 3)。
        transformation (np.ndarray): 4×4 同次変換行列。

    Returns:
        np.ndarray: 変換後の点群 (N, 3)。
    """
    T = np.asarray(transformation, dtype=np.float64)
    if T.shape != (4, 4):
        raise ValueError(f"transformation must be 4x4, got {T.shape}")
    P = np.asarray(points, dtype=np.float64)
    return P @ T[:3, :3].T + T[:3, 3]


# 対応集合
def as_correspondence_set(pairs) -> np.ndarray:
    """対応ペア列を (K, 2) の int64 配列に変換する。

    各行は (source_index, target_index)。インデックスの範囲チェックは行わない
    （呼び出し側の責任）。

    Args:
        pairs: (K, 2) 配列、またはインデックスペアのシーケンス。空でもよい。

    Returns:
        np.ndarray: 対応集合 (K, 2)。空の場合は (0, 2)。

    Raises:
        ValueError: 形状が (K, 2) にならない場合。
    """
    C = np.asarray(pairs, dtype=np.int64)
    if C.size == 0:
        return C.reshape(0, 2)
    if C.ndim != 2 or C.shape[1] != 2:
        raise ValueError(f"correspondences must have shape (K, 2), got {C.shape}")
    return C


def identity_correspondences(n: int) -> np.ndarray:
    """i 番目同士を対応させる対応集合 [(0, 0), (1, 1), ...] を生成する。"""
    idx = np.arange(n, dtype=np.int64)
    return np.stack([idx, idx], axis=1)
