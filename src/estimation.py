import enum
import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import numpy as np

from pointcloud import PointCloud, as_correspondence_set
from rmse import point_to_plane_residuals, rmse_point_to_plane, rmse_point_to_point

logger = logging.getLogger(__name__)


class RegistrationError(RuntimeError):
    """変換推定で発生するエラーの基底クラス。"""


class DegenerateSystemError(RegistrationError):
    """点対平面の 6×6 正規方程式が正定値でない（退化している）場合のエラー。

    対応が少ない、または法線がすべて平行な場合などに発生する。
    呼び出し側は反復のスキップ、点対点への切り替え、中断などを選択できる。

    Attributes:
        ATA (np.ndarray): 分解に失敗した 6×6 行列。
    """

    def __init__(self, message: str, ATA: np.ndarray):
        super().__init__(message)
        self.ATA = ATA


class TransformationEstimationType(enum.Enum):
    POINT_TO_POINT = "point_to_point"
    POINT_TO_PLANE = "point_to_plane"


@runtime_checkable
class TransformationEstimation(Protocol):
    """対応集合から 4×4 変換と RMSE を求める推定器の共通インターフェース。"""

    estimation_type: TransformationEstimationType

    def compute_rmse(
        self, source: PointCloud, target: PointCloud, correspondences
    ) -> float: ...

    def compute_transformation(
        self, source: PointCloud, target: PointCloud, correspondences
    ) -> np.ndarray: ...


# 相似変換（Umeyama）
def umeyama(
    src: np.ndarray, dst: np.ndarray, with_scaling: bool = False
) -> np.ndarray:
    """SVD を用いて点群 src を点群 dst に合わせる剛体（相似）変換を求める。

    両者の重心を一致させ、相互共分散行列の SVD から
    二乗距離の総和を最小化する回転 R（と任意でスケール c）を求める。
    det(U)·det(V) < 0 のときは最後の特異値の符号を反転し、鏡映ではなく
    必ず回転（det = +1）を返す。

    Args:
        src (np.ndarray): ソース点群 (N, 3)。
        dst (np.ndarray): ターゲット点群 (N, 3)。src と同じ順番で対応していると仮定。
        with_scaling (bool): True の場合は一様スケールも推定する。

    Returns:
        np.ndarray: 4×4 同次変換行列。左上 3×3 が c·R、右上 3×1 が平行移動。

    Notes:
        - 共分散は (1/N) Σ (dst_i - dst_mean)(src_i - src_mean)^T。
        - スケールは trace(D·S) / ソース分散。ソース分散が 0 の場合は c = 1 とする。
    """
    n = src.shape[0]
    T = np.eye(4)
    if n == 0:
        return T

    src_mean, dst_mean = src.mean(axis=0), dst.mean(axis=0)
    src0, dst0 = src - src_mean, dst - dst_mean

    # 相互共分散行列 (3×3)
    sigma = dst0.T @ src0 / n
    U, D, Vt = np.linalg.svd(sigma)

    # 鏡映の補正
    S = np.ones(3)
    if np.linalg.det(U) * np.linalg.det(Vt) < 0:
        S[2] = -1.0
    R = (U * S) @ Vt

    c = 1.0
    if with_scaling:
        src_var = (src0**2).sum() / n
        if src_var > 0:
            c = float(D @ S) / src_var

    T[:3, :3] = c * R
    T[:3, 3] = dst_mean - c * (R @ src_mean)
    return T


def euler_zyx_to_rotation(rx: float, ry: float, rz: float) -> np.ndarray:
    """オイラー角から回転行列 Rz(rz) · Ry(ry) · Rx(rx) を構成する。

    Args:
        rx (float): X 軸まわりの角度 [rad]。
        ry (float): Y 軸まわりの角度 [rad]。
        rz (float): Z 軸まわりの角度 [rad]。

    Returns:
        np.ndarray: 3×3 回転行列。
    """
    cx, sx = np.cos(rx), np.sin(rx)
    cy, sy = np.cos(ry), np.sin(ry)
    cz, sz = np.cos(rz), np.sin(rz)
    Rx = np.array([[1.0, 0.0, 0.0], [0.0, cx, -sx], [0.0, sx, cx]])
    Ry = np.array([[cy, 0.0, sy], [0.0, 1.0, 0.0], [-sy, 0.0, cy]])
    Rz = np.array([[cz, -sz, 0.0], [sz, cz, 0.0], [0.0, 0.0, 1.0]])
    return Rz @ Ry @ Rx


def point_to_plane_normal_equations(
    src: np.ndarray, dst: np.ndarray, normals: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """線形化した点対平面問題の正規方程式 ATA, ATb を組み立てる。

    各対応について A_i = [src_i × n_i ; n_i]（6 次元）、
    r_i = (src_i - dst_i) · n_i とし、
    ATA = Σ A_i A_i^T、ATb = Σ A_i r_i を返す。

    Args:
        src (np.ndarray): ソース点群 (N, 3)。
        dst (np.ndarray): ターゲット点群 (N, 3)。
        normals (np.ndarray): ターゲットの単位法線 (N, 3)。

    Returns:
        tuple[np.ndarray, np.ndarray]:
            - ATA (np.ndarray): 6×6 対称半正定値行列。
            - ATb (np.ndarray): 6 次元ベクトル。
    """
    A = np.hstack([np.cross(src, normals), normals])  # (N, 6)
    r = point_to_plane_residuals(src, dst, normals)
    return A.T @ A, A.T @ r


def solve_cholesky(
    ATA: np.ndarray, rhs: np.ndarray, min_pivot_ratio: float = 1e-10
) -> np.ndarray:
    """Cholesky 分解で ATA · x = rhs を解く。

    ATA = L L^T のピボットは L の対角要素の二乗 d_i = L_ii^2 である。
    分解に失敗した場合、min(d) が max(d) の min_pivot_ratio 倍以下の場合、
    または解が有限でない場合は DegenerateSystemError を送出する。

    Args:
        ATA (np.ndarray): 対称行列 (6, 6)。
        rhs (np.ndarray): 右辺ベクトル (6,)。
        min_pivot_ratio (float): ピボット（L_ii^2）の最小値 / 最大値の下限。
            丸め誤差で残る退化方向のピボットは eps·‖ATA‖ 程度になるため、
            eps (約 2.2e-16) より十分大きい値とする。

    Returns:
        np.ndarray: 解ベクトル (6,)。

    Raises:
        DegenerateSystemError: 行列が（数値的に）正定値でない場合。
    """
    try:
        L = np.linalg.cholesky(ATA)
    except np.linalg.LinAlgError as exc:
        raise DegenerateSystemError(
            f"normal equations are not positive definite: {exc}", ATA
        ) from exc

    # 分解に成功しても極端に小さいピボットは退化とみなす
    pivots = np.diag(L) ** 2
    ratio = pivots.min() / pivots.max()
    if not ratio > min_pivot_ratio:
        raise DegenerateSystemError(
            f"normal equations are ill-conditioned (pivot ratio {ratio:.3e})", ATA
        )

    # 前進代入 L y = rhs、後退代入 L^T x = y（6×6 なので一般の solve で十分）
    y = np.linalg.solve(L, rhs)
    x = np.linalg.solve(L.T, y)
    if not np.all(np.isfinite(x)):
        raise DegenerateSystemError("normal equations produced a non-finite solution", ATA)
    return x


def _gather(source: PointCloud, target: PointCloud, correspondences):
    C = as_correspondence_set(correspondences)
    return C, source.points[C[:, 0]], target.points[C[:, 1]]


# 点対点
@dataclass(frozen=True)
class TransformationEstimationPointToPoint:
    """点対点距離（ユークリッド距離）を最小化する推定器。

    Attributes:
        with_scaling (bool): True の場合は一様スケールも推定する（相似変換）。
    """

    with_scaling: bool = False
    estimation_type = TransformationEstimationType.POINT_TO_POINT

    def compute_rmse(self, source: PointCloud, target: PointCloud, correspondences) -> float:
        """対応点間のユークリッド距離の RMSE。対応が空なら 0.0。"""
        C, src, dst = _gather(source, target, correspondences)
        if len(C) == 0:
            return 0.0
        return rmse_point_to_point(src, dst)

    def compute_transformation(
        self, source: PointCloud, target: PointCloud, correspondences
    ) -> np.ndarray:
        """Umeyama 法で最適な 4×4 変換を求める。対応が空なら単位行列。"""
        C, src, dst = _gather(source, target, correspondences)
        if len(C) == 0:
            return np.eye(4)
        return umeyama(src, dst, self.with_scaling)


# 点対平面
@dataclass(frozen=True)
class TransformationEstimationPointToPlane:
    """点対平面距離を最小化する推定器（線形化最小二乗 + Cholesky 分解）。

    ターゲットが法線を持たない場合は、対応の有無にかかわらず
    RMSE = 0.0、変換 = 単位行列を返す。

    Attributes:
        on_degenerate (str): 正規方程式が退化した場合の挙動。
            - "raise": DegenerateSystemError を送出する（デフォルト）。
            - "lstsq": 最小ノルム最小二乗解を使う（観測できない方向は 0）。
        min_pivot_ratio (float): Cholesky ピボット（L_ii^2）の最小値 / 最大値の下限。

    Raises:
        ValueError: on_degenerate が不正な値の場合。
    """

    on_degenerate: str = "raise"
    min_pivot_ratio: float = 1e-10
    estimation_type = TransformationEstimationType.POINT_TO_PLANE

    def __post_init__(self):
        if self.on_degenerate not in ("raise", "lstsq"):
            raise ValueError("on_degenerate must be 'raise' | 'lstsq'")

    def compute_rmse(self, source: PointCloud, target: PointCloud, correspondences) -> float:
        """点と平面の符号付き距離の RMSE。対応が空、または法線なしなら 0.0。"""
        C = as_correspondence_set(correspondences)
        if len(C) == 0 or not target.has_normals():
            return 0.0
        return rmse_point_to_plane(
            source.points[C[:, 0]], target.points[C[:, 1]], target.normals[C[:, 1]]
        )

    def compute_transformation(
        self, source: PointCloud, target: PointCloud, correspondences
    ) -> np.ndarray:
        """6 次元ツイスト x = (rx, ry, rz, tx, ty, tz) を解き 4×4 変換に組み立てる。

        ATA · x = -ATb を Cholesky 分解で解き、
        回転は Rz(x[2]) · Ry(x[1]) · Rx(x[0])、平行移動は x[3:6] とする。

        Raises:
            DegenerateSystemError: on_degenerate="raise" で系が退化している場合。
        """
        C = as_correspondence_set(correspondences)
        if len(C) == 0:
            return np.eye(4)
        if not target.has_normals():
            logger.debug("target has no normals, returning identity")
            return np.eye(4)

        ATA, ATb = point_to_plane_normal_equations(
            source.points[C[:, 0]], target.points[C[:, 1]], target.normals[C[:, 1]]
        )
        try:
            x = solve_cholesky(ATA, -ATb, self.min_pivot_ratio)
        except DegenerateSystemError as exc:
            if self.on_degenerate == "raise":
                raise
            logger.warning("%s; falling back to least squares", exc)
            x, *_ = np.linalg.lstsq(ATA, -ATb, rcond=None)

        T = np.eye(4)
        T[:3, :3] = euler_zyx_to_rotation(x[0], x[1], x[2])
        T[:3, 3] = x[3:6]
        return T


def make_estimation(
    kind: TransformationEstimationType | str, **options
) -> TransformationEstimation:
    """種類を指定して推定器を生成する。

    Args:
        kind (TransformationEstimationType | str):
            推定器の種類。"point_to_point" | "point_to_plane" の文字列も可。
        **options: 推定器のコンストラクタ引数（with_scaling, on_degenerate など）。

    Returns:
        TransformationEstimation: 推定器。

    Raises:
        ValueError: kind が不正な値の場合。
    """
    kind = TransformationEstimationType(kind)
    if kind is TransformationEstimationType.POINT_TO_POINT:
        return TransformationEstimationPointToPoint(**options)
    return TransformationEstimationPointToPlane(**options)
