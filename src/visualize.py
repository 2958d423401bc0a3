import numpy as np
import matplotlib.pyplot as plt
from mpl_toolkits.mplot3d import Axes3D  # noqa: F401

from pointcloud import PointCloud, as_correspondence_set


def show_correspondences(
    source: PointCloud,
    target: PointCloud,
    correspondences=None,
    s: float = 4.0,
    normal_length: float = 0.0,
    title: str | None = None,
    show: bool = True,
):
    """2 つの点群と対応関係を 3D 散布図として可視化する。

    ソース点群（青）とターゲット点群（赤）を描画し、対応ペアを灰色の線分で結ぶ。
    変換推定の前後で対応の残差を目視で確認するための関数。

    Args:
        source (PointCloud): ソース点群。
        target (PointCloud): ターゲット点群。
        correspondences: 対応集合 (K, 2)。None の場合は線分を描かない。
        s (float): 散布図の点サイズ。デフォルトは 4.0。
        normal_length (float): 0 より大きい場合、ターゲット法線をこの長さで描く。
        title (str | None): 図のタイトル（任意）。
        show (bool): True の場合は plt.show() を呼ぶ。

    Returns:
        matplotlib.figure.Figure: 描画した Figure。

    Notes:
        - 対応が多い場合は線分の描画が重くなるため、間引いて渡すこと。
    """
    fig = plt.figure(figsize=(8, 8))
    ax = fig.add_subplot(111, projection="3d")
    ax.set_box_aspect([1, 1, 1])

    P1, P2 = source.points, target.points
    ax.scatter(P1[:, 0], P1[:, 1], P1[:, 2], s=s, alpha=0.6, c="blue", label="Source")
    ax.scatter(P2[:, 0], P2[:, 1], P2[:, 2], s=s, alpha=0.6, c="red", label="Target")

    # 対応ペアを線分で結ぶ
    if correspondences is not None:
        C = as_correspondence_set(correspondences)
        for i, j in C:
            seg = np.stack([P1[i], P2[j]])
            ax.plot(seg[:, 0], seg[:, 1], seg[:, 2], c="gray", lw=0.5)

    # 法線
    if normal_length > 0 and target.has_normals():
        N = target.normals * normal_length
        ax.quiver(P2[:, 0], P2[:, 1], P2[:, 2], N[:, 0], N[:, 1], N[:, 2], color="green", lw=0.5)

    if title is not None:
        ax.set_title(title)

    ax.set_xlabel("X")
    ax.set_ylabel("Y")
    ax.set_zlabel("Z")
    ax.legend()
    if show:
        plt.show()
    return fig
