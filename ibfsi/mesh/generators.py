"""구조 격자 생성기 (시나리오/테스트용)."""

from typing import Sequence
import numpy as np

from .mesh import Mesh


def hyper_rectangle(
    p1: Sequence[float],
    p2: Sequence[float],
    subdivisions: Sequence[int],
    colorize: bool = False,
    name: str = "mesh",
) -> Mesh:
    """축 정렬 직사각형/직육면체 구조 격자 생성.

    Args:
        p1: 최소 모서리 좌표
        p2: 최대 모서리 좌표
        subdivisions: 축별 분할 수
        colorize: True면 경계 면에 0..2·dim-1 id 부여 (x-, x+, y-, y+, z-, z+)
        name: 메쉬 이름

    Returns:
        조대 Mesh (레벨 0)
    """
    p1 = np.asarray(p1, dtype=np.float64)
    p2 = np.asarray(p2, dtype=np.float64)
    dim = len(p1)
    if len(p2) != dim or len(subdivisions) != dim:
        raise ValueError("p1, p2, subdivisions의 차원이 일치하지 않습니다.")
    if np.any(p2 <= p1):
        raise ValueError(f"p2({p2.tolist()})는 p1({p1.tolist()})보다 커야 합니다.")
    if any(n < 1 for n in subdivisions):
        raise ValueError(f"분할 수는 1 이상이어야 합니다: {list(subdivisions)}")

    n = [int(s) for s in subdivisions]
    axes = [np.linspace(p1[k], p2[k], n[k] + 1) for k in range(dim)]

    if dim == 2:
        nx, ny = n
        ys, xs = np.meshgrid(axes[1], axes[0], indexing="ij")
        vertices = np.column_stack([xs.ravel(), ys.ravel()])

        def vid(i, j):
            return j * (nx + 1) + i

        cells = [
            [vid(i, j), vid(i + 1, j), vid(i + 1, j + 1), vid(i, j + 1)]
            for j in range(ny) for i in range(nx)
        ]
    elif dim == 3:
        nx, ny, nz = n
        zs, ys, xs = np.meshgrid(axes[2], axes[1], axes[0], indexing="ij")
        vertices = np.column_stack([xs.ravel(), ys.ravel(), zs.ravel()])

        def vid(i, j, k):
            return (k * (ny + 1) + j) * (nx + 1) + i

        cells = [
            [
                vid(i, j, k), vid(i + 1, j, k), vid(i + 1, j + 1, k), vid(i, j + 1, k),
                vid(i, j, k + 1), vid(i + 1, j, k + 1),
                vid(i + 1, j + 1, k + 1), vid(i, j + 1, k + 1),
            ]
            for k in range(nz) for j in range(ny) for i in range(nx)
        ]
    else:
        raise ValueError(f"지원하지 않는 차원: {dim}")

    mesh = Mesh(vertices, np.asarray(cells, dtype=np.int64), name=name)
    if colorize:
        mesh.colorize()
    return mesh
