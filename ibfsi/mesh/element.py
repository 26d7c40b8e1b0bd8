"""Tensor-product reference elements (QUAD4 / HEX8).

형상함수, Gauss 적분 규칙, 면 정의, 역 등매개변수 사상(물리 좌표 → 자연 좌표)을
제공한다. 모든 함수는 여러 점을 한 번에 처리하도록 벡터화되어 있다.
"""

from enum import Enum
from dataclasses import dataclass
from typing import Optional, Tuple
import numpy as np


class ElementType(Enum):
    """Supported element types (Abaqus naming convention)."""
    QUAD4 = "CPE4"      # 4-node quad
    HEX8 = "C3D8"       # 8-node hexahedron


@dataclass
class ElementInfo:
    """Element type information."""
    n_nodes: int           # Nodes per element
    dim: int               # Spatial dimension
    n_faces: int           # Faces per element (2D: edges)
    nodes_per_face: int    # Nodes per face
    n_children: int        # Children created by one isotropic refinement


ELEMENT_INFO = {
    ElementType.QUAD4: ElementInfo(4, 2, 4, 2, 4),
    ElementType.HEX8: ElementInfo(8, 3, 6, 4, 8),
}


def get_element_info(elem_type: ElementType) -> ElementInfo:
    """Get element type information."""
    return ELEMENT_INFO[elem_type]


def element_type_for_dim(dim: int) -> ElementType:
    """공간 차원에 맞는 요소 타입 반환."""
    if dim == 2:
        return ElementType.QUAD4
    if dim == 3:
        return ElementType.HEX8
    raise ValueError(f"지원하지 않는 차원: {dim}")


# ============================================================================
# 노드 좌표 (자연 좌표계)
# ============================================================================

# QUAD4 노드 배치:
#   3-------2
#   |       |
#   |       |
#   0-------1
QUAD4_NODE_COORDS = np.array([
    [-1, -1],  # 0
    [+1, -1],  # 1
    [+1, +1],  # 2
    [-1, +1],  # 3
], dtype=np.float64)

# HEX8 노드 배치:
#     7-------6
#    /|      /|
#   4-------5 |
#   | |     | |
#   | 3-----|-2
#   |/      |/
#   0-------1
HEX8_NODE_COORDS = np.array([
    [-1, -1, -1],  # 0
    [+1, -1, -1],  # 1
    [+1, +1, -1],  # 2
    [-1, +1, -1],  # 3
    [-1, -1, +1],  # 4
    [+1, -1, +1],  # 5
    [+1, +1, +1],  # 6
    [-1, +1, +1],  # 7
], dtype=np.float64)

NODE_COORDS = {
    ElementType.QUAD4: QUAD4_NODE_COORDS,
    ElementType.HEX8: HEX8_NODE_COORDS,
}


# ============================================================================
# 면 / 모서리 정의
# ============================================================================

# 면 노드 순서는 외향 법선 기준 반시계 방향
ELEMENT_FACES = {
    ElementType.QUAD4: [
        [0, 1],  # 변 0: 하단 (η=-1)
        [1, 2],  # 변 1: 우측 (ξ=+1)
        [2, 3],  # 변 2: 상단 (η=+1)
        [3, 0],  # 변 3: 좌측 (ξ=-1)
    ],
    ElementType.HEX8: [
        [0, 3, 2, 1],  # 면 0: 바닥 (ζ=-1)
        [4, 5, 6, 7],  # 면 1: 상단 (ζ=+1)
        [0, 1, 5, 4],  # 면 2: 전면 (η=-1)
        [2, 3, 7, 6],  # 면 3: 후면 (η=+1)
        [0, 4, 7, 3],  # 면 4: 좌측 (ξ=-1)
        [1, 2, 6, 5],  # 면 5: 우측 (ξ=+1)
    ],
}

# 면별 (고정 자연 좌표축, 부호)
FACE_AXIS_SIDE = {
    ElementType.QUAD4: [(1, -1), (0, +1), (1, +1), (0, -1)],
    ElementType.HEX8: [(2, -1), (2, +1), (1, -1), (1, +1), (0, -1), (0, +1)],
}

ELEMENT_EDGES = {
    ElementType.QUAD4: ELEMENT_FACES[ElementType.QUAD4],
    ElementType.HEX8: [
        [0, 1], [1, 2], [2, 3], [3, 0],
        [4, 5], [5, 6], [6, 7], [7, 4],
        [0, 4], [1, 5], [2, 6], [3, 7],
    ],
}


# ============================================================================
# Gauss 적분 규칙
# ============================================================================

def _tensor_gauss(dim: int, order: int) -> Tuple[np.ndarray, np.ndarray]:
    """[-1, 1]^dim 위의 텐서곱 Gauss-Legendre 규칙 (첫 축이 가장 빠르게 변함)."""
    x, w = np.polynomial.legendre.leggauss(order)
    grids = np.meshgrid(*([x] * dim), indexing="ij")
    wgrids = np.meshgrid(*([w] * dim), indexing="ij")
    points = np.stack([g.T.ravel() for g in grids], axis=1)
    weights = np.prod(np.stack([g.T.ravel() for g in wgrids], axis=1), axis=1)
    return points, weights


def get_gauss_points(elem_type: ElementType, order: int = 2) -> Tuple[np.ndarray, np.ndarray]:
    """체적 Gauss 적분점과 가중치.

    Args:
        elem_type: 요소 타입
        order: 방향별 적분점 수 (2 → QUAD4 4점, HEX8 8점)

    Returns:
        points: (n_q, dim) 자연 좌표
        weights: (n_q,) 가중치 (참조 요소 부피 2^dim 포함)
    """
    dim = get_element_info(elem_type).dim
    return _tensor_gauss(dim, order)


def get_face_gauss_points(
    elem_type: ElementType,
    face: int,
    order: int = 2,
) -> Tuple[np.ndarray, np.ndarray]:
    """면 Gauss 적분점 (요소 자연 좌표로 사상된 값).

    Returns:
        points: (n_fq, dim) 요소 자연 좌표 (고정축 = ±1)
        weights: (n_fq,) 면 가중치
    """
    dim = get_element_info(elem_type).dim
    axis, side = FACE_AXIS_SIDE[elem_type][face]
    face_pts, weights = _tensor_gauss(dim - 1, order)
    free_axes = [k for k in range(dim) if k != axis]
    points = np.empty((len(weights), dim))
    points[:, axis] = float(side)
    for col, k in enumerate(free_axes):
        points[:, k] = face_pts[:, col]
    return points, weights


# ============================================================================
# 형상함수
# ============================================================================

def shape_functions(elem_type: ElementType, xi: np.ndarray) -> np.ndarray:
    """다선형 형상함수.

    N_i(ξ) = Π_k ½(1 + ξ_ik·ξ_k)

    Args:
        xi: (dim,) 또는 (n_pts, dim) 자연 좌표

    Returns:
        (n_nodes,) 또는 (n_pts, n_nodes)
    """
    xi = np.asarray(xi, dtype=np.float64)
    single = xi.ndim == 1
    pts = np.atleast_2d(xi)
    c = NODE_COORDS[elem_type]
    factors = 0.5 * (1.0 + pts[:, None, :] * c[None, :, :])  # (P, n, dim)
    N = np.prod(factors, axis=2)
    return N[0] if single else N


def shape_derivatives(elem_type: ElementType, xi: np.ndarray) -> np.ndarray:
    """형상함수 미분 dN/dξ.

    dN_i/dξ_k = ½·ξ_ik · Π_{m≠k} ½(1 + ξ_im·ξ_m)

    Args:
        xi: (dim,) 또는 (n_pts, dim) 자연 좌표

    Returns:
        (n_nodes, dim) 또는 (n_pts, n_nodes, dim)
    """
    xi = np.asarray(xi, dtype=np.float64)
    single = xi.ndim == 1
    pts = np.atleast_2d(xi)
    c = NODE_COORDS[elem_type]
    dim = c.shape[1]
    factors = 0.5 * (1.0 + pts[:, None, :] * c[None, :, :])  # (P, n, dim)
    dN = np.empty(factors.shape)
    for k in range(dim):
        others = np.prod(np.delete(factors, k, axis=2), axis=2)
        dN[:, :, k] = 0.5 * c[None, :, k] * others
    return dN[0] if single else dN


# ============================================================================
# 역 사상
# ============================================================================

def map_to_reference(
    elem_type: ElementType,
    cell_coords: np.ndarray,
    point: np.ndarray,
    tol: float = 1e-12,
    max_iter: int = 25,
) -> Optional[np.ndarray]:
    """물리 좌표 → 자연 좌표 역사상 (Newton 반복).

    x(ξ) = Σ_a N_a(ξ)·X_a = point 를 풀고, 야코비안이 특이하거나 발산하면
    None을 반환한다. 결과가 참조 요소 안인지는 호출자가 판단한다.

    Args:
        cell_coords: (n_nodes, dim) 셀 정점 좌표
        point: (dim,) 물리 좌표

    Returns:
        (dim,) 자연 좌표 또는 None
    """
    X = np.asarray(cell_coords, dtype=np.float64)
    p = np.asarray(point, dtype=np.float64)
    xi = np.zeros(X.shape[1])
    scale = max(float(np.ptp(X, axis=0).max()), 1e-300)

    for _ in range(max_iter):
        N = shape_functions(elem_type, xi)
        dN = shape_derivatives(elem_type, xi)
        residual = p - N @ X
        J = X.T @ dN  # J[i, k] = dx_i/dξ_k
        try:
            dxi = np.linalg.solve(J, residual)
        except np.linalg.LinAlgError:
            return None
        xi = xi + dxi
        if not np.all(np.isfinite(xi)) or np.max(np.abs(xi)) > 1e6:
            return None
        if np.linalg.norm(dxi) < tol or np.linalg.norm(residual) < tol * scale:
            return xi

    # 미수렴: 잔차가 충분히 작을 때만 결과 인정
    residual = p - shape_functions(elem_type, xi) @ X
    if np.linalg.norm(residual) > 1e-8 * scale:
        return None
    return xi


def is_inside_reference(xi: Optional[np.ndarray], tol: float = 1e-10) -> bool:
    """자연 좌표가 참조 요소 [-1, 1]^dim 안(경계 포함)인지 판정."""
    if xi is None:
        return False
    return bool(np.all(np.abs(xi) <= 1.0 + tol))
