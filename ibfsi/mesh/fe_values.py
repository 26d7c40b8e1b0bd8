"""배치 적분점 평가 (FEValues / FEFaceValues).

셀 여러 개를 한 번에 처리한다. 기하량 계산은 FEMesh의 기준 형상 계산과
같은 방식이다:
    J[i, k]   = Σ_a X_ai · ∂N_a/∂ξ_k
    ∂N_a/∂x_i = Σ_k ∂N_a/∂ξ_k · (J⁻¹)_ki
    JxW       = w · |det J|
"""

from typing import Optional
import numpy as np

from .element import (
    ElementType,
    FACE_AXIS_SIDE,
    get_element_info,
    get_face_gauss_points,
    get_gauss_points,
    shape_derivatives,
    shape_functions,
)


def gather_cell_values(
    cell_nodes: np.ndarray,
    vec: np.ndarray,
    n_components: int,
    offset: int = 0,
) -> np.ndarray:
    """DoF 벡터 → 셀별 절점 값 (n_cells, nodes_per_elem, n_components)."""
    comps = np.arange(n_components)
    idx = offset + cell_nodes[..., None] * n_components + comps
    return np.asarray(vec)[idx]


def _geometry(cell_coords: np.ndarray, N: np.ndarray, dN: np.ndarray):
    """셀 좌표 + 형상함수 → (적분점 좌표, J, detJ, invJ, dNdx).

    Args:
        cell_coords: (m, n, dim)
        N: (m, q, n) 또는 (q, n)
        dN: (m, q, n, dim) 또는 (q, n, dim)
    """
    X = np.asarray(cell_coords, dtype=np.float64)
    if N.ndim == 2:
        points = np.einsum("qa,mai->mqi", N, X)
        J = np.einsum("mai,qak->mqik", X, dN)
    else:
        points = np.einsum("mqa,mai->mqi", N, X)
        J = np.einsum("mai,mqak->mqik", X, dN)
    detJ = np.linalg.det(J)
    invJ = np.linalg.inv(J)
    if dN.ndim == 3:
        dNdx = np.einsum("qak,mqki->mqai", dN, invJ)
    else:
        dNdx = np.einsum("mqak,mqki->mqai", dN, invJ)
    return points, J, detJ, invJ, dNdx


class FEValues:
    """체적 적분점 값.

    reinit() 후 속성:
        quadrature_points: (m, n_q, dim)
        JxW: (m, n_q)
        shape_values: (n_q, n)
        shape_gradients: (m, n_q, n, dim)
    """

    def __init__(self, elem_type: ElementType, order: int = 2):
        self.elem_type = elem_type
        self.elem_info = get_element_info(elem_type)
        self.ref_points, self.weights = get_gauss_points(elem_type, order)
        self.shape_values = shape_functions(elem_type, self.ref_points)
        self.ref_gradients = shape_derivatives(elem_type, self.ref_points)

        self.quadrature_points: Optional[np.ndarray] = None
        self.JxW: Optional[np.ndarray] = None
        self.shape_gradients: Optional[np.ndarray] = None

    @property
    def n_quadrature_points(self) -> int:
        return len(self.weights)

    def reinit(self, cell_coords: np.ndarray) -> "FEValues":
        points, _, detJ, _, dNdx = _geometry(
            cell_coords, self.shape_values, self.ref_gradients
        )
        if np.any(detJ <= 0):
            raise ValueError("음의 야코비안 (뒤집힌 요소)")
        self.quadrature_points = points
        self.JxW = self.weights[None, :] * np.abs(detJ)
        self.shape_gradients = dNdx
        return self

    def function_values(self, nodal: np.ndarray) -> np.ndarray:
        """(m, n, c) 절점 값 → (m, n_q, c) 적분점 값."""
        return np.einsum("qa,mac->mqc", self.shape_values, nodal)

    def function_gradients(self, nodal: np.ndarray) -> np.ndarray:
        """(m, n, c) 절점 값 → (m, n_q, c, dim) 기울기, grad[c, j] = ∂u_c/∂x_j."""
        return np.einsum("mqaj,mac->mqcj", self.shape_gradients, nodal)


class FEFaceValues:
    """면 적분점 값.

    셀마다 다른 면 번호를 가질 수 있다. reinit() 후 속성:
        quadrature_points: (m, n_fq, dim)
        JxW: (m, n_fq)  (면 측도: w·|det J|·|∇ξ_axis|)
        normals: (m, n_fq, dim) 외향 단위 법선
        shape_values: (m, n_fq, n)
        shape_gradients: (m, n_fq, n, dim)
    """

    def __init__(self, elem_type: ElementType, order: int = 2):
        self.elem_type = elem_type
        self.elem_info = get_element_info(elem_type)
        n_faces = self.elem_info.n_faces

        pts, ws = zip(*(get_face_gauss_points(elem_type, f, order) for f in range(n_faces)))
        self.ref_points = np.stack(pts)            # (n_faces, n_fq, dim)
        self.weights = np.asarray(ws[0])           # 모든 면 동일 규칙
        self.face_shape_values = np.stack(
            [shape_functions(elem_type, p) for p in pts]
        )
        self.face_ref_gradients = np.stack(
            [shape_derivatives(elem_type, p) for p in pts]
        )
        axis_side = np.asarray(FACE_AXIS_SIDE[elem_type])
        self._axis = axis_side[:, 0]
        self._side = axis_side[:, 1].astype(np.float64)

        self.quadrature_points: Optional[np.ndarray] = None
        self.JxW: Optional[np.ndarray] = None
        self.normals: Optional[np.ndarray] = None
        self.shape_values: Optional[np.ndarray] = None
        self.shape_gradients: Optional[np.ndarray] = None

    @property
    def n_quadrature_points(self) -> int:
        return len(self.weights)

    def reinit(self, cell_coords: np.ndarray, faces) -> "FEFaceValues":
        faces = np.atleast_1d(np.asarray(faces, dtype=np.int64))
        N = self.face_shape_values[faces]
        dN = self.face_ref_gradients[faces]
        points, _, detJ, invJ, dNdx = _geometry(cell_coords, N, dN)

        # 외향 법선 ∝ side · ∇ξ_axis  (∇ξ_axis = J⁻¹의 axis 행)
        rows = invJ[np.arange(len(faces)), :, self._axis[faces], :]  # (m, n_fq, dim)
        raw = self._side[faces][:, None, None] * rows
        length = np.linalg.norm(raw, axis=2)

        self.quadrature_points = points
        self.normals = raw / length[..., None]
        self.JxW = self.weights[None, :] * np.abs(detJ) * length
        self.shape_values = N
        self.shape_gradients = dNdx
        return self

    def function_values(self, nodal: np.ndarray) -> np.ndarray:
        return np.einsum("mqa,mac->mqc", self.shape_values, nodal)

    def function_gradients(self, nodal: np.ndarray) -> np.ndarray:
        return np.einsum("mqaj,mac->mqcj", self.shape_gradients, nodal)


def symmetric_part(grad: np.ndarray) -> np.ndarray:
    """마지막 두 축의 대칭 부분 ½(A + Aᵀ)."""
    return 0.5 * (grad + np.swapaxes(grad, -1, -2))
