"""임의 물리 점에서 유한요소 필드 값/기울기 평가."""

from typing import Optional
import numpy as np

from ..mesh.dof_handler import DoFHandler
from ..mesh.element import shape_derivatives, shape_functions
from ..validation import PointNotFoundError
from .locator import CellLocation, PointLocator


class FieldInterpolator:
    """한 점에 대한 형상함수 평가 결과를 보관하고 여러 필드에 재사용한다.

    같은 점에서 속도, 압력, 응력 성분 등 여러 필드를 읽을 때 점 탐색을 한 번만
    수행한다.

    Args:
        dof_handler: 필드의 DoF 번호
        point: 물리 좌표
        locator: 재사용할 탐색기 (행 번호가 dof_handler 활성 셀 순서와 같아야 함)

    Raises:
        PointNotFoundError: 점이 메쉬 밖
    """

    def __init__(self, dof_handler: DoFHandler, point, locator: Optional[PointLocator] = None):
        if locator is None:
            locator = PointLocator.for_dof_handler(dof_handler)
        location = locator.locate(point)
        if location is None:
            raise PointNotFoundError(
                point,
                f"{dof_handler.mesh.name} 메쉬에서 점 "
                f"{np.asarray(point).tolist()}을(를) 찾지 못했습니다.",
            )
        self._init_from(dof_handler, location, locator.cell_coords(location.active_index))
        self.point = np.asarray(point, dtype=np.float64)

    @classmethod
    def from_location(
        cls,
        dof_handler: DoFHandler,
        location: CellLocation,
        cell_coords: np.ndarray,
    ) -> "FieldInterpolator":
        """이미 탐색된 위치로부터 생성 (탐색 생략)."""
        obj = cls.__new__(cls)
        obj._init_from(dof_handler, location, cell_coords)
        obj.point = shape_functions(dof_handler.element_type, location.xi) @ cell_coords
        return obj

    def _init_from(self, dof_handler: DoFHandler, location: CellLocation, cell_coords: np.ndarray):
        et = dof_handler.element_type
        self.dof_handler = dof_handler
        self.location = location
        self.nodes = dof_handler.cell_nodes[location.active_index]
        self.shape_values = shape_functions(et, location.xi)
        dN = shape_derivatives(et, location.xi)
        J = cell_coords.T @ dN                         # J[i, k] = ∂x_i/∂ξ_k
        self.shape_gradients = dN @ np.linalg.inv(J)   # ∂N_a/∂x_i

    def _gather(self, vec, n_components, offset):
        if n_components is None:
            n_components = self.dof_handler.n_components
        idx = offset + self.nodes[:, None] * n_components + np.arange(n_components)
        return np.asarray(vec)[idx]                    # (n, c)

    def value(self, vec, n_components: Optional[int] = None, offset: int = 0) -> np.ndarray:
        """필드 값 (n_components,)."""
        return self.shape_values @ self._gather(vec, n_components, offset)

    def gradient(self, vec, n_components: Optional[int] = None, offset: int = 0) -> np.ndarray:
        """필드 기울기 (n_components, dim), grad[c, j] = ∂u_c/∂x_j."""
        return self._gather(vec, n_components, offset).T @ self.shape_gradients


def point_value(
    dof_handler: DoFHandler,
    vec,
    point,
    n_components: Optional[int] = None,
    offset: int = 0,
    locator: Optional[PointLocator] = None,
) -> np.ndarray:
    """점 하나에서 필드 값 평가 (PointNotFoundError 전파)."""
    return FieldInterpolator(dof_handler, point, locator).value(vec, n_components, offset)


def point_gradient(
    dof_handler: DoFHandler,
    vec,
    point,
    n_components: Optional[int] = None,
    offset: int = 0,
    locator: Optional[PointLocator] = None,
) -> np.ndarray:
    """점 하나에서 필드 기울기 평가 (PointNotFoundError 전파)."""
    return FieldInterpolator(dof_handler, point, locator).gradient(vec, n_components, offset)
