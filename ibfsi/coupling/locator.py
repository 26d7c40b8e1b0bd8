"""점 탐색기: 물리 좌표 → (활성 셀, 자연 좌표).

경계 상자 사전 필터 후 후보 셀을 활성 셀 순서대로 역사상한다. 공유 면 위의
점은 순서상 처음 포함하는 셀을 반환한다 (결정적).

셀 수에 비례하는 선형 스캔이다. 대규모 메쉬에는 공간 색인(R-tree 등)으로
대체할 수 있다.
"""

from dataclasses import dataclass
from typing import Optional
import numpy as np

from ..mesh.element import is_inside_reference, map_to_reference
from ..mesh.mesh import Mesh


@dataclass
class CellLocation:
    """탐색 결과.

    Attributes:
        active_index: 탐색에 사용한 연결 배열에서의 행 번호
        cell: 메쉬 셀 id
        xi: 참조 셀 자연 좌표
    """

    active_index: int
    cell: int
    xi: np.ndarray


class PointLocator:
    """메쉬 한 개에 대한 점 탐색기.

    생성 시점의 정점 좌표로 경계 상자를 만든다. 메쉬가 이동/세분화되면 새로
    만들어야 한다 (is_stale()로 확인).

    Args:
        mesh: 대상 메쉬
        connectivity: 활성 셀 연결 (None이면 mesh.active_connectivity())
        tol: 참조 셀 포함 판정 허용오차
    """

    def __init__(
        self,
        mesh: Mesh,
        connectivity: Optional[np.ndarray] = None,
        cells: Optional[np.ndarray] = None,
        tol: float = 1e-10,
    ):
        self.mesh = mesh
        self.tol = tol
        if connectivity is None:
            cells = mesh.active_cells()
            connectivity = mesh.active_connectivity()
        self.cells = None if cells is None else np.asarray(cells, dtype=np.int64).copy()
        self.connectivity = np.asarray(connectivity, dtype=np.int64)
        self.coords = mesh.vertices[self.connectivity]      # (nc, n, dim) 스냅샷
        self.lower = self.coords.min(axis=1)
        self.upper = self.coords.max(axis=1)
        extent = float(np.max(self.upper - self.lower)) if len(self.coords) else 1.0
        self._pad = tol * max(extent, 1.0)
        self._geometry_version = mesh.geometry_version
        self._topology_version = mesh.topology_version

    @classmethod
    def for_dof_handler(cls, dof_handler, tol: float = 1e-10) -> "PointLocator":
        """DoF 번호와 같은 셀 순서를 쓰는 탐색기 (행 번호 = 활성 셀 인덱스)."""
        return cls(dof_handler.mesh, dof_handler.connectivity, dof_handler.active_cells, tol)

    @property
    def n_cells(self) -> int:
        return len(self.connectivity)

    def is_stale(self) -> bool:
        return (
            self._geometry_version != self.mesh.geometry_version
            or self._topology_version != self.mesh.topology_version
        )

    def candidates(self, point) -> np.ndarray:
        """경계 상자가 점을 포함하는 셀 (행 번호, 오름차순)."""
        p = np.asarray(point, dtype=np.float64)
        inside = np.all((p >= self.lower - self._pad) & (p <= self.upper + self._pad), axis=1)
        return np.flatnonzero(inside)

    def locate(self, point) -> Optional[CellLocation]:
        """점을 포함하는 첫 번째 활성 셀 (없으면 None)."""
        p = np.asarray(point, dtype=np.float64)
        et = self.mesh.element_type
        for row in self.candidates(p):
            xi = map_to_reference(et, self.coords[row], p)
            if is_inside_reference(xi, self.tol):
                cell = int(self.cells[row]) if self.cells is not None else -1
                return CellLocation(int(row), cell, xi)
        return None

    def contains(self, point) -> bool:
        return self.locate(point) is not None

    def contains_all(self, points) -> np.ndarray:
        """여러 점의 포함 여부 (n_points,) bool."""
        pts = np.asarray(points, dtype=np.float64)
        return np.array([self.locate(p) is not None for p in pts], dtype=bool)

    def cell_coords(self, row: int) -> np.ndarray:
        return self.coords[row]


def locate(mesh: Mesh, point) -> Optional[CellLocation]:
    """단발성 탐색 (현재 메쉬 좌표)."""
    return PointLocator(mesh).locate(point)


def point_in_mesh(mesh: Mesh, point) -> bool:
    """점이 메쉬 영역 안(경계 포함)인지 판정."""
    return PointLocator(mesh).contains(point)
