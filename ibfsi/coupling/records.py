"""적분점별 커플링 레코드 저장소.

레코드는 (활성 셀 인덱스, 셀 내 적분점 번호)로 색인되는 조밀 배열이며, 해당
솔버가 소유한다. 메쉬 위상이 바뀌면 resize() 후 check_size()로 크기를 확인한다.
"""

import logging
import numpy as np

from ..validation import SizeMismatchError

logger = logging.getLogger(__name__)


class FluidCouplingRecords:
    """유체 적분점 레코드.

    Attributes:
        indicator: (n_cells, n_q) bool, 고체 영역 내부 여부
        fsi_acceleration: (n_cells, n_q, dim)
        fsi_stress: (n_cells, n_q, dim, dim) 대칭 텐서
    """

    def __init__(self, n_cells: int, n_q: int, dim: int):
        self.dim = dim
        self.n_q = n_q
        self._allocate(n_cells)

    def _allocate(self, n_cells: int):
        self.indicator = np.zeros((n_cells, self.n_q), dtype=bool)
        self.fsi_acceleration = np.zeros((n_cells, self.n_q, self.dim))
        self.fsi_stress = np.zeros((n_cells, self.n_q, self.dim, self.dim))

    @property
    def n_cells(self) -> int:
        return self.indicator.shape[0]

    def resize(self, n_cells: int):
        """셀 수 변경 시 재할당 (모든 값 초기화)."""
        self._allocate(n_cells)

    def reset(self):
        self.indicator[:] = False
        self.fsi_acceleration[:] = 0.0
        self.fsi_stress[:] = 0.0

    def clear_cells(self, cells):
        """지정 셀의 힘/응력 레코드를 0으로."""
        self.fsi_acceleration[cells] = 0.0
        self.fsi_stress[cells] = 0.0

    def check_size(self, n_cells: int, n_q: int):
        """레코드 크기 = (셀 수 × 셀당 적분점 수) 확인.

        Raises:
            SizeMismatchError: 크기 불일치
        """
        expected = (n_cells, n_q)
        shapes = [
            self.indicator.shape[:2],
            self.fsi_acceleration.shape[:2],
            self.fsi_stress.shape[:2],
        ]
        for actual in shapes:
            if actual != expected:
                raise SizeMismatchError(
                    f"유체 레코드 크기 {actual} ≠ 기대 {expected}",
                    expected=expected,
                    actual=actual,
                )

    def inconsistent_points(self) -> np.ndarray:
        """indicator가 False인데 힘/응력이 0이 아닌 적분점 (cell, q) 목록."""
        nonzero = np.any(self.fsi_acceleration != 0.0, axis=2) | np.any(
            self.fsi_stress != 0.0, axis=(2, 3)
        )
        return np.argwhere(nonzero & ~self.indicator)

    def n_immersed(self) -> int:
        return int(self.indicator.sum())


class SolidCouplingRecords:
    """고체 경계 면 적분점 레코드.

    셀 하나당 (면 수 × 면당 적분점 수) 슬롯을 두고, 면 f의 q번째 점은
    f * n_fq + q 에 저장한다. 경계가 아닌 면의 슬롯은 항상 0이다.

    Attributes:
        fsi_traction: (n_cells, n_faces * n_fq, dim)
    """

    def __init__(self, n_cells: int, n_faces: int, n_fq: int, dim: int):
        self.n_faces = n_faces
        self.n_fq = n_fq
        self.dim = dim
        self._allocate(n_cells)

    def _allocate(self, n_cells: int):
        self.fsi_traction = np.zeros((n_cells, self.n_faces * self.n_fq, self.dim))

    @property
    def n_cells(self) -> int:
        return self.fsi_traction.shape[0]

    @property
    def points_per_cell(self) -> int:
        return self.n_faces * self.n_fq

    def resize(self, n_cells: int):
        self._allocate(n_cells)

    def reset(self):
        self.fsi_traction[:] = 0.0

    def face_slice(self, face: int) -> slice:
        return slice(face * self.n_fq, (face + 1) * self.n_fq)

    def check_size(self, n_cells: int, n_q: int):
        expected = (n_cells, n_q)
        actual = self.fsi_traction.shape[:2]
        if actual != expected:
            raise SizeMismatchError(
                f"고체 레코드 크기 {actual} ≠ 기대 {expected}",
                expected=expected,
                actual=actual,
            )
