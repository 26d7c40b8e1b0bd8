"""유체 협력 솔버 계약.

커플링 코어는 유체 솔버를 다음 인터페이스로만 사용한다:
- mesh, dof_handler (속도 절점 번호; 압력은 같은 절점의 별도 블록)
- fe_values (체적 적분 규칙), records (적분점 커플링 레코드)
- present_solution / solution_increment: 블록 벡터 [속도 | 압력]
    속도 DoF = node * dim + d
    압력 DoF = n_nodes * dim + node
- setup_dofs(), make_constraints(), initialize_system(), run_one_step(first_step)
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict
import numpy as np

from ..config import FSIConfig
from ..coupling.records import FluidCouplingRecords
from ..mesh.dof_handler import AffineConstraints, DoFHandler, make_hanging_node_constraints
from ..mesh.fe_values import FEValues
from ..mesh.mesh import Mesh
from ..validation import validate_viscosity

logger = logging.getLogger(__name__)


class FluidSolver(ABC):
    """유체 솔버 추상 기반 클래스.

    Args:
        mesh: 유체 배경 메쉬
        config: FSI 설정
    """

    def __init__(self, mesh: Mesh, config: FSIConfig):
        validate_viscosity(config.viscosity)
        self.mesh = mesh
        self.config = config
        self.dim = mesh.dim
        self.viscosity = config.viscosity
        self.dt = config.time_step
        self.time = 0.0
        self.step_count = 0

        self.dof_handler = DoFHandler(mesh, self.dim)
        self.fe_values = FEValues(mesh.element_type)
        self.records = FluidCouplingRecords(0, self.fe_values.n_quadrature_points, self.dim)
        self.constraints = AffineConstraints()

        self.present_solution = np.zeros(0)
        self.solution_increment = np.zeros(0)

    # ───────────────── DoF 블록 ─────────────────

    @property
    def block_components(self):
        """블록별 성분 수 [속도, 압력]."""
        return [self.dim, 1]

    @property
    def n_dofs(self) -> int:
        return self.dof_handler.n_nodes * (self.dim + 1)

    @property
    def velocity_offset(self) -> int:
        return 0

    @property
    def pressure_offset(self) -> int:
        return self.dof_handler.n_nodes * self.dim

    def nodal_velocity(self, vec=None) -> np.ndarray:
        vec = self.present_solution if vec is None else vec
        return vec[:self.pressure_offset].reshape(-1, self.dim)

    def nodal_pressure(self, vec=None) -> np.ndarray:
        vec = self.present_solution if vec is None else vec
        return vec[self.pressure_offset:self.n_dofs]

    def set_nodal_solution(self, velocity: np.ndarray, pressure: np.ndarray):
        """절점 속도 (n_nodes, dim)와 압력 (n_nodes,)으로 present_solution 구성."""
        self.present_solution = np.concatenate(
            [np.asarray(velocity, dtype=np.float64).ravel(), np.asarray(pressure, dtype=np.float64)]
        )

    # ───────────────── 메쉬 변경 후 재구성 ─────────────────

    def setup_dofs(self):
        """DoF 번호 재부여 + 레코드 재할당."""
        self.dof_handler.distribute_dofs()
        self.records.resize(self.dof_handler.n_active_cells)
        logger.info(
            f"{self.mesh.name}: 활성 셀 {self.dof_handler.n_active_cells}, "
            f"DoF {self.n_dofs} (속도 {self.pressure_offset}, 압력 {self.dof_handler.n_nodes})"
        )

    def make_constraints(self):
        """매달린 절점 구속 생성."""
        self.constraints = make_hanging_node_constraints(self.dof_handler)

    def initialize_system(self):
        """해 벡터 할당 (0으로 초기화)."""
        self.present_solution = np.zeros(self.n_dofs)
        self.solution_increment = np.zeros(self.n_dofs)

    def distribute_constraints(self, vec: np.ndarray) -> np.ndarray:
        """구속 절점 값을 속도/압력 블록 모두에 적용."""
        self.constraints.distribute(vec, self.dim, self.velocity_offset)
        self.constraints.distribute(vec, 1, self.pressure_offset)
        return vec

    # ───────────────── 시간 전진 ─────────────────

    @abstractmethod
    def run_one_step(self, first_step: bool = False) -> Dict:
        """1 스텝 전진. records를 한 번 소비한다."""
