"""고체 협력 솔버: Newmark-beta 탄성 동역학.

커플링 코어가 요구하는 고체 측 계약을 구현한다:
- 메쉬, 벡터 DoF 번호(변위)와 스칼라 DoF 번호(응력 성분)
- 변위/속도/가속도 DoF 벡터, 응력 성분 절점장 stress[i][j]
- 경계 면 적분 규칙과 면 적분점 레코드 (fsi_traction)
- run_one_step(first_step)

시간 적분: Newmark-beta (γ=0.5, β=0.25, 평균 가속도법, 무조건 안정)
질량 행렬: 집중 질량 (row-sum lumping)
감쇠: Rayleigh 감쇠 (C = α·M + β·K)
경계조건: Dirichlet 경계 id 면의 절점을 페널티 방법으로 고정
"""

import logging
from typing import Dict, Tuple
import numpy as np
from scipy import sparse
from scipy.sparse.linalg import spsolve

from ..config import FSIConfig
from ..coupling.records import SolidCouplingRecords
from ..mesh.dof_handler import DoFHandler
from ..mesh.element import ELEMENT_FACES
from ..mesh.fe_values import FEFaceValues, FEValues, gather_cell_values
from ..mesh.mesh import Mesh
from ..validation import FSIConvergenceError, validate_density
from .assembly import (
    assemble_body_force,
    assemble_face_load,
    assemble_stiffness_matrix,
    lumped_mass,
    project_to_nodes,
)
from .material import create_material

logger = logging.getLogger(__name__)


class SolidSolver:
    """Newmark 고체 솔버.

    선형화 강성(초기 접선)으로 변위를 풀고, 응력은 재료 모델의 변형 구배
    기반 Cauchy 응력으로 복원한다.

    Args:
        mesh: 고체 메쉬 (기준 형상)
        config: FSI 설정 (solid 섹션, time_step, gravity 사용)
    """

    def __init__(self, mesh: Mesh, config: FSIConfig):
        self.mesh = mesh
        self.config = config
        self.dim = mesh.dim
        self.density = config.solid.density
        validate_density(self.density)
        self.material = create_material(config.solid, self.dim)
        self.dirichlet_boundary_ids = set(config.solid.dirichlet_boundary_ids)

        self.dof_handler = DoFHandler(mesh, self.dim)
        self.scalar_dof_handler = DoFHandler(mesh, 1)
        self.fe_values = FEValues(mesh.element_type)
        self.face_values = FEFaceValues(mesh.element_type)
        self.records = SolidCouplingRecords(
            0, mesh.elem_info.n_faces, self.face_values.n_quadrature_points, self.dim
        )

        self.dt = config.time_step
        self.time = 0.0
        self.step_count = 0
        self.gamma = 0.5
        self.beta = 0.25

        self.displacement = np.zeros(0)
        self.velocity = np.zeros(0)
        self.acceleration = np.zeros(0)
        self.stress = [[np.zeros(0) for _ in range(self.dim)] for _ in range(self.dim)]

    # ───────────────── 설정 ─────────────────

    def setup_dofs(self):
        self.dof_handler.distribute_dofs()
        self.scalar_dof_handler.distribute_dofs()
        self.records.resize(self.dof_handler.n_active_cells)
        logger.info(
            f"{self.mesh.name}: 활성 셀 {self.dof_handler.n_active_cells}, "
            f"DoF {self.dof_handler.n_dofs}"
        )

    def initialize_system(self):
        """상태 벡터 할당 + 기준 형상 기준 K, M, C 조립."""
        dh = self.dof_handler
        n_dofs = dh.n_dofs
        n_nodes = dh.n_nodes
        self.displacement = np.zeros(n_dofs)
        self.velocity = np.zeros(n_dofs)
        self.acceleration = np.zeros(n_dofs)
        self.stress = [[np.zeros(n_nodes) for _ in range(self.dim)] for _ in range(self.dim)]

        fe = self.fe_values.reinit(dh.cell_coordinates())
        self._JxW = fe.JxW.copy()
        self._dNdx = fe.shape_gradients.copy()

        self.K = assemble_stiffness_matrix(
            dh.cell_nodes, self._dNdx, self._JxW, n_nodes, self.dim, self.material.tangent()
        ).tocsr()
        self.M_diag = lumped_mass(dh.cell_nodes, self._JxW, n_nodes, self.density, self.dim)
        solid_cfg = self.config.solid
        self.C = solid_cfg.rayleigh_alpha * sparse.diags(self.M_diag) + solid_cfg.rayleigh_beta * self.K

        self.fixed_dofs = self._find_fixed_dofs()
        self._traction_cells, self._traction_faces = self.traction_faces()
        if len(self._traction_cells):
            fv = self.face_values.reinit(
                dh.cell_coordinates()[self._traction_cells], self._traction_faces
            )
            self._face_N = fv.shape_values.copy()
            self._face_JxW = fv.JxW.copy()

        self._body_load = assemble_body_force(
            dh.cell_nodes,
            self.fe_values.shape_values,
            self._JxW,
            self.density * self.config.gravity_vector(),
            n_nodes,
        )

    def traction_faces(self) -> Tuple[np.ndarray, np.ndarray]:
        """트랙션을 받는 경계 면 (활성 셀 인덱스, 면 번호).

        경계 면 중 Dirichlet 경계 id가 아닌 면.
        """
        cells, faces = [], []
        for i, c in enumerate(self.dof_handler.active_cells):
            for f in range(self.mesh.elem_info.n_faces):
                bid = self.mesh.face_boundary_id(c, f)
                if bid >= 0 and bid not in self.dirichlet_boundary_ids:
                    cells.append(i)
                    faces.append(f)
        return np.asarray(cells, dtype=np.int64), np.asarray(faces, dtype=np.int64)

    def _find_fixed_dofs(self) -> np.ndarray:
        if not self.dirichlet_boundary_ids:
            return np.zeros(0, dtype=np.int64)
        et = self.mesh.element_type
        nodes = set()
        for i, c in enumerate(self.dof_handler.active_cells):
            for f, fn in enumerate(ELEMENT_FACES[et]):
                if self.mesh.face_boundary_id(c, f) in self.dirichlet_boundary_ids:
                    nodes.update(self.dof_handler.cell_nodes[i][fn].tolist())
        nodes = np.asarray(sorted(nodes), dtype=np.int64)
        return (nodes[:, None] * self.dim + np.arange(self.dim)).ravel()

    # ───────────────── 하중 ─────────────────

    def traction_load(self) -> np.ndarray:
        """레코드의 fsi_traction → 절점 하중."""
        n_dofs = self.dof_handler.n_dofs
        if len(self._traction_cells) == 0:
            return np.zeros(n_dofs)
        n_fq = self.records.n_fq
        slots = self._traction_faces[:, None] * n_fq + np.arange(n_fq)
        traction = self.records.fsi_traction[self._traction_cells[:, None], slots]
        return assemble_face_load(
            self.dof_handler.cell_nodes[self._traction_cells],
            self._face_N,
            self._face_JxW,
            traction,
            self.dof_handler.n_nodes,
        )

    def external_load(self) -> np.ndarray:
        return self.traction_load() + self._body_load

    # ───────────────── 시간 전진 ─────────────────

    def run_one_step(self, first_step: bool = False) -> Dict:
        """Newmark 1 스텝.

        Args:
            first_step: True면 평형식으로 초기 가속도를 먼저 계산

        Raises:
            FSIConvergenceError: 비유한(non-finite) 해
        """
        dt, gamma, beta = self.dt, self.gamma, self.beta
        f_ext = self.external_load()

        if first_step:
            # 초기 가속도: M·a₀ = f - K·u₀ - C·v₀
            r = f_ext - self.K @ self.displacement - self.C @ self.velocity
            self.acceleration = r / (self.M_diag + 1e-30)
            self._enforce_bc()

        # 예측값
        u_pred = self.displacement + dt * self.velocity + (0.5 - beta) * dt**2 * self.acceleration
        v_pred = self.velocity + (1.0 - gamma) * dt * self.acceleration

        # (M + γ·dt·C + β·dt²·K)·a = f - K·u_pred - C·v_pred
        A = sparse.diags(self.M_diag) + gamma * dt * self.C + beta * dt**2 * self.K
        rhs = f_ext - self.K @ u_pred - self.C @ v_pred
        A_bc, rhs_bc = self._apply_bc(A.tocsr(), rhs)
        a_new = spsolve(A_bc, rhs_bc)

        if not np.all(np.isfinite(a_new)):
            raise FSIConvergenceError(
                f"{self.mesh.name}: Newmark 스텝 {self.step_count + 1}에서 비유한 가속도",
                iterations=1,
                residual=float("nan"),
                reason="singular or ill-conditioned effective stiffness",
            )

        self.acceleration = a_new
        self.displacement = u_pred + beta * dt**2 * a_new
        self.velocity = v_pred + gamma * dt * a_new
        self._enforce_bc()
        self.update_stress()

        self.time += dt
        self.step_count += 1
        ke = 0.5 * np.sum(self.M_diag * self.velocity**2)
        logger.debug(
            f"{self.mesh.name}: t={self.time:.4e}, KE={ke:.4e}, "
            f"max|u|={np.max(np.abs(self.displacement), initial=0.0):.4e}"
        )
        return {"kinetic_energy": ke, "time": self.time}

    def _apply_bc(self, A: sparse.csr_matrix, f: np.ndarray):
        """경계조건 적용 (페널티 방법)."""
        A = A.copy()
        f = f.copy()
        if len(self.fixed_dofs) > 0:
            diag_vals = A.diagonal().copy()
            diag_vals[self.fixed_dofs] += 1e30
            A.setdiag(diag_vals)
            f[self.fixed_dofs] = 0.0
        return A, f

    def _enforce_bc(self):
        if len(self.fixed_dofs) > 0:
            self.displacement[self.fixed_dofs] = 0.0
            self.velocity[self.fixed_dofs] = 0.0
            self.acceleration[self.fixed_dofs] = 0.0

    # ───────────────── 응력 복원 ─────────────────

    def update_stress(self):
        """변위 → 적분점 Cauchy 응력 → 성분별 절점장 stress[i][j]."""
        dh = self.dof_handler
        nodal_u = gather_cell_values(dh.cell_nodes, self.displacement, self.dim)
        grad_u = np.einsum("cqaj,cai->cqij", self._dNdx, nodal_u)
        F = np.eye(self.dim) + grad_u
        self.material.update(F)
        sigma = self.material.stress()
        nodal_sigma = project_to_nodes(
            self.scalar_dof_handler.cell_nodes,
            self.fe_values.shape_values,
            self._JxW,
            sigma,
            self.scalar_dof_handler.n_nodes,
        )
        self.stress = [
            [nodal_sigma[:, i, j].copy() for j in range(self.dim)] for i in range(self.dim)
        ]

    def nodal_displacement(self) -> np.ndarray:
        return self.displacement.reshape(-1, self.dim)
