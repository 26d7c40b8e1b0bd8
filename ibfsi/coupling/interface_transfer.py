"""몰입 경계 지시자/힘 전달 엔진.

유체 배경 메쉬와 고체 메쉬 사이의 커플링 양을 계산한다. 모든 기하 질의는
고체를 현재(변형) 형상으로 옮긴 범위 안에서만 수행한다.

Pass A (find_fluid_bc, 고체 → 유체):
    유체 적분점 x_q가 고체 안이면
        indicator  = True
        fsi_acceleration = b - a_s(x_q)
        fsi_stress = -p·I + μ·sym(∇v) - σ_s(x_q)
    아니면 세 값 모두 0.

Pass B (find_solid_bc, 유체 → 고체):
    고체 경계 면 적분점 x_q에서
        fsi_traction = (-p·I + μ·sym(∇v))·n

b는 acceleration_model에 따라 중력 g ("gravity") 또는 유체 가속도
Δv/Δt + (∇v)v ("fluid_inertia")이다.
"""

import logging
from typing import TYPE_CHECKING, Dict, List
import numpy as np

from ..config import FSIConfig
from ..mesh.fe_values import gather_cell_values, symmetric_part
from ..validation import GeometricInconsistencyError, PointNotFoundError
from .interpolator import FieldInterpolator
from .locator import PointLocator
from .mesh_motion import displaced

if TYPE_CHECKING:
    from ..fluid.base import FluidSolver
    from ..solid.solid_solver import SolidSolver

logger = logging.getLogger(__name__)


def compose_stress_tensor(components: List[List[np.ndarray]]) -> np.ndarray:
    """성분별 스칼라 값 → 응력 텐서 배열.

    Args:
        components: components[i][j] = (n_points,) σ_ij 값

    Returns:
        (n_points, dim, dim)
    """
    return np.stack([np.stack(row, axis=-1) for row in components], axis=-2)


class InterfaceTransfer:
    """유체-고체 커플링 양 계산기.

    Args:
        fluid: 유체 협력 솔버 (FluidSolver 계약)
        solid: 고체 협력 솔버 (SolidSolver 계약)
        config: FSI 설정 (viscosity, gravity, acceleration_model)
    """

    def __init__(self, fluid: "FluidSolver", solid: "SolidSolver", config: FSIConfig):
        self.fluid = fluid
        self.solid = solid
        self.config = config
        self.viscosity = config.viscosity
        self.gravity = config.gravity_vector()
        self.acceleration_model = config.acceleration_model
        self.dim = fluid.dim
        if solid.dim != self.dim:
            raise ValueError(f"유체({self.dim}D)와 고체({solid.dim}D) 차원이 다릅니다.")

    def _solid_current_configuration(self):
        solid = self.solid
        return displaced(solid.mesh, solid.dof_handler, solid.displacement)

    def _fluid_stress(self, pressure: np.ndarray, grad_v: np.ndarray) -> np.ndarray:
        """-p·I + μ·sym(∇v) (배치)."""
        eye = np.eye(self.dim)
        return -pressure[..., None, None] * eye + self.viscosity * symmetric_part(grad_v)

    # ───────────────── Pass A ─────────────────

    def find_fluid_bc(self) -> Dict:
        """유체 적분점 지시자 + FSI 소스 갱신.

        Returns:
            {"n_immersed": 몰입 적분점 수, "n_points": 전체 적분점 수}
        """
        fluid, solid = self.fluid, self.solid
        fdh = fluid.dof_handler
        rec = fluid.records
        n_q = fluid.fe_values.n_quadrature_points
        rec.check_size(fdh.n_active_cells, n_q)

        with self._solid_current_configuration():
            # ── 1. 지시자: 유체 적분점이 변형된 고체 안에 있는가 ──
            fe = fluid.fe_values.reinit(fdh.cell_coordinates())
            rec.reset()
            solid_locator = PointLocator.for_dof_handler(solid.dof_handler)
            immersed = []
            locations = []
            for c in range(fdh.n_active_cells):
                for q in range(n_q):
                    loc = solid_locator.locate(fe.quadrature_points[c, q])
                    if loc is not None:
                        rec.indicator[c, q] = True
                        immersed.append((c, q))
                        locations.append(loc)

            if not immersed:
                logger.debug(f"Pass A: 몰입 적분점 없음 ({fdh.n_active_cells * n_q}점)")
                return {"n_immersed": 0, "n_points": fdh.n_active_cells * n_q}

            ic, iq = np.asarray(immersed, dtype=np.int64).T

            # ── 2. 유체 자체 적분점 값 (보간 불필요) ──
            nodal_v = gather_cell_values(fdh.cell_nodes, fluid.present_solution, self.dim)
            nodal_p = gather_cell_values(
                fdh.cell_nodes, fluid.present_solution, 1, fluid.pressure_offset
            )
            grad_v = fe.function_gradients(nodal_v)[ic, iq]
            pressure = fe.function_values(nodal_p)[ic, iq, 0]

            if self.acceleration_model == "fluid_inertia":
                nodal_dv = gather_cell_values(fdh.cell_nodes, fluid.solution_increment, self.dim)
                dv = fe.function_values(nodal_dv)[ic, iq] / fluid.dt
                v = fe.function_values(nodal_v)[ic, iq]
                body = dv + np.einsum("pij,pj->pi", grad_v, v)
            else:
                body = np.broadcast_to(self.gravity, (len(ic), self.dim))

            # ── 3. 고체 가속도 / 응력 성분 보간 ──
            solid_acc = np.empty((len(ic), self.dim))
            scalar_interps = []
            for k, loc in enumerate(locations):
                coords = solid_locator.cell_coords(loc.active_index)
                vi = FieldInterpolator.from_location(solid.dof_handler, loc, coords)
                scalar_interps.append(
                    FieldInterpolator.from_location(solid.scalar_dof_handler, loc, coords)
                )
                solid_acc[k] = vi.value(solid.acceleration)

            components = [
                [
                    np.array([si.value(solid.stress[i][j], 1)[0] for si in scalar_interps])
                    for j in range(self.dim)
                ]
                for i in range(self.dim)
            ]

        # ── 4. 불일치 소스 조립 (기하 복원 후, 순수 후처리) ──
        solid_sigma = compose_stress_tensor(components)
        rec.fsi_acceleration[ic, iq] = body - solid_acc
        rec.fsi_stress[ic, iq] = self._fluid_stress(pressure, grad_v) - solid_sigma

        logger.debug(f"Pass A: 몰입 적분점 {len(ic)}/{fdh.n_active_cells * n_q}")
        return {"n_immersed": len(ic), "n_points": fdh.n_active_cells * n_q}

    # ───────────────── Pass B ─────────────────

    def find_solid_bc(self) -> Dict:
        """고체 경계 면 적분점의 유체 트랙션 갱신.

        Raises:
            GeometricInconsistencyError: 고체 경계 점이 유체 메쉬 밖
        """
        fluid, solid = self.fluid, self.solid
        sdh = solid.dof_handler
        rec = solid.records
        rec.check_size(sdh.n_active_cells, rec.points_per_cell)
        rec.reset()

        cells, faces = solid.traction_faces()
        if len(cells) == 0:
            return {"n_traction_points": 0}

        n_fq = rec.n_fq
        with self._solid_current_configuration():
            fv = solid.face_values.reinit(sdh.cell_coordinates()[cells], faces)
            fluid_locator = PointLocator.for_dof_handler(fluid.dof_handler)
            grads = np.empty((len(cells), n_fq, self.dim, self.dim))
            pressure = np.empty((len(cells), n_fq))
            for m in range(len(cells)):
                for q in range(n_fq):
                    x = fv.quadrature_points[m, q]
                    try:
                        interp = FieldInterpolator(fluid.dof_handler, x, fluid_locator)
                    except PointNotFoundError as e:
                        raise GeometricInconsistencyError(
                            f"고체 경계 적분점 {x.tolist()}이(가) 유체 메쉬 밖에 있습니다.",
                            point=x,
                            mesh_name=fluid.mesh.name,
                        ) from e
                    grads[m, q] = interp.gradient(fluid.present_solution, self.dim)
                    pressure[m, q] = interp.value(
                        fluid.present_solution, 1, fluid.pressure_offset
                    )[0]
            normals = fv.normals.copy()

        traction = np.einsum("mqij,mqj->mqi", self._fluid_stress(pressure, grads), normals)
        slots = faces[:, None] * n_fq + np.arange(n_fq)
        rec.fsi_traction[cells[:, None], slots] = traction

        logger.debug(f"Pass B: 트랙션 적분점 {len(cells) * n_fq}")
        return {"n_traction_points": len(cells) * n_fq}

    # ───────────────── 셀 단위 지시자 ─────────────────

    def update_indicator(self) -> Dict:
        """셀 정점이 모두 고체 안인 유체 셀만 고체로 표시 (보수적 분류).

        고체로 표시되지 않은 셀은 힘/응력 레코드도 0으로 만든다.
        """
        fluid, solid = self.fluid, self.solid
        fdh = fluid.dof_handler
        rec = fluid.records
        rec.check_size(fdh.n_active_cells, fluid.fe_values.n_quadrature_points)

        with self._solid_current_configuration():
            solid_locator = PointLocator.for_dof_handler(solid.dof_handler)
            node_inside = solid_locator.contains_all(fdh.node_coordinates())

        cell_inside = np.all(node_inside[fdh.cell_nodes], axis=1)
        rec.indicator[:] = cell_inside[:, None]
        rec.clear_cells(~cell_inside)
        n_cells = int(cell_inside.sum())
        logger.debug(f"셀 지시자: 고체 셀 {n_cells}/{fdh.n_active_cells}")
        return {"n_solid_cells": n_cells}

    # ───────────────── 고체 변위 갱신 ─────────────────

    def update_solid_displacement(self, dt: float) -> np.ndarray:
        """고체 절점을 유체 속도로 이류: u += v_f(x)·dt.

        변위 증분은 현재 형상에서 계산하고, 기하를 복원한 뒤에 반영한다.

        Returns:
            (n_nodes, dim) 변위 증분
        """
        fluid, solid = self.fluid, self.solid
        sdh = solid.dof_handler
        with self._solid_current_configuration():
            points = sdh.node_coordinates()
            fluid_locator = PointLocator.for_dof_handler(fluid.dof_handler)
            increment = np.empty((sdh.n_nodes, self.dim))
            for node, x in enumerate(points):
                try:
                    interp = FieldInterpolator(fluid.dof_handler, x, fluid_locator)
                except PointNotFoundError as e:
                    raise GeometricInconsistencyError(
                        f"고체 정점 {x.tolist()}이(가) 유체 메쉬 밖에 있습니다.",
                        point=x,
                        mesh_name=fluid.mesh.name,
                    ) from e
                increment[node] = interp.value(fluid.present_solution, self.dim) * dt

        solid.displacement = solid.displacement + increment.ravel()
        return increment
