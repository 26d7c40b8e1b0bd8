"""고체 근접도 기반 유체 메쉬 적응 세분화."""

import logging
from typing import TYPE_CHECKING, Dict
import numpy as np
from scipy.spatial import cKDTree

from ..config import FSIConfig
from ..mesh.solution_transfer import SolutionTransfer
from ..validation import validate_refinement_levels
from .mesh_motion import displaced

if TYPE_CHECKING:
    from ..fluid.base import FluidSolver
    from ..solid.solid_solver import SolidSolver

logger = logging.getLogger(__name__)


def nearest_distance(targets: np.ndarray, sources: np.ndarray) -> np.ndarray:
    """각 target 점에서 가장 가까운 source 점까지의 거리 (n_targets,).

    source가 없으면 모든 거리는 inf.
    """
    targets = np.asarray(targets, dtype=np.float64)
    if len(sources) == 0:
        return np.full(len(targets), np.inf)
    dists, _ = cKDTree(np.asarray(sources, dtype=np.float64)).query(targets)
    return dists


class AdaptiveRemesher:
    """유체 셀 중심 ↔ 변형된 고체 셀 중심 최소 거리로 세분화/조대화 결정.

    거리 < proximity_threshold 이면 세분화, 아니면 조대화 플래그를 단다.

    Args:
        fluid: 유체 협력 솔버
        solid: 고체 협력 솔버
        config: FSI 설정 (proximity_threshold)
    """

    def __init__(self, fluid: "FluidSolver", solid: "SolidSolver", config: FSIConfig):
        self.fluid = fluid
        self.solid = solid
        self.threshold = config.proximity_threshold

    def proximity(self) -> np.ndarray:
        """유체 활성 셀별 최소 중심 거리 (n_fluid_cells,)."""
        fluid, solid = self.fluid, self.solid
        fdh, sdh = fluid.dof_handler, solid.dof_handler
        with displaced(solid.mesh, sdh, solid.displacement):
            solid_centers = solid.mesh.vertices[sdh.connectivity].mean(axis=1)
        fluid_centers = fluid.mesh.vertices[fdh.connectivity].mean(axis=1)
        return nearest_distance(fluid_centers, solid_centers)

    def mark_cells(self, min_level: int, max_level: int) -> Dict:
        """근접도 플래그 설정 + 레벨 범위 제한."""
        mesh = self.fluid.mesh
        distance = self.proximity()
        n_refine = n_coarsen = 0
        for i, cell in enumerate(self.fluid.dof_handler.active_cells):
            level = mesh.level(cell)
            if distance[i] < self.threshold:
                if level < max_level:
                    mesh.set_refine_flag(cell)
                    n_refine += 1
            elif level > min_level:
                mesh.set_coarsen_flag(cell)
                n_coarsen += 1
        return {"refine_flags": n_refine, "coarsen_flags": n_coarsen}

    def refine_mesh(self, min_level: int, max_level: int) -> Dict:
        """유체 메쉬 적응 + 해 전달 + 재구성 순서 실행.

        순서: 플래그 → 해 전달 준비 → 위상 변경 → setup_dofs → make_constraints
        → initialize_system → 해 보간 → 구속 분배 → 레코드 크기 검사

        Args:
            min_level: 조대화 하한 레벨
            max_level: 세분화 상한 레벨
        """
        validate_refinement_levels(min_level, max_level)
        fluid = self.fluid
        mesh = fluid.mesh
        fdh = fluid.dof_handler

        flags = self.mark_cells(min_level, max_level)
        if not mesh.prepare_coarsening_and_refinement():
            mesh.clear_flags()
            logger.debug(f"{mesh.name}: 적응 대상 셀 없음 (레벨 [{min_level}, {max_level}])")
            fluid.records.check_size(fdh.n_active_cells, fluid.fe_values.n_quadrature_points)
            return {**flags, "refined": 0, "coarsened": 0, "n_active_cells": fdh.n_active_cells}

        old_solution = fluid.present_solution.copy()
        transfer = SolutionTransfer(fdh)
        transfer.prepare_for_coarsening_and_refinement()
        n_refined, n_coarsened = mesh.execute_coarsening_and_refinement()

        fluid.setup_dofs()
        fluid.make_constraints()
        fluid.initialize_system()
        fluid.present_solution = transfer.interpolate(old_solution, fluid.block_components)
        fluid.distribute_constraints(fluid.present_solution)

        fluid.records.check_size(fdh.n_active_cells, fluid.fe_values.n_quadrature_points)
        logger.info(
            f"{mesh.name}: 적응 세분화 (세분화 {n_refined}, 조대화 {n_coarsened}) → "
            f"활성 셀 {fdh.n_active_cells}"
        )
        return {
            **flags,
            "refined": n_refined,
            "coarsened": n_coarsened,
            "n_active_cells": fdh.n_active_cells,
        }
