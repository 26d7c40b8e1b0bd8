"""몰입 경계 FSI 커플링 솔버.

명시적 분할(partitioned) 시간 루프:
    Init → {고체 트랙션(Pass B) → 고체 solve → 유체 소스(Pass A) → 유체 solve
            → 시간 전진 → [적응 세분화]}* → Done

첫 반복에서만 first_step=True를 두 솔버에 전달한다 (시작 처리 여부는 각
솔버가 결정).
"""

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from ..config import FSIConfig
from ..validation import validate_time_step
from .interface_transfer import InterfaceTransfer
from .remesher import AdaptiveRemesher
from .time_control import SimulationTime

if TYPE_CHECKING:
    from ..fluid.base import FluidSolver
    from ..solid.solid_solver import SolidSolver

logger = logging.getLogger(__name__)


@dataclass
class FSIResult:
    """커플링 해석 결과.

    Args:
        n_steps: 수행한 시간 스텝 수
        final_time: 최종 시각
        n_remeshes: 적응 세분화 횟수
        elapsed_time: 소요 시간 [초]
        fluid_active_cells: 최종 유체 활성 셀 수
        history: 스텝별 정보
    """
    n_steps: int
    final_time: float
    n_remeshes: int
    elapsed_time: float
    fluid_active_cells: int
    history: List[Dict] = field(default_factory=list)


class FSISolver:
    """유체 + 고체 협력 솔버를 묶는 커플링 시간 루프.

    Args:
        fluid: 유체 협력 솔버
        solid: 고체 협력 솔버
        config: FSI 설정
        output_callback: output_interval마다 호출되는 함수 (solver 인자)
    """

    def __init__(
        self,
        fluid: "FluidSolver",
        solid: "SolidSolver",
        config: FSIConfig,
        output_callback: Optional[Callable[["FSISolver"], None]] = None,
    ):
        self.fluid = fluid
        self.solid = solid
        self.config = config
        self.output_callback = output_callback
        self.time = SimulationTime.from_config(config)
        self.transfer = InterfaceTransfer(fluid, solid, config)
        self.remesher = AdaptiveRemesher(fluid, solid, config)
        self.n_remeshes = 0
        self._is_setup = False

    def setup(self):
        """기준 레벨까지 전역 세분화 + 두 솔버 DoF 시스템 초기화."""
        cfg = self.config
        validate_time_step(cfg.time_step, cfg.end_time)

        # ── 1. 고체 ──
        self.solid.mesh.refine_global(cfg.solid_refinements)
        self.solid.setup_dofs()
        self.solid.initialize_system()

        # ── 2. 유체 ──
        self.fluid.mesh.refine_global(cfg.fluid_refinements)
        self.fluid.setup_dofs()
        self.fluid.make_constraints()
        self.fluid.initialize_system()

        self._is_setup = True
        logger.info(
            f"FSI 설정 완료: 유체 {self.fluid.dof_handler.n_active_cells}셀/"
            f"{self.fluid.n_dofs} DoF, 고체 {self.solid.dof_handler.n_active_cells}셀/"
            f"{self.solid.dof_handler.n_dofs} DoF, 스텝 {self.time.n_steps()}"
        )

    def step(self, first_step: bool = False) -> Dict:
        """커플링 1 스텝."""
        t0 = time.time()

        # ── 1. 유체 → 고체 트랙션, 고체 전진 ──
        solid_bc = self.transfer.find_solid_bc()
        self.solid.run_one_step(first_step)

        # ── 2. 고체 → 유체 소스, 유체 전진 ──
        fluid_bc = self.transfer.find_fluid_bc()
        self.fluid.run_one_step(first_step)

        # ── 3. 시간 전진 ──
        self.time.increment()

        # ── 4. 적응 세분화 ──
        remesh = None
        if self.time.time_to_refine():
            base = self.config.fluid_refinements
            remesh = self.remesher.refine_mesh(base, base + self.config.max_refinement_offset)
            self.n_remeshes += 1

        if self.output_callback is not None and self.time.time_to_output():
            self.output_callback(self)

        info = {
            "timestep": self.time.timestep,
            "time": self.time.current(),
            **solid_bc,
            **fluid_bc,
            "remesh": remesh,
            "step_time": time.time() - t0,
        }
        logger.debug(
            f"스텝 {info['timestep']}: t={info['time']:.4e}, "
            f"{info['step_time']:.3f}초"
        )
        return info

    def run(self) -> FSIResult:
        """종료 시각까지 커플링 루프 실행."""
        if not self._is_setup:
            self.setup()

        t0 = time.time()
        history = []
        first_step = True
        while not self.time.finished():
            history.append(self.step(first_step))
            first_step = False

        elapsed = time.time() - t0
        logger.info(
            f"FSI 해석 완료: {self.time.timestep} 스텝, t={self.time.current():.6g}, "
            f"세분화 {self.n_remeshes}회, {elapsed:.2f}초"
        )
        return FSIResult(
            n_steps=self.time.timestep,
            final_time=self.time.current(),
            n_remeshes=self.n_remeshes,
            elapsed_time=elapsed,
            fluid_active_cells=self.fluid.dof_handler.n_active_cells,
            history=history,
        )
