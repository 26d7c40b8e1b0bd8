"""기구학적(prescribed) 유체 협력 솔버.

Navier-Stokes를 풀지 않고 주어진 함수로 속도/압력을 정한다. 커플링 루프를
끝까지 돌려 보기 위한 기준 협력자이며, 매 스텝 커플링 레코드를 한 번 소비해
몰입 부피와 FSI 소스 합을 기록한다.
"""

import logging
from typing import Callable, Dict, Optional, Sequence
import numpy as np

from ..config import FSIConfig
from ..mesh.mesh import Mesh
from .base import FluidSolver

logger = logging.getLogger(__name__)

VelocityFunction = Callable[[np.ndarray, float], np.ndarray]
PressureFunction = Callable[[np.ndarray, float], np.ndarray]


class PrescribedFlowSolver(FluidSolver):
    """함수로 정의된 유동장.

    Args:
        mesh: 유체 메쉬
        config: FSI 설정
        velocity_fn: (점 (n, dim), 시간) → 속도 (n, dim)
        pressure_fn: (점 (n, dim), 시간) → 압력 (n,)
    """

    def __init__(
        self,
        mesh: Mesh,
        config: FSIConfig,
        velocity_fn: VelocityFunction,
        pressure_fn: Optional[PressureFunction] = None,
    ):
        super().__init__(mesh, config)
        self.velocity_fn = velocity_fn
        self.pressure_fn = pressure_fn
        self.last_coupling: Dict = {}

    def evaluate(self, t: float):
        """시각 t의 절점 속도/압력."""
        coords = self.dof_handler.node_coordinates()
        velocity = np.asarray(self.velocity_fn(coords, t), dtype=np.float64).reshape(-1, self.dim)
        if self.pressure_fn is None:
            pressure = np.zeros(len(coords))
        else:
            pressure = np.asarray(self.pressure_fn(coords, t), dtype=np.float64).ravel()
        return velocity, pressure

    def interpolate_initial(self):
        """t=현재 시각의 함수값으로 해 초기화."""
        self.set_nodal_solution(*self.evaluate(self.time))
        self.distribute_constraints(self.present_solution)

    def run_one_step(self, first_step: bool = False) -> Dict:
        if first_step or self.present_solution.size != self.n_dofs:
            self.interpolate_initial()
        old = self.present_solution.copy()

        self.time += self.dt
        self.set_nodal_solution(*self.evaluate(self.time))
        self.distribute_constraints(self.present_solution)
        self.solution_increment = self.present_solution - old

        self.last_coupling = self._consume_records()
        self.step_count += 1
        logger.debug(
            f"{self.mesh.name}: t={self.time:.4e}, 몰입 적분점 "
            f"{self.last_coupling['n_immersed']}, 몰입 부피 "
            f"{self.last_coupling['immersed_volume']:.4e}"
        )
        return {"time": self.time, **self.last_coupling}

    def _consume_records(self) -> Dict:
        """레코드 → 몰입 부피, FSI 가속도/응력 소스 적분."""
        fe = self.fe_values.reinit(self.dof_handler.cell_coordinates())
        rec = self.records
        weights = fe.JxW * rec.indicator
        return {
            "n_immersed": rec.n_immersed(),
            "immersed_volume": float(weights.sum()),
            "acceleration_source": np.einsum("cq,cqd->d", fe.JxW, rec.fsi_acceleration),
            "stress_source": float(
                np.einsum("cq,cq->", fe.JxW, np.linalg.norm(rec.fsi_stress, axis=(2, 3)))
            ),
        }


class PoiseuilleChannelFlow(PrescribedFlowSolver):
    """포물선 유입 채널 유동 (정상 상태).

    2D (평행판 Poiseuille, Navier-Stokes 정확해):
        U_max = 3/2 · U_avg
        u_x = 4·U_max·y·(H - y) / H²
        p = 8·μ·U_max / H² · (L - x)       (출구 p = 0)

    3D: 원주 벤치마크 유입 프로파일 (U_max = 9/4 · U_avg)
        u_x = 16·U_max·y·z·(H - y)·(H - z) / H⁴
    압력은 평행판 기울기를 그대로 쓴다.

    Args:
        mesh: 유체 메쉬
        config: FSI 설정
        length: 채널 길이 L
        height: 채널 높이 H
        inlet_velocity: 유입 평균 속도 U_avg
        origin: 채널 최소 모서리 좌표
    """

    def __init__(
        self,
        mesh: Mesh,
        config: FSIConfig,
        length: float,
        height: float,
        inlet_velocity: float,
        origin: Optional[Sequence[float]] = None,
    ):
        self.length = length
        self.height = height
        self.inlet_velocity = inlet_velocity
        self.origin = np.zeros(mesh.dim) if origin is None else np.asarray(origin, dtype=np.float64)
        factor = 1.5 if mesh.dim == 2 else 9.0 / 4.0
        self.max_velocity = factor * inlet_velocity
        super().__init__(mesh, config, self._velocity, self._pressure)

    def _velocity(self, points: np.ndarray, t: float) -> np.ndarray:
        H, U = self.height, self.max_velocity
        x = points - self.origin
        u = np.zeros_like(points)
        if self.dim == 2:
            u[:, 0] = 4.0 * U * x[:, 1] * (H - x[:, 1]) / H**2
        else:
            u[:, 0] = 16.0 * U * x[:, 1] * x[:, 2] * (H - x[:, 1]) * (H - x[:, 2]) / H**4
        return u

    def _pressure(self, points: np.ndarray, t: float) -> np.ndarray:
        x = points[:, 0] - self.origin[0]
        return 8.0 * self.viscosity * self.max_velocity / self.height**2 * (self.length - x)
