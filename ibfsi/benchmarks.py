"""채널 유동 벤치마크 시나리오와 회귀 기준값.

기준값은 Re=20 포물선 유입 채널(U_avg=0.2, H=0.41)에 고정 장애물을 둔
구성에서 완전한 Navier-Stokes 유체 솔버로 1 커플링 스텝 후 얻은 값이다.
"""

from dataclasses import dataclass
from typing import Tuple
import numpy as np

from .config import FSIConfig
from .fluid.prescribed import PoiseuilleChannelFlow
from .mesh.generators import hyper_rectangle
from .solid.solid_solver import SolidSolver
from .validation import FSIValidationError

REFERENCE_MAX_VELOCITY = 0.374235
REFERENCE_MAX_PRESSURE = 46.5226
REFERENCE_RTOL = 1e-3


@dataclass
class RegressionCheck:
    """회귀 비교 결과."""
    max_velocity: float
    max_pressure: float
    velocity_error: float
    pressure_error: float
    rtol: float

    @property
    def passed(self) -> bool:
        return self.velocity_error <= self.rtol and self.pressure_error <= self.rtol


def check_reference(
    max_velocity: float,
    max_pressure: float,
    rtol: float = REFERENCE_RTOL,
    reference_velocity: float = REFERENCE_MAX_VELOCITY,
    reference_pressure: float = REFERENCE_MAX_PRESSURE,
) -> RegressionCheck:
    """최대 속도/압력을 기준값과 상대 오차로 비교."""
    return RegressionCheck(
        max_velocity=max_velocity,
        max_pressure=max_pressure,
        velocity_error=abs(max_velocity - reference_velocity) / abs(reference_velocity),
        pressure_error=abs(max_pressure - reference_pressure) / abs(reference_pressure),
        rtol=rtol,
    )


def solution_extrema(fluid) -> Tuple[float, float]:
    """유체 해의 (최대 절점 속도 크기, 최대 절점 압력)."""
    speed = np.linalg.norm(fluid.nodal_velocity(), axis=1)
    return float(speed.max(initial=0.0)), float(fluid.nodal_pressure().max(initial=-np.inf))


def channel_scenario(config: FSIConfig) -> Tuple[PoiseuilleChannelFlow, SolidSolver]:
    """설정의 channel 섹션으로 유체 채널 + 고체 장애물 구성.

    경계 id (colorize): x- 0, x+ 1, y- 2, y+ 3, z- 4, z+ 5.
    """
    ch = config.channel
    dim = config.dimension
    for name in ("subdivisions", "obstacle_lower", "obstacle_upper", "obstacle_subdivisions"):
        value = getattr(ch, name)
        if len(value) != dim:
            raise FSIValidationError(
                f"channel.{name} 길이({len(value)})가 차원({dim})과 다릅니다.",
                parameter=name,
                value=value,
            )

    upper = [ch.length] + [ch.height] * (dim - 1)
    fluid_mesh = hyper_rectangle(
        np.zeros(dim), upper, ch.subdivisions, colorize=True, name="fluid"
    )
    solid_mesh = hyper_rectangle(
        ch.obstacle_lower, ch.obstacle_upper, ch.obstacle_subdivisions,
        colorize=True, name="solid",
    )
    fluid = PoiseuilleChannelFlow(fluid_mesh, config, ch.length, ch.height, ch.inlet_velocity)
    solid = SolidSolver(solid_mesh, config)
    return fluid, solid
