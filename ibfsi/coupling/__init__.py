"""몰입 메쉬 FSI 커플링 코어.

점 탐색, 필드 보간, 적분점 레코드, 메쉬 이동, 지시자/힘 전달, 적응 세분화,
커플링 시간 루프.
"""

from .locator import CellLocation, PointLocator, locate, point_in_mesh
from .interpolator import FieldInterpolator, point_value, point_gradient
from .records import FluidCouplingRecords, SolidCouplingRecords
from .mesh_motion import apply_displacement, displaced
from .interface_transfer import InterfaceTransfer, compose_stress_tensor
from .remesher import AdaptiveRemesher
from .time_control import SimulationTime
from .coupled_solver import FSISolver, FSIResult

__all__ = [
    "CellLocation",
    "PointLocator",
    "locate",
    "point_in_mesh",
    "FieldInterpolator",
    "point_value",
    "point_gradient",
    "FluidCouplingRecords",
    "SolidCouplingRecords",
    "apply_displacement",
    "displaced",
    "InterfaceTransfer",
    "compose_stress_tensor",
    "AdaptiveRemesher",
    "SimulationTime",
    "FSISolver",
    "FSIResult",
]
