"""유체 협력 솔버 계약과 기준 구현."""

from .base import FluidSolver
from .prescribed import PrescribedFlowSolver, PoiseuilleChannelFlow

__all__ = ["FluidSolver", "PrescribedFlowSolver", "PoiseuilleChannelFlow"]
