"""고체 협력 솔버 — 재료 모델, 벡터화 조립, Newmark 탄성 동역학."""

from .material import LinearElastic, NeoHookean, Material, create_material, lame_parameters
from .solid_solver import SolidSolver

__all__ = [
    "LinearElastic",
    "NeoHookean",
    "Material",
    "create_material",
    "lame_parameters",
    "SolidSolver",
]
