"""고체 재료 모델 (닫힌 변형 집합: LinearElastic | NeoHookean).

각 재료는 적분점 배치 단위로 동작한다:
    material.update(F)          # F: (..., dim, dim) 변형 구배
    sigma = material.stress()   # (..., dim, dim) Cauchy 응력
    C = material.tangent()      # Voigt 접선 강성 (선형화, F=I 기준)

Lamé 상수:
    μ = E / 2(1+ν)
    λ = Eν / (1+ν)(1-2ν)      (평면 변형 / 3D)
    λ = Eν / (1-ν²)           (평면 응력)
"""

from dataclasses import dataclass, field
from typing import Optional, Union
import numpy as np

from ..config import SolidConfig
from ..validation import validate_elastic_constants


def lame_parameters(E: float, nu: float, dim: int, plane_stress: bool = False):
    """(λ, μ) 반환."""
    mu = E / (2.0 * (1.0 + nu))
    if dim == 2 and plane_stress:
        lam = E * nu / (1.0 - nu**2)
    else:
        lam = E * nu / ((1.0 + nu) * (1.0 - 2.0 * nu))
    return lam, mu


def isotropic_voigt_tensor(lam: float, mu: float, dim: int) -> np.ndarray:
    """등방 탄성 텐서 (Voigt: 3D 6×6, 2D 3×3, 공학 전단 변형률 기준)."""
    if dim == 3:
        C = np.zeros((6, 6))
        C[:3, :3] = lam
        C[0, 0] = C[1, 1] = C[2, 2] = lam + 2 * mu
        C[3, 3] = C[4, 4] = C[5, 5] = mu
    else:
        C = np.zeros((3, 3))
        C[0, 0] = C[1, 1] = lam + 2 * mu
        C[0, 1] = C[1, 0] = lam
        C[2, 2] = mu
    return C


@dataclass
class LinearElastic:
    """등방 선형 탄성 (미소 변형).

    σ = λ·tr(ε)·I + 2μ·ε,  ε = ½(F + Fᵀ) - I
    """

    E: float
    nu: float
    dim: int = 2
    plane_stress: bool = False
    F: Optional[np.ndarray] = field(default=None, repr=False)

    def __post_init__(self):
        validate_elastic_constants(self.E, self.nu, "LinearElastic")
        self.lam, self.mu = lame_parameters(self.E, self.nu, self.dim, self.plane_stress)

    @property
    def is_linear(self) -> bool:
        return True

    def update(self, F: np.ndarray):
        self.F = np.asarray(F, dtype=np.float64)

    def stress(self) -> np.ndarray:
        I = np.eye(self.dim)
        eps = 0.5 * (self.F + np.swapaxes(self.F, -1, -2)) - I
        tr = np.trace(eps, axis1=-2, axis2=-1)[..., None, None]
        return self.lam * tr * I + 2.0 * self.mu * eps

    def tangent(self) -> np.ndarray:
        return isotropic_voigt_tensor(self.lam, self.mu, self.dim)


@dataclass
class NeoHookean:
    """압축성 Neo-Hookean 초탄성.

    ψ = μ/2·(I₁ - 3) - μ·ln J + λ/2·ln²J
    σ = J⁻¹·(μ·(B - I) + λ·ln J·I),  B = F·Fᵀ
    """

    E: float
    nu: float
    dim: int = 2
    F: Optional[np.ndarray] = field(default=None, repr=False)

    def __post_init__(self):
        validate_elastic_constants(self.E, self.nu, "NeoHookean")
        self.lam, self.mu = lame_parameters(self.E, self.nu, self.dim)

    @property
    def is_linear(self) -> bool:
        return False

    def update(self, F: np.ndarray):
        self.F = np.asarray(F, dtype=np.float64)

    def stress(self) -> np.ndarray:
        F = self.F
        I = np.eye(self.dim)
        J = np.linalg.det(F)
        if np.any(J <= 0):
            raise ValueError(f"det(F) ≤ 0 (최소 {float(J.min()):.3e}): 요소 뒤집힘")
        B = F @ np.swapaxes(F, -1, -2)
        lnJ = np.log(J)[..., None, None]
        return (self.mu * (B - I) + self.lam * lnJ * I) / J[..., None, None]

    def tangent(self) -> np.ndarray:
        """초기 접선 (F=I에서 선형 탄성과 동일)."""
        return isotropic_voigt_tensor(self.lam, self.mu, self.dim)


Material = Union[LinearElastic, NeoHookean]


def create_material(config: SolidConfig, dim: int) -> Material:
    """설정으로부터 재료 생성."""
    if config.material == "linear_elastic":
        return LinearElastic(config.E, config.nu, dim, config.plane_stress)
    if config.material == "neo_hookean":
        return NeoHookean(config.E, config.nu, dim)
    raise ValueError(f"알 수 없는 재료: {config.material}")
