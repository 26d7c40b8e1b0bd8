"""FSI 해석 설정 — Pydantic 모델 + TOML 로드."""

import tomllib
from pathlib import Path
from typing import Literal, Optional

import numpy as np
from pydantic import BaseModel, Field, model_validator


class SolidConfig(BaseModel):
    """고체 협력 솔버 설정."""

    material: Literal["linear_elastic", "neo_hookean"] = "linear_elastic"
    E: float = Field(default=1.0e4, gt=0)
    nu: float = Field(default=0.3, gt=-1.0, lt=0.5)
    density: float = Field(default=1.0, gt=0)
    plane_stress: bool = False
    rayleigh_alpha: float = Field(default=0.0, ge=0)
    rayleigh_beta: float = Field(default=0.0, ge=0)
    dirichlet_boundary_ids: list[int] = Field(default_factory=list)


class ChannelConfig(BaseModel):
    """채널 시나리오 설정 (CLI 전용).

    유입 평균 속도 0.2, 채널 높이 0.41은 원주 주위 유동 벤치마크 값이다.
    """

    length: float = Field(default=2.2, gt=0)
    height: float = Field(default=0.41, gt=0)
    subdivisions: list[int] = Field(default_factory=lambda: [22, 4])
    obstacle_lower: list[float] = Field(default_factory=lambda: [0.15, 0.15])
    obstacle_upper: list[float] = Field(default_factory=lambda: [0.25, 0.25])
    obstacle_subdivisions: list[int] = Field(default_factory=lambda: [2, 2])
    inlet_velocity: float = Field(default=0.2, ge=0)


class FSIConfig(BaseModel):
    """최상위 FSI 설정.

    간격(interval) 값은 시뮬레이션 시간 단위이며, 0 이하이면 해당 동작을
    수행하지 않는다.
    """

    dimension: Literal[2, 3] = 2
    viscosity: float = Field(default=1.0e-3, gt=0)
    gravity: Optional[list[float]] = None
    end_time: float = Field(default=1.0, ge=0)
    time_step: float = Field(default=0.01, gt=0)
    output_interval: float = 0.0
    refinement_interval: float = 0.0
    save_interval: float = 0.0
    global_refinements: list[int] = Field(
        default_factory=lambda: [0, 0], min_length=2, max_length=2
    )
    proximity_threshold: float = Field(default=0.1, gt=0)
    max_refinement_offset: int = Field(default=2, ge=0)
    acceleration_model: Literal["gravity", "fluid_inertia"] = "gravity"
    solid: SolidConfig = Field(default_factory=SolidConfig)
    channel: ChannelConfig = Field(default_factory=ChannelConfig)

    @model_validator(mode="after")
    def _check_dimensions(self) -> "FSIConfig":
        # 생략 시 차원에 맞는 영벡터
        if self.gravity is None:
            self.gravity = [0.0] * self.dimension
        if len(self.gravity) != self.dimension:
            raise ValueError(
                f"gravity 길이({len(self.gravity)})가 차원({self.dimension})과 다릅니다."
            )
        if any(level < 0 for level in self.global_refinements):
            raise ValueError(f"global_refinements는 0 이상이어야 합니다: {self.global_refinements}")
        return self

    @property
    def fluid_refinements(self) -> int:
        return self.global_refinements[0]

    @property
    def solid_refinements(self) -> int:
        return self.global_refinements[1]

    def gravity_vector(self) -> np.ndarray:
        """외부 체적력(중력) 벡터 반환."""
        return np.asarray(self.gravity, dtype=np.float64)

    @classmethod
    def from_toml(cls, path: str | Path) -> "FSIConfig":
        """TOML 파일에서 설정 로드.

        Args:
            path: TOML 파일 경로

        Returns:
            FSIConfig 인스턴스
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"설정 파일을 찾을 수 없습니다: {path}")

        with open(path, "rb") as f:
            data = tomllib.load(f)

        return cls(**data)

    @classmethod
    def default(cls) -> "FSIConfig":
        """기본 설정 반환."""
        return cls()
