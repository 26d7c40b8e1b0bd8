"""FSI 예외 분류 및 입력 검증 유틸리티.

커플링 코어의 오류는 모두 치명적이다 (부분 결과 복구 없음):
- GeometricInconsistencyError: 다른 메쉬 영역 안에 있어야 할 점을 찾지 못함
- SizeMismatchError: 적분점 레코드 크기 ≠ (셀 수 × 셀당 적분점 수)
- FSIConvergenceError: 외부 협력 솔버의 수렴 실패 (그대로 전파)
"""

import logging
import numpy as np

logger = logging.getLogger(__name__)


# ───────────────── 커스텀 예외 ─────────────────


class FSIValidationError(ValueError):
    """FSI 입력 검증 오류.

    Attributes:
        parameter: 문제가 된 매개변수 이름
        value: 전달된 값
        suggestion: 수정 제안
    """

    def __init__(
        self,
        message: str,
        parameter: str = "",
        value=None,
        suggestion: str = "",
    ):
        self.parameter = parameter
        self.value = value
        self.suggestion = suggestion
        full_msg = f"[FSI 검증 오류] {message}"
        if suggestion:
            full_msg += f" → 제안: {suggestion}"
        super().__init__(full_msg)


class PointNotFoundError(LookupError):
    """점 탐색 실패: 어떤 활성 셀에도 포함되지 않는 점.

    보간기가 발생시키며, 치명적인지 여부는 호출자가 결정한다.

    Attributes:
        point: 찾지 못한 물리 좌표
    """

    def __init__(self, point, message: str = ""):
        self.point = np.asarray(point, dtype=np.float64).copy()
        msg = message or f"점 {self.point.tolist()}이(가) 메쉬 영역 밖에 있습니다."
        super().__init__(msg)


class GeometricInconsistencyError(RuntimeError):
    """기하 일관성 오류: 고체 영역이 유체 배경 메쉬를 벗어남.

    Attributes:
        point: 문제가 된 물리 좌표
        mesh_name: 탐색 대상 메쉬 ("fluid" 또는 "solid")
    """

    def __init__(self, message: str, point=None, mesh_name: str = ""):
        self.point = None if point is None else np.asarray(point, dtype=np.float64).copy()
        self.mesh_name = mesh_name
        super().__init__(f"[FSI 기하 오류] {message}")


class SizeMismatchError(RuntimeError):
    """적분점 레코드 크기 불일치 (내부 일관성 오류).

    Attributes:
        expected: 기대 크기 (셀 수, 셀당 적분점 수)
        actual: 실제 크기
    """

    def __init__(self, message: str, expected=None, actual=None):
        self.expected = expected
        self.actual = actual
        super().__init__(f"[FSI 크기 불일치] {message}")


class FSIConvergenceError(RuntimeError):
    """협력 솔버 수렴 실패 오류.

    Attributes:
        iterations: 수행한 반복 횟수
        residual: 최종 잔차 노름
        reason: 발산 원인 설명
    """

    def __init__(
        self,
        message: str,
        iterations: int = 0,
        residual: float = 0.0,
        reason: str = "",
    ):
        self.iterations = iterations
        self.residual = residual
        self.reason = reason
        super().__init__(f"[FSI 수렴 실패] {message}")


# ───────────────── 재료 / 유체 상수 검증 ─────────────────


def validate_elastic_constants(E: float, nu: float, name: str = "고체"):
    """등방 탄성 상수 검증.

    Args:
        E: 영 계수 [Pa]
        nu: 푸아송 비
        name: 재료 이름 (오류 메시지용)

    Raises:
        FSIValidationError: 무효한 값
    """
    if E <= 0:
        raise FSIValidationError(
            f"{name}의 영 계수(E)가 {E}입니다. 양수여야 합니다.",
            parameter="E",
            value=E,
        )
    if nu < -1.0 or nu >= 0.5:
        raise FSIValidationError(
            f"{name}의 푸아송 비(ν)가 {nu}입니다. -1.0 < ν < 0.5 범위여야 합니다.",
            parameter="nu",
            value=nu,
            suggestion="비압축성에 가까운 고체: ν≈0.49",
        )


def validate_density(density: float, name: str = "고체"):
    """밀도 검증."""
    if density <= 0:
        raise FSIValidationError(
            f"{name}의 밀도가 {density}입니다. 양수여야 합니다.",
            parameter="density",
            value=density,
        )


def validate_viscosity(viscosity: float):
    """유체 점성 계수 검증."""
    if viscosity <= 0:
        raise FSIValidationError(
            f"점성 계수가 {viscosity}입니다. 양수여야 합니다.",
            parameter="viscosity",
            value=viscosity,
            suggestion="Re = U·D/ν, 예: U=0.2, D=0.1, Re=20 → ν=0.001",
        )


def validate_time_step(time_step: float, end_time: float):
    """시간 간격 검증."""
    if time_step <= 0:
        raise FSIValidationError(
            f"시간 간격이 {time_step}입니다. 양수여야 합니다.",
            parameter="time_step",
            value=time_step,
        )
    if end_time < 0:
        raise FSIValidationError(
            f"종료 시간이 {end_time}입니다. 0 이상이어야 합니다.",
            parameter="end_time",
            value=end_time,
        )
    if end_time > 0 and time_step > end_time:
        logger.warning(
            f"시간 간격({time_step:.4e})이 종료 시간({end_time:.4e})보다 큽니다. "
            f"1 스텝만 수행됩니다."
        )


def validate_refinement_levels(min_level: int, max_level: int):
    """적응 세분화 레벨 범위 검증."""
    if min_level < 0:
        raise FSIValidationError(
            f"최소 레벨이 {min_level}입니다. 0 이상이어야 합니다.",
            parameter="min_level",
            value=min_level,
        )
    if max_level < min_level:
        raise FSIValidationError(
            f"최대 레벨({max_level})이 최소 레벨({min_level})보다 작습니다.",
            parameter="max_level",
            value=max_level,
            suggestion=f"max_level ≥ {min_level}",
        )


def validate_field_size(field, expected: int, name: str = "필드"):
    """DoF 벡터 길이 검증.

    Args:
        field: DoF 벡터
        expected: 기대 길이
        name: 필드 이름
    """
    size = np.asarray(field).size
    if size != expected:
        raise FSIValidationError(
            f"{name} 길이({size})가 DoF 수({expected})와 다릅니다.",
            parameter=name,
            value=size,
            suggestion="메쉬 변경 후 setup_dofs()/initialize_system() 호출 여부 확인",
        )
