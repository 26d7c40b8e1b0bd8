"""Taichi 런타임 초기화 중앙 관리.

커플링 커널(정점 이동)은 numpy 배열을 Taichi ndarray로
직접 넘겨 실행하므로, 프로세스당 1회 초기화만 보장하면 된다.
"""

import enum
import logging
import taichi as ti
from typing import List, Optional

logger = logging.getLogger(__name__)


class Backend(enum.Enum):
    """Taichi 백엔드 열거형."""
    CPU = "cpu"
    VULKAN = "vulkan"
    CUDA = "cuda"
    METAL = "metal"
    AUTO = "auto"


class Precision(enum.Enum):
    """부동소수점 정밀도 열거형."""
    F32 = "f32"
    F64 = "f64"


# 모듈 전역 상태
_initialized = False
_active_backend: Optional[Backend] = None
_active_precision: Optional[Precision] = None


# 커플링 커널의 f64 ndarray 연산을 보장하는 백엔드
F64_BACKENDS = (Backend.CUDA, Backend.CPU)


def backend_candidates(backend: Backend) -> List[Backend]:
    """초기화 시도 순서.

    커널이 f64 배열을 쓰므로 f64를 보장하지 않는 백엔드(Vulkan, Metal)는
    제외하고, 남는 것이 없으면 CPU로 대체한다.
    """
    if backend == Backend.AUTO:
        return list(F64_BACKENDS)
    if backend not in F64_BACKENDS:
        logger.warning(f"{backend.value} 백엔드는 f64를 보장하지 않아 CPU로 대체합니다.")
        return [Backend.CPU]
    return [backend]


def init(backend: Backend = Backend.CPU, precision: Precision = Precision.F64) -> dict:
    """Taichi 런타임 초기화.

    프로세스당 1회만 실행된다. 중복 호출 시 기존 설정을 반환한다.

    Args:
        backend: 사용할 백엔드 (AUTO면 CUDA → CPU 폴백)
        precision: 부동소수점 정밀도

    Returns:
        초기화 정보 딕셔너리
    """
    global _initialized, _active_backend, _active_precision

    if _initialized:
        return {
            "backend": _active_backend.value,
            "precision": _active_precision.value,
            "already_initialized": True,
        }

    ti_precision = ti.f64 if precision == Precision.F64 else ti.f32
    _active_precision = precision
    candidates = backend_candidates(backend)

    if backend == Backend.AUTO:
        for try_backend in candidates:
            try:
                ti.init(arch=_backend_to_arch(try_backend), default_fp=ti_precision)
            except Exception as e:
                logger.debug(f"{try_backend.value} 백엔드 실패: {e}")
                continue
            _active_backend = try_backend
            break
        else:
            ti.init(arch=ti.cpu, default_fp=ti_precision)
            _active_backend = Backend.CPU
            logger.warning("모든 GPU 백엔드 실패, CPU 폴백")
    else:
        ti.init(arch=_backend_to_arch(candidates[0]), default_fp=ti_precision)
        _active_backend = candidates[0]

    logger.info(
        f"Taichi 초기화: 백엔드={_active_backend.value}, 정밀도={precision.value}"
    )
    _initialized = True
    return {
        "backend": _active_backend.value,
        "precision": _active_precision.value,
        "already_initialized": False,
    }


def ensure_initialized():
    """커널 실행 전 호출: 아직 초기화되지 않았으면 CPU/f64로 초기화."""
    if not _initialized:
        init(Backend.CPU, Precision.F64)


def get_backend() -> Optional[Backend]:
    """현재 활성 백엔드 반환."""
    return _active_backend


def get_precision() -> Optional[Precision]:
    """현재 활성 정밀도 반환."""
    return _active_precision


def is_initialized() -> bool:
    """초기화 여부 반환."""
    return _initialized


def _backend_to_arch(backend: Backend):
    """Backend enum → Taichi arch 변환."""
    mapping = {
        Backend.CPU: ti.cpu,
        Backend.VULKAN: ti.vulkan,
        Backend.CUDA: ti.cuda,
        Backend.METAL: ti.metal,
    }
    return mapping[backend]
