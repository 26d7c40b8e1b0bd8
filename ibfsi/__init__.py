"""ibfsi — 몰입 메쉬(immersed mesh) 유체-구조 연성 해석 코어.

고정된 유체 배경 메쉬 안에 독립적으로 이산화된 고체 메쉬를 겹쳐 두고,
적분점 단위 점 탐색으로 두 영역을 연결한다.

사용 예:
    from ibfsi import FSIConfig, FSISolver, channel_scenario

    config = FSIConfig.from_toml("channel.toml")
    fluid, solid = channel_scenario(config)
    result = FSISolver(fluid, solid, config).run()
"""

from .config import FSIConfig, SolidConfig, ChannelConfig
from .runtime import init, Backend, Precision
from .validation import (
    FSIValidationError,
    PointNotFoundError,
    GeometricInconsistencyError,
    SizeMismatchError,
    FSIConvergenceError,
)
from .coupling import FSISolver, FSIResult, InterfaceTransfer, AdaptiveRemesher
from .benchmarks import channel_scenario, check_reference

__version__ = "0.1.0"

__all__ = [
    "FSIConfig",
    "SolidConfig",
    "ChannelConfig",
    "init",
    "Backend",
    "Precision",
    "FSIValidationError",
    "PointNotFoundError",
    "GeometricInconsistencyError",
    "SizeMismatchError",
    "FSIConvergenceError",
    "FSISolver",
    "FSIResult",
    "InterfaceTransfer",
    "AdaptiveRemesher",
    "channel_scenario",
    "check_reference",
]
