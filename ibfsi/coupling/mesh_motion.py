"""고체 메쉬 이동 어댑터.

절점 변위장으로 메쉬 정점을 일시적으로 변형 형상으로 옮기고 되돌린다.
정점은 DoF 번호의 node_to_vertex로 미리 중복 제거되므로, 공유 정점도 호출당
정확히 한 번만 이동한다.
"""

import logging
from contextlib import contextmanager

import numpy as np

from ..mesh.dof_handler import DoFHandler
from ..mesh.mesh import Mesh
from ..validation import validate_field_size
from .kernels import shift_vertices

logger = logging.getLogger(__name__)


def apply_displacement(
    mesh: Mesh,
    dof_handler: DoFHandler,
    displacement: np.ndarray,
    forward: bool = True,
):
    """정점을 +u (forward) 또는 -u (backward)만큼 이동.

    Args:
        mesh: 이동할 메쉬 (dof_handler.mesh와 같아야 함)
        dof_handler: 벡터 변위 DoF 번호 (n_components = dim)
        displacement: 변위 DoF 벡터 (node*dim + d)
        forward: True면 +u, False면 -u
    """
    if dof_handler.mesh is not mesh:
        raise ValueError("dof_handler가 다른 메쉬에 속해 있습니다.")
    if dof_handler.n_components != mesh.dim:
        raise ValueError(
            f"변위장 성분 수({dof_handler.n_components}) ≠ 공간 차원({mesh.dim})"
        )
    validate_field_size(displacement, dof_handler.n_dofs, "displacement")

    disp = np.asarray(displacement, dtype=np.float64).reshape(dof_handler.n_nodes, mesh.dim)
    shift_vertices(mesh.vertices, dof_handler.node_to_vertex, disp, 1.0 if forward else -1.0)
    mesh.mark_geometry_changed()


@contextmanager
def displaced(mesh: Mesh, dof_handler: DoFHandler, displacement: np.ndarray):
    """변형 형상 범위 가드.

    진입 시 정방향 이동, 종료 시(예외 포함) 같은 변위로 역방향 이동한다.
    변위 벡터는 진입 시점 값으로 복사해 두므로, 블록 안에서 변위가 갱신되어도
    원래 좌표로 정확히 복원된다.

    Example:
        with displaced(solid.mesh, solid.dof_handler, solid.displacement):
            inside = point_in_mesh(solid.mesh, x)
    """
    snapshot = np.array(displacement, dtype=np.float64, copy=True)
    apply_displacement(mesh, dof_handler, snapshot, forward=True)
    try:
        yield mesh
    finally:
        apply_displacement(mesh, dof_handler, snapshot, forward=False)
