"""커플링 데이터 병렬 루프용 Taichi 커널.

numpy 배열을 ti.types.ndarray 인자로 직접 넘기며, 출력 배열은 in-place로
갱신된다. 커널 호출 전 runtime.ensure_initialized()로 런타임을 준비한다.
"""

import numpy as np
import taichi as ti

from .. import runtime


@ti.kernel
def _shift_vertices_kernel(
    vertices: ti.types.ndarray(dtype=ti.f64, ndim=2),
    vertex_ids: ti.types.ndarray(dtype=ti.i32, ndim=1),
    disp: ti.types.ndarray(dtype=ti.f64, ndim=2),
    sign: ti.f64,
):
    """x_v += sign · u_v (정점 id는 중복 없음 → 경합 없음)."""
    for k in range(vertex_ids.shape[0]):
        v = vertex_ids[k]
        for d in range(vertices.shape[1]):
            vertices[v, d] += sign * disp[k, d]


def shift_vertices(vertices: np.ndarray, vertex_ids: np.ndarray, disp: np.ndarray, sign: float):
    """정점 좌표 in-place 이동.

    Args:
        vertices: (n_vertices, dim) C-연속 float64 배열 (수정됨)
        vertex_ids: (k,) 중복 없는 정점 id
        disp: (k, dim) 정점별 변위
        sign: +1 (정방향) 또는 -1 (역방향)
    """
    if len(vertex_ids) == 0:
        return
    runtime.ensure_initialized()
    _shift_vertices_kernel(
        vertices,
        np.ascontiguousarray(vertex_ids, dtype=np.int32),
        np.ascontiguousarray(disp, dtype=np.float64),
        float(sign),
    )
