"""세분화/조대화 전후 절점 해 전달.

- 이전 번호에 있던 정점: 값 그대로 복사 (정점 좌표는 위상 변경에도 불변)
- 새로 생긴 정점: 부모 셀 정점 평균 = 이전 Q1 해의 보간값
- 부모 정점 일부가 이전 번호에 없으면 이전 셀에서 기하 탐색 후 보간
"""

import logging
from typing import Sequence
import numpy as np

from .dof_handler import DoFHandler
from .element import is_inside_reference, map_to_reference, shape_functions

logger = logging.getLogger(__name__)


class SolutionTransfer:
    """절점 해 전달기.

    사용 순서:
        transfer = SolutionTransfer(dof_handler)
        transfer.prepare_for_coarsening_and_refinement()
        mesh.execute_coarsening_and_refinement()
        dof_handler.distribute_dofs()
        new_vec = transfer.interpolate(old_vec, [dim, 1])
    """

    def __init__(self, dof_handler: DoFHandler):
        self.dof_handler = dof_handler
        self._prepared = False

    def prepare_for_coarsening_and_refinement(self):
        """위상 변경 전 번호·연결 스냅샷 저장."""
        dh = self.dof_handler
        self._old_vertex_to_node = dh.vertex_to_node.copy()
        self._old_connectivity = dh.connectivity.copy()
        self._old_cell_nodes = dh.cell_nodes.copy()
        self._old_n_nodes = dh.n_nodes
        self._prepared = True

    def interpolate_nodal(self, old_nodal: np.ndarray) -> np.ndarray:
        """(n_old, k) 절점 값 → (n_new, k)."""
        if not self._prepared:
            raise RuntimeError("prepare_for_coarsening_and_refinement()가 먼저 호출되어야 합니다.")
        dh = self.dof_handler
        mesh = dh.mesh
        old_nodal = np.asarray(old_nodal, dtype=np.float64)
        if old_nodal.shape[0] != self._old_n_nodes:
            raise ValueError(
                f"이전 절점 수({self._old_n_nodes})와 값 배열({old_nodal.shape[0]})이 다릅니다."
            )

        old_v2n = self._old_vertex_to_node
        n_old_vertices = len(old_v2n)
        new_nodal = np.zeros((dh.n_nodes, old_nodal.shape[1]))

        existing = dh.node_to_vertex < n_old_vertices
        existing[existing] = old_v2n[dh.node_to_vertex[existing]] >= 0
        new_nodal[existing] = old_nodal[old_v2n[dh.node_to_vertex[existing]]]

        missing = np.flatnonzero(~existing)
        if len(missing) == 0:
            return new_nodal

        support = {vid: sorted(key) for key, vid in mesh.generated_vertices().items()}
        n_located = 0
        for node in missing:
            vid = int(dh.node_to_vertex[node])
            parents = support.get(vid)
            if parents is not None and all(
                p < n_old_vertices and old_v2n[p] >= 0 for p in parents
            ):
                new_nodal[node] = old_nodal[old_v2n[parents]].mean(axis=0)
            else:
                new_nodal[node] = self._locate_and_interpolate(mesh.vertices[vid], old_nodal)
                n_located += 1

        logger.debug(
            f"{mesh.name}: 해 전달 (복사 {int(existing.sum())}, 보간 {len(missing)}, "
            f"기하 탐색 {n_located})"
        )
        return new_nodal

    def interpolate(self, old_vec: np.ndarray, block_components: Sequence[int]) -> np.ndarray:
        """블록 DoF 벡터 전달.

        Args:
            old_vec: 이전 DoF 벡터 (블록 순서대로 연속, 블록 내부 node*nc+c)
            block_components: 블록별 성분 수 (예: 유체 [dim, 1])

        Returns:
            새 번호 기준 DoF 벡터
        """
        old_vec = np.asarray(old_vec, dtype=np.float64)
        n_old = self._old_n_nodes
        expected = n_old * sum(block_components)
        if old_vec.size != expected:
            raise ValueError(f"이전 벡터 길이({old_vec.size}) ≠ 기대값({expected})")

        blocks, start = [], 0
        for nc in block_components:
            blocks.append(old_vec[start:start + n_old * nc].reshape(n_old, nc))
            start += n_old * nc
        new_nodal = self.interpolate_nodal(np.hstack(blocks))

        out, col = [], 0
        for nc in block_components:
            out.append(new_nodal[:, col:col + nc].ravel())
            col += nc
        return np.concatenate(out)

    def _locate_and_interpolate(self, point: np.ndarray, old_nodal: np.ndarray) -> np.ndarray:
        mesh = self.dof_handler.mesh
        coords = mesh.vertices[self._old_connectivity]
        lo = coords.min(axis=1)
        hi = coords.max(axis=1)
        pad = 1e-10 * (hi - lo).max(axis=1, keepdims=True)
        candidates = np.flatnonzero(
            np.all((point >= lo - pad) & (point <= hi + pad), axis=1)
        )
        for c in candidates:
            xi = map_to_reference(mesh.element_type, coords[c], point)
            if is_inside_reference(xi):
                N = shape_functions(mesh.element_type, xi)
                return N @ old_nodal[self._old_cell_nodes[c]]
        raise RuntimeError(
            f"{mesh.name}: 해 전달 중 정점 {point.tolist()}을(를) 이전 메쉬에서 찾지 못했습니다."
        )
