"""계층형 사각형/육면체 메쉬.

조대(coarse) 셀에서 시작해 등방 세분화로 자식 셀을 만드는 트리 구조이다.
- 정점 좌표 `vertices`는 가변 배열이다 (메쉬 이동 어댑터가 일시적으로 변위).
- 정점은 삭제되지 않는다. 조대화로 고아가 된 정점은 DoF 번호에서 제외된다.
- 활성 셀 순서는 조대 셀 순서 + 깊이 우선 자식 순서로 결정적이다.
"""

import logging
from typing import Callable, Dict, FrozenSet, List, Optional
import numpy as np

from .element import (
    ElementType,
    ELEMENT_FACES,
    FACE_AXIS_SIDE,
    NODE_COORDS,
    element_type_for_dim,
    get_element_info,
)

logger = logging.getLogger(__name__)

INTERIOR = -1


class Mesh:
    """Hierarchical QUAD4/HEX8 mesh with refine/coarsen flags.

    Args:
        vertices: (n_vertices, dim) 정점 좌표
        cells: (n_cells, nodes_per_elem) 조대 셀 연결 (element.py 노드 순서, 양의 야코비안)
        name: 로그/오류 메시지용 이름
    """

    def __init__(self, vertices: np.ndarray, cells: np.ndarray, name: str = "mesh"):
        vertices = np.asarray(vertices, dtype=np.float64)
        cells = np.asarray(cells, dtype=np.int64)
        self.name = name
        self.dim = vertices.shape[1]
        self.element_type: ElementType = element_type_for_dim(self.dim)
        self.elem_info = get_element_info(self.element_type)

        if cells.ndim != 2 or cells.shape[1] != self.elem_info.n_nodes:
            raise ValueError(
                f"셀 연결 형상 {cells.shape}이(가) {self.element_type.name}와 맞지 않습니다."
            )

        self.vertices = np.ascontiguousarray(vertices)
        self.geometry_version = 0
        self.topology_version = 0

        # 셀 트리 (전체 셀; 조대화된 자식은 _alive=False)
        self._cell_vertices: List[np.ndarray] = []
        self._level: List[int] = []
        self._parent: List[int] = []
        self._children: List[Optional[List[int]]] = []
        self._alive: List[bool] = []
        self._face_boundary: List[np.ndarray] = []
        self._refine_flag: List[bool] = []
        self._coarsen_flag: List[bool] = []

        # 부모 정점 집합 → 생성된 정점 (모서리 중점, 면 중심, 셀 중심)
        self._midpoints: Dict[FrozenSet[int], int] = {}

        for conn in cells:
            self._add_cell(conn, level=0, parent=-1)
        self._n_coarse = len(cells)
        self._init_coarse_boundary()

        self._active_cache: Optional[np.ndarray] = None
        self._connectivity_cache: Optional[np.ndarray] = None

    # ───────────────── 구성 ─────────────────

    def _add_cell(self, conn, level: int, parent: int) -> int:
        cid = len(self._cell_vertices)
        self._cell_vertices.append(np.asarray(conn, dtype=np.int64))
        self._level.append(level)
        self._parent.append(parent)
        self._children.append(None)
        self._alive.append(True)
        self._face_boundary.append(np.full(self.elem_info.n_faces, INTERIOR, dtype=np.int64))
        self._refine_flag.append(False)
        self._coarsen_flag.append(False)
        return cid

    def _init_coarse_boundary(self):
        """조대 셀 중 한 셀에만 속한 면을 경계(id 0)로 표시."""
        faces = ELEMENT_FACES[self.element_type]
        count: Dict[FrozenSet[int], int] = {}
        for c in range(self._n_coarse):
            conn = self._cell_vertices[c]
            for fn in faces:
                key = frozenset(conn[fn].tolist())
                count[key] = count.get(key, 0) + 1
        for c in range(self._n_coarse):
            conn = self._cell_vertices[c]
            for f, fn in enumerate(faces):
                if count[frozenset(conn[fn].tolist())] == 1:
                    self._face_boundary[c][f] = 0

    # ───────────────── 조회 ─────────────────

    @property
    def n_vertices(self) -> int:
        return self.vertices.shape[0]

    @property
    def n_cells(self) -> int:
        """전체 셀 수 (비활성·조대화된 셀 포함)."""
        return len(self._cell_vertices)

    @property
    def n_active_cells(self) -> int:
        return len(self.active_cells())

    @property
    def n_levels(self) -> int:
        """살아 있는 셀이 존재하는 레벨 수."""
        return 1 + max(l for l, alive in zip(self._level, self._alive) if alive)

    def active_cells(self) -> np.ndarray:
        """활성 셀 id 배열 (결정적 순서)."""
        if self._active_cache is None:
            active = []
            stack = list(range(self._n_coarse))[::-1]
            while stack:
                c = stack.pop()
                children = self._children[c]
                if children is None:
                    active.append(c)
                else:
                    stack.extend(children[::-1])
            self._active_cache = np.asarray(active, dtype=np.int64)
        return self._active_cache

    def active_connectivity(self) -> np.ndarray:
        """활성 셀 정점 연결 (n_active, nodes_per_elem)."""
        if self._connectivity_cache is None:
            cells = self.active_cells()
            self._connectivity_cache = np.array(
                [self._cell_vertices[c] for c in cells], dtype=np.int64
            ).reshape(len(cells), self.elem_info.n_nodes)
        return self._connectivity_cache

    def active_centers(self) -> np.ndarray:
        """활성 셀 중심 (현재 정점 좌표 기준, 정점 평균)."""
        return self.vertices[self.active_connectivity()].mean(axis=1)

    def cell_vertices(self, cell: int) -> np.ndarray:
        return self._cell_vertices[cell]

    def cell_coords(self, cell: int) -> np.ndarray:
        return self.vertices[self._cell_vertices[cell]]

    def cell_center(self, cell: int) -> np.ndarray:
        return self.cell_coords(cell).mean(axis=0)

    def level(self, cell: int) -> int:
        return self._level[cell]

    def parent(self, cell: int) -> int:
        return self._parent[cell]

    def children(self, cell: int) -> Optional[List[int]]:
        return self._children[cell]

    def is_active(self, cell: int) -> bool:
        return self._alive[cell] and self._children[cell] is None

    def face_boundary_id(self, cell: int, face: int) -> int:
        """면 경계 id (-1이면 내부 면)."""
        return int(self._face_boundary[cell][face])

    def at_boundary(self, cell: int, face: int) -> bool:
        return self._face_boundary[cell][face] != INTERIOR

    def face_center(self, cell: int, face: int) -> np.ndarray:
        fn = ELEMENT_FACES[self.element_type][face]
        return self.vertices[self._cell_vertices[cell][fn]].mean(axis=0)

    def bounding_box(self):
        """사용 중인 정점의 (최소, 최대) 좌표."""
        used = np.unique(self.active_connectivity())
        pts = self.vertices[used]
        return pts.min(axis=0), pts.max(axis=0)

    # ───────────────── 경계 id ─────────────────

    def set_boundary_id_where(self, predicate: Callable[[np.ndarray], bool], boundary_id: int):
        """면 중심이 predicate를 만족하는 경계 면에 id 부여 (모든 레벨)."""
        if boundary_id < 0:
            raise ValueError(f"경계 id는 0 이상이어야 합니다: {boundary_id}")
        n_tagged = 0
        for c in range(self.n_cells):
            if not self._alive[c]:
                continue
            for f in range(self.elem_info.n_faces):
                if self._face_boundary[c][f] != INTERIOR and predicate(self.face_center(c, f)):
                    self._face_boundary[c][f] = boundary_id
                    n_tagged += 1
        return n_tagged

    def colorize(self, tol: float = 1e-10):
        """경계 상자 면별 id: x-→0, x+→1, y-→2, y+→3, z-→4, z+→5."""
        lo, hi = self.bounding_box()
        scale = tol * (1.0 + float(np.max(hi - lo)))
        for axis in range(self.dim):
            self.set_boundary_id_where(
                lambda p, a=axis: abs(p[a] - lo[a]) < scale, 2 * axis
            )
            self.set_boundary_id_where(
                lambda p, a=axis: abs(p[a] - hi[a]) < scale, 2 * axis + 1
            )

    def boundary_ids(self) -> set:
        """활성 셀에 존재하는 경계 id 집합."""
        ids = set()
        for c in self.active_cells():
            ids.update(int(b) for b in self._face_boundary[c] if b != INTERIOR)
        return ids

    # ───────────────── 기하 변경 통지 ─────────────────

    def mark_geometry_changed(self):
        """정점 좌표가 바뀌었음을 기록 (캐시된 기하 정보 무효화 판단용)."""
        self.geometry_version += 1

    def _invalidate_topology(self):
        self._active_cache = None
        self._connectivity_cache = None
        self.topology_version += 1

    # ───────────────── 세분화 플래그 ─────────────────

    def set_refine_flag(self, cell: int):
        self._refine_flag[cell] = True

    def set_coarsen_flag(self, cell: int):
        self._coarsen_flag[cell] = True

    def clear_refine_flag(self, cell: int):
        self._refine_flag[cell] = False

    def clear_coarsen_flag(self, cell: int):
        self._coarsen_flag[cell] = False

    def refine_flag_set(self, cell: int) -> bool:
        return self._refine_flag[cell]

    def coarsen_flag_set(self, cell: int) -> bool:
        return self._coarsen_flag[cell]

    def clear_flags(self):
        for c in range(self.n_cells):
            self._refine_flag[c] = False
            self._coarsen_flag[c] = False

    def _future_level(self, cell: int) -> int:
        """플래그 실행 후 셀 레벨."""
        return self._level[cell] + int(self._refine_flag[cell]) - int(self._coarsen_flag[cell])

    def _vertex_neighbours(self, active: np.ndarray) -> Dict[int, set]:
        """활성 셀별 정점 공유 활성 셀 집합."""
        by_vertex: Dict[int, List[int]] = {}
        for c in active:
            for v in self._cell_vertices[c]:
                by_vertex.setdefault(int(v), []).append(int(c))
        neighbours = {}
        for c in active:
            nb = set()
            for v in self._cell_vertices[c]:
                nb.update(by_vertex[int(v)])
            nb.discard(int(c))
            neighbours[int(c)] = nb
        return neighbours

    def prepare_coarsening_and_refinement(self) -> bool:
        """플래그 정리 (고정점까지 반복).

        - 세분화 플래그가 있으면 조대화 플래그 해제
        - 레벨 0 셀은 조대화 불가
        - 형제가 모두 활성 + 조대화 플래그일 때만 조대화 유지
        - 정점을 공유하는 활성 셀의 실행 후 레벨 차이는 1 이하
          (위반 시 거친 쪽의 조대화 플래그 해제, 없으면 세분화 플래그 추가)

        레벨 차이가 1 이하이면 매달린 절점은 항상 어떤 활성 셀 모서리/면의
        중점이므로 make_hanging_node_constraints로 모두 구속된다.

        Returns:
            실행할 변경이 있으면 True
        """
        active = self.active_cells()
        neighbours = self._vertex_neighbours(active)

        changed = True
        while changed:
            changed = False

            # ── 1. 조대화 플래그 정리 ──
            for c in active:
                if self._refine_flag[c] or self._parent[c] < 0:
                    self._coarsen_flag[c] = False

            for c in active:
                if not self._coarsen_flag[c]:
                    continue
                siblings = self._children[self._parent[c]]
                if not all(self.is_active(s) and self._coarsen_flag[s] for s in siblings):
                    self._coarsen_flag[c] = False

            # ── 2. 2:1 레벨 균형 ──
            for c in active:
                level_c = self._future_level(c)
                for n in neighbours[int(c)]:
                    if level_c - self._future_level(n) < 2:
                        continue
                    if self._coarsen_flag[n]:
                        self._coarsen_flag[n] = False
                    else:
                        self._refine_flag[n] = True
                    changed = True

        return any(self._refine_flag[c] or self._coarsen_flag[c] for c in active)

    def execute_coarsening_and_refinement(self):
        """플래그에 따라 조대화 후 세분화 실행. 실행 후 모든 플래그는 해제된다."""
        self.prepare_coarsening_and_refinement()
        active = self.active_cells()

        n_coarsened = 0
        handled_parents = set()
        for c in active:
            if not self._coarsen_flag[c]:
                continue
            p = self._parent[c]
            if p in handled_parents:
                continue
            handled_parents.add(p)
            for s in self._children[p]:
                self._alive[s] = False
                self._coarsen_flag[s] = False
            self._children[p] = None
            n_coarsened += 1

        new_vertices: List[np.ndarray] = []
        n_refined = 0
        for c in active:
            if self._refine_flag[c] and self.is_active(c):
                self._refine_cell(c, new_vertices)
                n_refined += 1

        if new_vertices:
            self.vertices = np.ascontiguousarray(
                np.vstack([self.vertices, np.asarray(new_vertices)])
            )
            self.mark_geometry_changed()

        self.clear_flags()
        self._invalidate_topology()
        logger.debug(
            f"{self.name}: 세분화 {n_refined}셀, 조대화 {n_coarsened}부모 → "
            f"활성 셀 {self.n_active_cells}"
        )
        return n_refined, n_coarsened

    def refine_global(self, times: int = 1):
        """모든 활성 셀을 times회 세분화."""
        for _ in range(times):
            for c in self.active_cells():
                self._refine_flag[c] = True
            self.execute_coarsening_and_refinement()

    def _vertex_at(self, cell: int, natural: np.ndarray, new_vertices: List[np.ndarray]) -> int:
        """부모 셀 자연 좌표 (-1/0/+1 성분) 위치의 정점 id (없으면 생성)."""
        conn = self._cell_vertices[cell]
        c = NODE_COORDS[self.element_type]
        nonzero = natural != 0.0
        support = np.all(c[:, nonzero] == natural[nonzero], axis=1)
        ids = conn[support]
        if len(ids) == 1:
            return int(ids[0])

        key = frozenset(int(i) for i in ids)
        vid = self._midpoints.get(key)
        if vid is None:
            # 직선 변 셀: 자연 좌표 중점 = 부모 정점 평균
            vid = self.n_vertices + len(new_vertices)
            new_vertices.append(self.vertices[ids].mean(axis=0))
            self._midpoints[key] = vid
        return vid

    def _refine_cell(self, cell: int, new_vertices: List[np.ndarray]):
        """등방 세분화: 부모 노드 k를 포함하는 자식 k 생성."""
        c = NODE_COORDS[self.element_type]
        faces_axis_side = FACE_AXIS_SIDE[self.element_type]
        level = self._level[cell] + 1
        children = []
        for k in range(self.elem_info.n_nodes):
            corner = c[k]
            conn = [
                self._vertex_at(cell, (corner + c[j]) / 2.0, new_vertices)
                for j in range(self.elem_info.n_nodes)
            ]
            child = self._add_cell(conn, level=level, parent=cell)
            for f, (axis, side) in enumerate(faces_axis_side):
                if corner[axis] == side:
                    self._face_boundary[child][f] = self._face_boundary[cell][f]
            children.append(child)
        self._children[cell] = children

    # ───────────────── 매달린 정점 정보 ─────────────────

    def generated_vertices(self) -> Dict[FrozenSet[int], int]:
        """세분화로 생성된 정점과 그 부모 정점 집합 (읽기 전용 사본)."""
        return dict(self._midpoints)

    def __repr__(self) -> str:
        return (
            f"Mesh(name={self.name!r}, dim={self.dim}, "
            f"active_cells={self.n_active_cells}, vertices={self.n_vertices})"
        )
