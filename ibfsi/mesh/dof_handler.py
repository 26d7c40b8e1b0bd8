"""Q1 절점 자유도 번호 부여 및 매달린 절점(hanging node) 구속.

DoF 배치 규칙 (assembly 관례와 동일):
    dof = offset + node * n_components + component

블록 벡터(유체 속도 + 압력)는 블록마다 offset을 달리해 같은 번호 체계를 쓴다.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional
import numpy as np

from .element import ELEMENT_EDGES, ELEMENT_FACES, ElementType
from .mesh import Mesh

logger = logging.getLogger(__name__)


class DoFHandler:
    """활성 셀 정점 위의 Q1 절점 번호.

    번호는 활성 셀 순서대로 정점이 처음 등장하는 순서이다. 메쉬 위상이 바뀌면
    distribute_dofs()를 다시 호출해야 한다.

    Args:
        mesh: 대상 메쉬
        n_components: 절점당 성분 수 (벡터장: dim, 스칼라장: 1)
    """

    def __init__(self, mesh: Mesh, n_components: int = 1):
        if n_components < 1:
            raise ValueError(f"성분 수는 1 이상이어야 합니다: {n_components}")
        self.mesh = mesh
        self.n_components = n_components

        self.active_cells = np.zeros(0, dtype=np.int64)
        self.connectivity = np.zeros((0, mesh.elem_info.n_nodes), dtype=np.int64)
        self.cell_nodes = np.zeros((0, mesh.elem_info.n_nodes), dtype=np.int64)
        self.node_to_vertex = np.zeros(0, dtype=np.int64)
        self.vertex_to_node = np.zeros(0, dtype=np.int64)
        self._topology_version = -1

    def distribute_dofs(self):
        """현재 활성 셀 기준으로 절점 번호 부여."""
        mesh = self.mesh
        self.active_cells = mesh.active_cells().copy()
        self.connectivity = mesh.active_connectivity().copy()

        flat = self.connectivity.ravel()
        _, first = np.unique(flat, return_index=True)
        self.node_to_vertex = flat[np.sort(first)]

        self.vertex_to_node = np.full(mesh.n_vertices, -1, dtype=np.int64)
        self.vertex_to_node[self.node_to_vertex] = np.arange(len(self.node_to_vertex))
        self.cell_nodes = self.vertex_to_node[self.connectivity]
        self._topology_version = mesh.topology_version

        logger.debug(
            f"{mesh.name}: DoF 분배 완료 (절점 {self.n_nodes}, "
            f"성분 {self.n_components}, DoF {self.n_dofs})"
        )

    @property
    def n_nodes(self) -> int:
        return len(self.node_to_vertex)

    @property
    def n_dofs(self) -> int:
        return self.n_nodes * self.n_components

    @property
    def n_active_cells(self) -> int:
        return len(self.active_cells)

    @property
    def element_type(self) -> ElementType:
        return self.mesh.element_type

    @property
    def dim(self) -> int:
        return self.mesh.dim

    def is_current(self) -> bool:
        """번호가 메쉬의 현재 위상과 일치하는지 여부."""
        return self._topology_version == self.mesh.topology_version

    def cell_coordinates(self) -> np.ndarray:
        """활성 셀 정점 좌표 (현재 메쉬 좌표, 이동 상태 반영)."""
        return self.mesh.vertices[self.connectivity]

    def node_coordinates(self) -> np.ndarray:
        """절점 좌표 (n_nodes, dim)."""
        return self.mesh.vertices[self.node_to_vertex]

    def cell_dofs(self, offset: int = 0) -> np.ndarray:
        """셀별 DoF 인덱스 (n_cells, nodes_per_elem * n_components).

        순서는 [a0_c0, a0_c1, ..., a1_c0, ...] (assembly의 a*dim+d 규칙).
        """
        nc = self.n_components
        comps = np.arange(nc)
        dofs = self.cell_nodes[:, :, None] * nc + comps[None, None, :]
        return offset + dofs.reshape(self.n_active_cells, -1)

    def vertex_dof_index(self, vertex: int, component: int = 0, offset: int = 0) -> int:
        """정점의 성분 DoF 인덱스 (정점이 사용되지 않으면 -1)."""
        node = self.vertex_to_node[vertex]
        if node < 0:
            return -1
        return int(offset + node * self.n_components + component)


@dataclass
class AffineConstraints:
    """절점 구속: u[node] = Σ w_k · u[parent_k].

    Attributes:
        nodes: 구속 절점 (정점 id 오름차순: 부모가 먼저 계산됨)
        parents: 절점별 부모 절점 목록
        weights: 절점별 가중치 목록
    """

    nodes: List[int] = field(default_factory=list)
    parents: List[np.ndarray] = field(default_factory=list)
    weights: List[np.ndarray] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.nodes)

    def is_constrained(self, node: int) -> bool:
        return node in self.nodes

    def add_line(self, node: int, parents, weights):
        self.nodes.append(int(node))
        self.parents.append(np.asarray(parents, dtype=np.int64))
        self.weights.append(np.asarray(weights, dtype=np.float64))

    def distribute(self, vec: np.ndarray, n_components: int, offset: int = 0) -> np.ndarray:
        """구속 절점의 값을 부모 절점 값으로 덮어쓴다 (in-place).

        Args:
            vec: DoF 벡터
            n_components: 절점당 성분 수
            offset: 블록 시작 위치
        """
        for node, parents, weights in zip(self.nodes, self.parents, self.weights):
            for c in range(n_components):
                vec[offset + node * n_components + c] = np.dot(
                    weights, vec[offset + parents * n_components + c]
                )
        return vec


def make_hanging_node_constraints(dof_handler: DoFHandler) -> AffineConstraints:
    """세분화 경계의 매달린 절점 구속 생성.

    세분화로 생긴 정점의 부모 집합(모서리 2점, 3D 면 4점)이 여전히 어떤 활성
    셀의 모서리/면이면, 그 정점은 조대 셀 쪽에서 보이지 않는 매달린 절점이다.
    값은 부모 정점의 평균(Q1 보간값)으로 구속한다.
    Mesh.prepare_coarsening_and_refinement가 이웃 레벨 차이를 1 이하로 유지하므로
    모서리/면 내부의 매달린 절점은 모두 이 경우에 해당한다.
    """
    mesh = dof_handler.mesh
    et = mesh.element_type
    conn = dof_handler.connectivity

    active_entities = set()
    for edge in ELEMENT_EDGES[et]:
        for row in conn[:, edge]:
            active_entities.add(frozenset(row.tolist()))
    if mesh.dim == 3:
        for face in ELEMENT_FACES[et]:
            for row in conn[:, face]:
                active_entities.add(frozenset(row.tolist()))

    constraints = AffineConstraints()
    hanging = []
    for key, vid in mesh.generated_vertices().items():
        if dof_handler.vertex_to_node[vid] < 0:
            continue
        if key in active_entities:
            hanging.append((vid, sorted(key)))

    for vid, parent_vertices in sorted(hanging):
        parents = dof_handler.vertex_to_node[parent_vertices]
        constraints.add_line(
            dof_handler.vertex_to_node[vid],
            parents,
            np.full(len(parents), 1.0 / len(parents)),
        )

    if len(constraints):
        logger.debug(f"{mesh.name}: 매달린 절점 구속 {len(constraints)}개")
    return constraints
