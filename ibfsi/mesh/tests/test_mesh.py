"""메쉬 계층 테스트 (요소, 세분화, DoF, 적분, 해 전달)."""

import numpy as np
import pytest

from ibfsi.mesh import (
    DoFHandler,
    ElementType,
    FEFaceValues,
    FEValues,
    SolutionTransfer,
    gather_cell_values,
    hyper_rectangle,
    make_hanging_node_constraints,
)
from ibfsi.mesh.element import (
    ELEMENT_EDGES,
    get_face_gauss_points,
    get_gauss_points,
    is_inside_reference,
    map_to_reference,
    shape_functions,
    NODE_COORDS,
)


def _unit_square(n=1):
    return hyper_rectangle([0.0, 0.0], [1.0, 1.0], [n, n], colorize=True)


def _two_cells():
    """[0,2]×[0,1] 2셀 메쉬."""
    return hyper_rectangle([0.0, 0.0], [2.0, 1.0], [2, 1], colorize=True)


def _linear_field(points):
    return 2.0 * points[:, 0] + 3.0 * points[:, 1] - 1.0


def _max_level_jump(mesh):
    """정점을 공유하는 활성 셀 사이 최대 레벨 차이."""
    levels = {}
    for c in mesh.active_cells():
        for v in mesh.cell_vertices(c):
            levels.setdefault(int(v), []).append(mesh.level(c))
    return max(max(l) - min(l) for l in levels.values())


def _edge_interior_nodes(dh, tol=1e-10):
    """활성 셀 모서리마다 (끝 절점 a, b, 모서리 내부 절점, 모서리 매개변수 t)."""
    coords = dh.node_coordinates()
    for row in dh.cell_nodes:
        for i, j in ELEMENT_EDGES[dh.element_type]:
            a, b = row[i], row[j]
            d = coords[b] - coords[a]
            t = (coords - coords[a]) @ d / (d @ d)
            off = np.linalg.norm(coords - coords[a] - t[:, None] * d, axis=1)
            hit = np.flatnonzero((t > tol) & (t < 1.0 - tol) & (off < tol * np.linalg.norm(d)))
            if len(hit):
                yield a, b, hit, t[hit]


def _edge_jump(dh, values):
    """모서리 내부 절점 값과 모서리 선형 보간값의 최대 차이 (연속이면 0)."""
    jump = 0.0
    for a, b, nodes, t in _edge_interior_nodes(dh):
        expected = (1.0 - t) * values[a] + t * values[b]
        jump = max(jump, float(np.max(np.abs(values[nodes] - expected))))
    return jump


def _cell_at(mesh, point):
    """point를 중심으로 갖는 활성 셀."""
    for c in mesh.active_cells():
        if np.allclose(mesh.cell_center(c), point):
            return c
    raise AssertionError(f"중심 {point}인 활성 셀 없음")


def _two_level_corner():
    """2×2 격자에서 왼쪽 아래 셀, 그 중 중앙 쪽 자식을 차례로 세분화."""
    mesh = _unit_square(2)
    mesh.set_refine_flag(_cell_at(mesh, [0.25, 0.25]))
    mesh.execute_coarsening_and_refinement()
    mesh.set_refine_flag(_cell_at(mesh, [0.375, 0.375]))
    mesh.execute_coarsening_and_refinement()
    return mesh


class TestElement:
    """참조 요소 테스트."""

    @pytest.mark.parametrize("et", [ElementType.QUAD4, ElementType.HEX8])
    def test_partition_of_unity(self, et):
        """형상함수 합 = 1, 절점에서 Kronecker delta."""
        rng = np.random.default_rng(0)
        dim = NODE_COORDS[et].shape[1]
        xi = rng.uniform(-1, 1, size=(10, dim))
        np.testing.assert_allclose(shape_functions(et, xi).sum(axis=1), 1.0)
        np.testing.assert_allclose(shape_functions(et, NODE_COORDS[et]), np.eye(len(NODE_COORDS[et])), atol=1e-14)

    @pytest.mark.parametrize("et,volume", [(ElementType.QUAD4, 4.0), (ElementType.HEX8, 8.0)])
    def test_gauss_weights(self, et, volume):
        """가중치 합 = 참조 요소 부피."""
        _, w = get_gauss_points(et)
        assert w.sum() == pytest.approx(volume)

    def test_face_points_on_face(self):
        """면 적분점의 고정축 좌표 = ±1."""
        pts, w = get_face_gauss_points(ElementType.HEX8, 5)
        np.testing.assert_allclose(pts[:, 0], 1.0)
        assert w.sum() == pytest.approx(4.0)

    def test_inverse_map_distorted_quad(self):
        """비정형 사각형 역사상."""
        X = np.array([[0.0, 0.0], [2.0, 0.2], [2.3, 1.7], [-0.1, 1.2]])
        xi0 = np.array([0.3, -0.45])
        x = shape_functions(ElementType.QUAD4, xi0) @ X
        xi = map_to_reference(ElementType.QUAD4, X, x)
        np.testing.assert_allclose(xi, xi0, atol=1e-10)
        assert is_inside_reference(xi)

    def test_inverse_map_outside(self):
        """요소 밖 점은 참조 요소 밖으로 사상."""
        X = NODE_COORDS[ElementType.QUAD4] * 0.5 + 0.5
        xi = map_to_reference(ElementType.QUAD4, X, np.array([3.0, 0.5]))
        assert not is_inside_reference(xi)


class TestHierarchicalMesh:
    """계층 메쉬 테스트."""

    def test_structured_counts(self):
        """2×1 격자: 정점 6, 셀 2."""
        mesh = _two_cells()
        assert mesh.n_vertices == 6
        assert mesh.n_active_cells == 2
        assert mesh.n_levels == 1

    def test_refine_global_shares_midpoints(self):
        """전역 세분화 시 공유 모서리 중점은 한 번만 생성."""
        mesh = _two_cells()
        mesh.refine_global(1)
        assert mesh.n_active_cells == 8
        assert mesh.n_vertices == 15
        assert mesh.n_levels == 2

    def test_refine_hex(self):
        """육면체 1회 세분화: 자식 8, 정점 27."""
        mesh = hyper_rectangle([0, 0, 0], [1, 1, 1], [1, 1, 1])
        mesh.refine_global(1)
        assert mesh.n_active_cells == 8
        assert mesh.n_vertices == 27

    def test_children_volume_preserved(self):
        """자식 셀 부피 합 = 부모 부피."""
        mesh = _unit_square()
        mesh.refine_global(2)
        fe = FEValues(mesh.element_type).reinit(mesh.vertices[mesh.active_connectivity()])
        assert fe.JxW.sum() == pytest.approx(1.0)

    def test_coarsen_all_siblings(self):
        """형제가 모두 플래그면 조대화."""
        mesh = _unit_square()
        mesh.refine_global(1)
        for c in mesh.active_cells():
            mesh.set_coarsen_flag(c)
        mesh.execute_coarsening_and_refinement()
        assert mesh.n_active_cells == 1

    def test_partial_siblings_not_coarsened(self):
        """형제 일부만 플래그면 조대화하지 않음."""
        mesh = _unit_square()
        mesh.refine_global(1)
        for c in mesh.active_cells()[:3]:
            mesh.set_coarsen_flag(c)
        mesh.execute_coarsening_and_refinement()
        assert mesh.n_active_cells == 4

    def test_level_zero_not_coarsened(self):
        """조대 셀은 조대화 불가."""
        mesh = _two_cells()
        for c in mesh.active_cells():
            mesh.set_coarsen_flag(c)
        assert mesh.prepare_coarsening_and_refinement() is False
        mesh.execute_coarsening_and_refinement()
        assert mesh.n_active_cells == 2

    def test_refine_wins_over_coarsen(self):
        """같은 셀에 두 플래그가 있으면 세분화."""
        mesh = _unit_square()
        c = mesh.active_cells()[0]
        mesh.set_coarsen_flag(c)
        mesh.set_refine_flag(c)
        mesh.execute_coarsening_and_refinement()
        assert mesh.n_active_cells == 4

    def test_level_balance_refines_neighbours(self):
        """레벨 2 셀과 정점을 공유하는 레벨 0 셀은 함께 세분화."""
        mesh = _two_level_corner()
        assert mesh.n_active_cells == 19
        assert mesh.n_levels == 3
        assert _max_level_jump(mesh) == 1
        assert mesh.level(_cell_at(mesh, [0.625, 0.375])) == 1

    def test_corner_refinement_stays_local(self):
        """바깥쪽 모서리 자식 세분화는 이웃에 전파되지 않음."""
        mesh = _unit_square(2)
        mesh.set_refine_flag(_cell_at(mesh, [0.25, 0.25]))
        mesh.execute_coarsening_and_refinement()
        mesh.set_refine_flag(_cell_at(mesh, [0.125, 0.125]))
        mesh.execute_coarsening_and_refinement()
        assert mesh.n_active_cells == 10
        assert _max_level_jump(mesh) == 1

    def test_coarsen_blocked_by_finer_neighbour(self):
        """조대화 후 레벨 차이가 2가 되면 형제 전체 조대화 취소."""
        mesh = _two_level_corner()
        for center in [[0.625, 0.125], [0.875, 0.125], [0.625, 0.375], [0.875, 0.375]]:
            mesh.set_coarsen_flag(_cell_at(mesh, center))
        assert mesh.prepare_coarsening_and_refinement() is False
        mesh.execute_coarsening_and_refinement()
        assert mesh.n_active_cells == 19

    def test_coarsen_finest_family(self):
        """균형을 깨지 않는 조대화는 허용."""
        mesh = _two_level_corner()
        for c in mesh.active_cells():
            if mesh.level(c) == 2:
                mesh.set_coarsen_flag(c)
        mesh.execute_coarsening_and_refinement()
        assert mesh.n_active_cells == 16
        assert mesh.n_levels == 2

    def test_colorize_ids(self):
        """colorize: x-/x+/y-/y+ → 0/1/2/3, 자식이 상속."""
        mesh = _unit_square()
        assert mesh.boundary_ids() == {0, 1, 2, 3}
        mesh.refine_global(1)
        assert mesh.boundary_ids() == {0, 1, 2, 3}
        left = [
            (c, f)
            for c in mesh.active_cells()
            for f in range(4)
            if mesh.face_boundary_id(c, f) == 0
        ]
        assert len(left) == 2
        for c, f in left:
            assert mesh.face_center(c, f)[0] == pytest.approx(0.0)

    def test_interior_faces(self):
        """내부 면은 경계가 아님."""
        mesh = _two_cells()
        c0 = mesh.active_cells()[0]
        assert not mesh.at_boundary(c0, 1)     # 우측 변은 셀 1과 공유
        assert mesh.at_boundary(c0, 3)

    def test_set_boundary_id_where(self):
        """술어로 경계 id 지정."""
        mesh = _unit_square(2)
        n = mesh.set_boundary_id_where(lambda p: p[1] > 1.0 - 1e-12, 7)
        assert n == 2
        assert 7 in mesh.boundary_ids()

    def test_geometry_version(self):
        mesh = _unit_square()
        v0 = mesh.geometry_version
        mesh.mark_geometry_changed()
        assert mesh.geometry_version == v0 + 1


class TestDoFHandler:
    """DoF 번호 테스트."""

    def test_counts(self):
        """2×1 격자 벡터장: 절점 6, DoF 12."""
        dh = DoFHandler(_two_cells(), 2)
        dh.distribute_dofs()
        assert dh.n_nodes == 6
        assert dh.n_dofs == 12
        assert dh.cell_dofs().shape == (2, 8)
        assert dh.is_current()

    def test_cell_dofs_layout(self):
        """셀 DoF = node * n_components + d."""
        dh = DoFHandler(_two_cells(), 2)
        dh.distribute_dofs()
        dofs = dh.cell_dofs()
        nodes = dh.cell_nodes
        np.testing.assert_array_equal(dofs[:, 0::2], nodes * 2)
        np.testing.assert_array_equal(dofs[:, 1::2], nodes * 2 + 1)

    def test_stale_after_refinement(self):
        mesh = _two_cells()
        dh = DoFHandler(mesh, 1)
        dh.distribute_dofs()
        mesh.refine_global(1)
        assert not dh.is_current()

    def test_hanging_node_constraint(self):
        """한쪽 셀만 세분화: 공유 모서리 중점 1개가 매달린 절점."""
        mesh = _two_cells()
        mesh.set_refine_flag(mesh.active_cells()[0])
        mesh.execute_coarsening_and_refinement()
        dh = DoFHandler(mesh, 1)
        dh.distribute_dofs()
        constraints = make_hanging_node_constraints(dh)
        assert len(constraints) == 1

        node = constraints.nodes[0]
        np.testing.assert_allclose(dh.node_coordinates()[node], [1.0, 0.5])

        vec = _linear_field(dh.node_coordinates())
        expected = vec.copy()
        vec[node] = 99.0
        constraints.distribute(vec, 1)
        np.testing.assert_allclose(vec, expected)

    def test_no_constraints_on_uniform_mesh(self):
        mesh = _two_cells()
        mesh.refine_global(1)
        dh = DoFHandler(mesh, 2)
        dh.distribute_dofs()
        assert len(make_hanging_node_constraints(dh)) == 0

    def test_two_level_hanging_nodes(self):
        """모서리 내부 절점은 모두 구속, 구속 후 비선형장도 모서리에서 연속."""
        dh = DoFHandler(_two_level_corner(), 1)
        dh.distribute_dofs()
        constraints = make_hanging_node_constraints(dh)
        inside = {int(n) for _, _, nodes, _ in _edge_interior_nodes(dh) for n in nodes}
        assert set(constraints.nodes) == inside
        assert len(constraints) == 4

        x = dh.node_coordinates()
        vec = np.sin(3.0 * x[:, 0]) * np.exp(x[:, 1])
        assert _edge_jump(dh, vec) > 1e-3
        constraints.distribute(vec, 1)
        assert _edge_jump(dh, vec) < 1e-12


class TestFEValues:
    """적분점 평가 테스트."""

    def test_area_distorted(self):
        """비정형 사각형 면적."""
        X = np.array([[[0.0, 0.0], [2.0, 0.0], [2.0, 1.0], [0.0, 2.0]]])
        fe = FEValues(ElementType.QUAD4).reinit(X)
        assert fe.JxW.sum() == pytest.approx(3.0)

    def test_linear_gradient_exact(self):
        """선형장 기울기 정확 재현."""
        mesh = _unit_square(2)
        dh = DoFHandler(mesh, 1)
        dh.distribute_dofs()
        vec = _linear_field(dh.node_coordinates())
        fe = FEValues(mesh.element_type).reinit(dh.cell_coordinates())
        nodal = gather_cell_values(dh.cell_nodes, vec, 1)
        grads = fe.function_gradients(nodal)
        np.testing.assert_allclose(grads[..., 0, 0], 2.0)
        np.testing.assert_allclose(grads[..., 0, 1], 3.0)
        values = fe.function_values(nodal)[..., 0]
        np.testing.assert_allclose(values, _linear_field(fe.quadrature_points.reshape(-1, 2)).reshape(values.shape))

    def test_face_normals_quad(self):
        """단위 정사각형 면 법선과 길이."""
        mesh = _unit_square()
        X = mesh.vertices[mesh.active_connectivity()]
        fv = FEFaceValues(ElementType.QUAD4).reinit(np.repeat(X, 4, axis=0), [0, 1, 2, 3])
        expected = np.array([[0, -1], [1, 0], [0, 1], [-1, 0]], dtype=float)
        np.testing.assert_allclose(fv.normals, np.repeat(expected[:, None, :], 2, axis=1), atol=1e-14)
        np.testing.assert_allclose(fv.JxW.sum(axis=1), 1.0)

    def test_face_normals_hex(self):
        """육면체 바닥/우측 면 법선."""
        mesh = hyper_rectangle([0, 0, 0], [2, 1, 1], [1, 1, 1])
        X = mesh.vertices[mesh.active_connectivity()]
        fv = FEFaceValues(ElementType.HEX8).reinit(np.repeat(X, 2, axis=0), [0, 5])
        np.testing.assert_allclose(fv.normals[0], [[0, 0, -1]] * 4, atol=1e-14)
        np.testing.assert_allclose(fv.normals[1], [[1, 0, 0]] * 4, atol=1e-14)
        assert fv.JxW[0].sum() == pytest.approx(2.0)
        assert fv.JxW[1].sum() == pytest.approx(1.0)


class TestSolutionTransfer:
    """세분화 전후 해 전달 테스트."""

    def test_linear_field_preserved_on_refine(self):
        """국부 세분화 후 선형장 정확 보존."""
        mesh = _unit_square(2)
        dh = DoFHandler(mesh, 1)
        dh.distribute_dofs()
        vec = _linear_field(dh.node_coordinates())

        transfer = SolutionTransfer(dh)
        transfer.prepare_for_coarsening_and_refinement()
        mesh.set_refine_flag(mesh.active_cells()[0])
        mesh.execute_coarsening_and_refinement()
        dh.distribute_dofs()

        new_vec = transfer.interpolate(vec, [1])
        np.testing.assert_allclose(new_vec, _linear_field(dh.node_coordinates()))

    def test_blocked_vector_and_coarsening(self):
        """블록 벡터 [속도(2) | 압력(1)] 조대화 후 값 복사."""
        mesh = _unit_square(1)
        mesh.refine_global(1)
        dh = DoFHandler(mesh, 2)
        dh.distribute_dofs()
        coords = dh.node_coordinates()
        velocity = np.column_stack([coords[:, 1], -coords[:, 0]])
        pressure = _linear_field(coords)
        vec = np.concatenate([velocity.ravel(), pressure])

        transfer = SolutionTransfer(dh)
        transfer.prepare_for_coarsening_and_refinement()
        for c in mesh.active_cells():
            mesh.set_coarsen_flag(c)
        mesh.execute_coarsening_and_refinement()
        dh.distribute_dofs()
        assert dh.n_nodes == 4

        new_vec = transfer.interpolate(vec, [2, 1])
        coords = dh.node_coordinates()
        np.testing.assert_allclose(new_vec[:8].reshape(-1, 2), np.column_stack([coords[:, 1], -coords[:, 0]]))
        np.testing.assert_allclose(new_vec[8:], _linear_field(coords))
