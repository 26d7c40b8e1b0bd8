"""벡터화 고체 조립 (강성, 집중 질량, 하중, 절점 투영).

요소별 Python 반복 대신 numpy 배치 연산으로 전체 셀을 동시에 처리한다.
DoF 규칙은 node * dim + d 이며 COO triplet을 scipy sparse로 변환한다.
"""

import numpy as np
from scipy import sparse


def _elem_dofs(cell_nodes: np.ndarray, dim: int) -> np.ndarray:
    """셀별 전역 DoF (n_cells, npe*dim), 순서 a*dim + d."""
    n_cells, npe = cell_nodes.shape
    elem_dofs = np.empty((n_cells, npe * dim), dtype=np.int64)
    for a in range(npe):
        for d in range(dim):
            elem_dofs[:, a * dim + d] = cell_nodes[:, a] * dim + d
    return elem_dofs


def assemble_stiffness_matrix(
    cell_nodes: np.ndarray,
    dNdx: np.ndarray,
    JxW: np.ndarray,
    n_nodes: int,
    dim: int,
    C: np.ndarray,
    chunk_size: int = 10000,
) -> sparse.coo_matrix:
    """전역 강성 행렬 조립.

    Args:
        cell_nodes: (n_cells, npe) 셀 절점
        dNdx: (n_cells, n_q, npe, dim) 형상함수 기울기
        JxW: (n_cells, n_q) 적분 가중치
        n_nodes: 전체 절점 수
        dim: 공간 차원
        C: Voigt 탄성 텐서
        chunk_size: 셀 청크 크기 (메모리 관리)

    Returns:
        (n_dof, n_dof) COO 행렬
    """
    n_cells = cell_nodes.shape[0]
    n_dof = n_nodes * dim
    rows, cols, vals = [], [], []
    for start in range(0, max(n_cells, 1), chunk_size):
        end = min(start + chunk_size, n_cells)
        if end <= start:
            break
        K = _assemble_chunk(cell_nodes[start:end], dNdx[start:end], JxW[start:end], n_dof, dim, C)
        rows.append(K.row)
        cols.append(K.col)
        vals.append(K.data)
    if not vals:
        return sparse.coo_matrix((n_dof, n_dof))
    return sparse.coo_matrix(
        (np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))),
        shape=(n_dof, n_dof),
    )


def _assemble_chunk(cell_nodes, dNdx, JxW, n_dof, dim, C) -> sparse.coo_matrix:
    """단일 청크 조립: B 일괄 구성 → ke = Σ_q w·Bᵀ·C·B → COO scatter."""
    n_cells, n_q, npe, _ = dNdx.shape
    dpe = npe * dim
    voigt = 6 if dim == 3 else 3
    total_gp = n_cells * n_q

    B = _build_B_matrices_batch(dNdx.reshape(total_gp, npe, dim), npe, dim, voigt, total_gp)
    BtC = np.einsum("gvi,vw->giw", B, C)
    ke_gauss = np.einsum("g,giw,gwj->gij", JxW.reshape(-1), BtC, B)
    ke = ke_gauss.reshape(n_cells, n_q, dpe, dpe).sum(axis=1)

    elem_dofs = _elem_dofs(cell_nodes, dim)
    rows = np.repeat(elem_dofs, dpe, axis=1)
    cols = np.tile(elem_dofs, (1, dpe))
    vals = ke.reshape(n_cells, -1)

    mask = np.abs(vals) > 1e-20
    return sparse.coo_matrix((vals[mask], (rows[mask], cols[mask])), shape=(n_dof, n_dof))


def _build_B_matrices_batch(dNdx, npe, dim, voigt, total_gp) -> np.ndarray:
    """변형률-변위 행렬 B (total_gp, voigt, npe*dim)."""
    B = np.zeros((total_gp, voigt, npe * dim), dtype=np.float64)
    if dim == 3:
        for a in range(npe):
            B[:, 0, a * 3] = dNdx[:, a, 0]        # ε_xx
            B[:, 1, a * 3 + 1] = dNdx[:, a, 1]    # ε_yy
            B[:, 2, a * 3 + 2] = dNdx[:, a, 2]    # ε_zz
            B[:, 3, a * 3] = dNdx[:, a, 1]        # γ_xy
            B[:, 3, a * 3 + 1] = dNdx[:, a, 0]
            B[:, 4, a * 3 + 1] = dNdx[:, a, 2]    # γ_yz
            B[:, 4, a * 3 + 2] = dNdx[:, a, 1]
            B[:, 5, a * 3] = dNdx[:, a, 2]        # γ_xz
            B[:, 5, a * 3 + 2] = dNdx[:, a, 0]
    else:
        for a in range(npe):
            B[:, 0, a * 2] = dNdx[:, a, 0]        # ε_xx
            B[:, 1, a * 2 + 1] = dNdx[:, a, 1]    # ε_yy
            B[:, 2, a * 2] = dNdx[:, a, 1]        # γ_xy
            B[:, 2, a * 2 + 1] = dNdx[:, a, 0]
    return B


def lumped_mass(cell_nodes: np.ndarray, JxW: np.ndarray, n_nodes: int, density: float, dim: int):
    """집중 질량 (row-sum lumping): 셀 질량을 절점에 균등 분배.

    Returns:
        (n_nodes * dim,) 대각 질량
    """
    npe = cell_nodes.shape[1]
    cell_mass = density * JxW.sum(axis=1) / npe
    node_mass = np.zeros(n_nodes)
    np.add.at(node_mass, cell_nodes.ravel(), np.repeat(cell_mass, npe))
    return np.repeat(node_mass, dim)


def assemble_body_force(
    cell_nodes: np.ndarray,
    shape_values: np.ndarray,
    JxW: np.ndarray,
    body_force: np.ndarray,
    n_nodes: int,
) -> np.ndarray:
    """균일 체적력 하중 f_a = Σ_q N_a·b·JxW."""
    dim = len(body_force)
    weights = np.einsum("qa,cq->ca", shape_values, JxW)  # (n_cells, npe)
    f = np.zeros((n_nodes, dim))
    np.add.at(f, cell_nodes.ravel(), weights.reshape(-1, 1) * body_force[None, :])
    return f.ravel()


def assemble_face_load(
    cell_nodes: np.ndarray,
    face_shape_values: np.ndarray,
    face_JxW: np.ndarray,
    traction: np.ndarray,
    n_nodes: int,
) -> np.ndarray:
    """면 트랙션 하중 f_a = Σ_q N_a·t_q·dA_q.

    Args:
        cell_nodes: (m, npe) 면이 속한 셀 절점
        face_shape_values: (m, n_fq, npe)
        face_JxW: (m, n_fq)
        traction: (m, n_fq, dim)
    """
    dim = traction.shape[-1]
    fa = np.einsum("mqa,mq,mqd->mad", face_shape_values, face_JxW, traction)
    f = np.zeros((n_nodes, dim))
    np.add.at(f, cell_nodes.ravel(), fa.reshape(-1, dim))
    return f.ravel()


def project_to_nodes(
    cell_nodes: np.ndarray,
    shape_values: np.ndarray,
    JxW: np.ndarray,
    values: np.ndarray,
    n_nodes: int,
) -> np.ndarray:
    """적분점 값 → 절점 값 (집중 L2 투영).

    u_a = Σ N_a·v·JxW / Σ N_a·JxW

    Args:
        values: (n_cells, n_q, ...) 적분점 값

    Returns:
        (n_nodes, ...) 절점 값
    """
    w = np.einsum("qa,cq->cqa", shape_values, JxW)              # (c, q, a)
    tail = values.shape[2:]
    num = np.zeros((n_nodes,) + tail)
    contrib = np.einsum("cqa,cq...->ca...", w, values)
    np.add.at(num, cell_nodes.ravel(), contrib.reshape((-1,) + tail))
    den = np.zeros(n_nodes)
    np.add.at(den, cell_nodes.ravel(), w.sum(axis=1).ravel())
    return num / den.reshape((-1,) + (1,) * len(tail))
