"""유체 협력 솔버 테스트."""

import numpy as np
import pytest

from ibfsi.config import FSIConfig
from ibfsi.fluid import PoiseuilleChannelFlow, PrescribedFlowSolver
from ibfsi.mesh import hyper_rectangle

L, H, U = 2.2, 0.41, 0.2


def _ready(solver):
    solver.setup_dofs()
    solver.make_constraints()
    solver.initialize_system()
    return solver


class TestBlockLayout:
    """[속도 | 압력] 블록 벡터 배치 테스트."""

    def test_offsets(self):
        mesh = hyper_rectangle([0, 0], [1, 1], [2, 2])
        fluid = _ready(PrescribedFlowSolver(mesh, FSIConfig(), lambda x, t: np.zeros_like(x)))
        assert fluid.dof_handler.n_nodes == 9
        assert fluid.pressure_offset == 18
        assert fluid.n_dofs == 27
        assert fluid.block_components == [2, 1]
        assert fluid.records.n_cells == 4

    def test_nodal_access(self):
        """set_nodal_solution → nodal_velocity / nodal_pressure."""
        mesh = hyper_rectangle([0, 0, 0], [1, 1, 1], [1, 1, 1])
        fluid = _ready(PrescribedFlowSolver(mesh, FSIConfig(dimension=3, gravity=[0, 0, 0]), lambda x, t: x))
        v = np.arange(24, dtype=float).reshape(8, 3)
        p = np.arange(8, dtype=float)
        fluid.set_nodal_solution(v, p)
        np.testing.assert_array_equal(fluid.nodal_velocity(), v)
        np.testing.assert_array_equal(fluid.nodal_pressure(), p)
        assert fluid.present_solution[fluid.pressure_offset + 3] == 3.0


class TestPoiseuilleChannelFlow:
    """포물선 채널 유동 테스트."""

    def _channel(self, dim=2):
        if dim == 2:
            mesh = hyper_rectangle([0, 0], [L, H], [22, 4], colorize=True)
            config = FSIConfig(viscosity=1e-3)
        else:
            mesh = hyper_rectangle([0, 0, 0], [L, H, H], [11, 2, 2], colorize=True)
            config = FSIConfig(dimension=3, gravity=[0, 0, 0], viscosity=1e-3)
        return _ready(PoiseuilleChannelFlow(mesh, config, L, H, U))

    def test_profile_2d(self):
        """중심선 U_max = 1.5·U_avg, 벽면 0."""
        fluid = self._channel()
        x = np.array([[0.0, H / 2], [1.0, 0.0], [1.0, H]])
        u = fluid._velocity(x, 0.0)
        assert u[0, 0] == pytest.approx(1.5 * U)
        np.testing.assert_allclose(u[1:], 0.0)
        np.testing.assert_allclose(u[:, 1], 0.0)

    def test_profile_3d(self):
        """3D 중심 U_max = 9/4·U_avg."""
        fluid = self._channel(3)
        u = fluid._velocity(np.array([[0.5, H / 2, H / 2]]), 0.0)
        assert u[0, 0] == pytest.approx(2.25 * U)

    def test_pressure_drop(self):
        """p = 8μU_max/H²·(L - x), 출구 0."""
        fluid = self._channel()
        p = fluid._pressure(np.array([[0.0, 0.1], [L, 0.1]]), 0.0)
        assert p[0] == pytest.approx(8e-3 * 1.5 * U / H**2 * L)
        assert p[1] == pytest.approx(0.0)

    def test_steady_step(self):
        """정상 유동: 스텝 후 증분 0, 레코드 소비 결과 기록."""
        fluid = self._channel()
        fluid.records.indicator[0, :] = True
        fluid.records.fsi_acceleration[0, :] = [1.0, 0.0]
        info = fluid.run_one_step(first_step=True)
        np.testing.assert_allclose(fluid.solution_increment, 0.0)
        assert info["n_immersed"] == 4
        assert info["immersed_volume"] == pytest.approx(0.1 * H / 4)
        np.testing.assert_allclose(info["acceleration_source"], [0.1 * H / 4, 0.0])
        assert fluid.time == pytest.approx(fluid.dt)

    def test_nodal_solution_matches_profile(self):
        fluid = self._channel()
        fluid.run_one_step(first_step=True)
        coords = fluid.dof_handler.node_coordinates()
        np.testing.assert_allclose(fluid.nodal_velocity(), fluid._velocity(coords, 0.0))
        assert fluid.nodal_pressure().max() == pytest.approx(8e-3 * 1.5 * U / H**2 * L)


class TestPrescribedFlow:
    """시간 의존 유동 테스트."""

    def test_increment_tracks_time(self):
        """v = t·e_x → 증분 = dt."""
        mesh = hyper_rectangle([0, 0], [1, 1], [2, 2])
        config = FSIConfig(time_step=0.05)

        def velocity(x, t):
            v = np.zeros_like(x)
            v[:, 0] = t
            return v

        fluid = _ready(PrescribedFlowSolver(mesh, config, velocity))
        fluid.run_one_step(first_step=True)
        fluid.run_one_step()
        np.testing.assert_allclose(fluid.nodal_velocity(fluid.solution_increment)[:, 0], 0.05)
        np.testing.assert_allclose(fluid.nodal_velocity()[:, 0], 0.1)
        assert fluid.step_count == 2
