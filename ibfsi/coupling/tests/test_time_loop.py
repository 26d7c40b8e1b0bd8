"""시뮬레이션 시계와 커플링 시간 루프 테스트."""

import numpy as np
import pytest

from ibfsi import runtime
from ibfsi.config import FSIConfig
from ibfsi.coupling import FSISolver, SimulationTime
from ibfsi.fluid import PoiseuilleChannelFlow
from ibfsi.mesh import hyper_rectangle
from ibfsi.mesh.element import ELEMENT_EDGES
from ibfsi.solid import SolidSolver


class TestSimulationTime:
    """스텝 카운터 시계 테스트."""

    def test_step_count_rounding(self):
        """end/dt가 정수에 가까우면 반올림, 아니면 올림."""
        assert SimulationTime(1.0, 0.1).n_steps() == 10
        assert SimulationTime(0.3, 0.1).n_steps() == 3
        assert SimulationTime(0.1, 0.03).n_steps() == 4
        assert SimulationTime(0.0, 0.1).n_steps() == 0

    def test_finished(self):
        clock = SimulationTime(0.3, 0.1)
        steps = 0
        while not clock.finished():
            clock.increment()
            steps += 1
        assert steps == 3
        assert clock.current() == pytest.approx(0.3)

    def test_intervals(self):
        """간격 = round(interval/dt) 스텝마다, 0 이하는 발동 안 함."""
        clock = SimulationTime(1.0, 0.1, output_interval=0.2, refinement_interval=0.3)
        assert not clock.time_to_output()
        fired_output, fired_refine = [], []
        for _ in range(10):
            clock.increment()
            if clock.time_to_output():
                fired_output.append(clock.timestep)
            if clock.time_to_refine():
                fired_refine.append(clock.timestep)
            assert not clock.time_to_save()
        assert fired_output == [2, 4, 6, 8, 10]
        assert fired_refine == [3, 6, 9]

    def test_invalid_dt(self):
        with pytest.raises(ValueError):
            SimulationTime(1.0, 0.0)


def _scenario(**overrides):
    runtime.init(runtime.Backend.CPU)
    params = dict(
        viscosity=1e-3,
        gravity=[0.0, 0.0],
        end_time=0.05,
        time_step=0.01,
        proximity_threshold=0.1,
        max_refinement_offset=1,
    )
    params.update(overrides)
    config = FSIConfig(**params)
    fluid_mesh = hyper_rectangle([0.0, 0.0], [2.2, 0.41], [22, 4], colorize=True, name="fluid")
    solid_mesh = hyper_rectangle([0.15, 0.15], [0.25, 0.25], [2, 2], colorize=True, name="solid")
    fluid = PoiseuilleChannelFlow(fluid_mesh, config, 2.2, 0.41, 0.2)
    solid = SolidSolver(solid_mesh, config)
    return fluid, solid, config


class TestFSISolver:
    """커플링 시간 루프 테스트."""

    def test_runs_to_end(self):
        """ceil(end/dt) 스텝 후 종료."""
        fluid, solid, config = _scenario(end_time=0.045)
        result = FSISolver(fluid, solid, config).run()
        assert result.n_steps == 5
        assert result.final_time == pytest.approx(0.05)
        assert len(result.history) == 5
        assert result.n_remeshes == 0

    def test_call_order_and_first_step(self):
        """스텝 순서: 고체 BC → 고체 → 유체 BC → 유체, first_step은 첫 스텝만."""
        fluid, solid, config = _scenario(end_time=0.03)
        solver = FSISolver(fluid, solid, config)
        calls = []

        def record(name, fn):
            def wrapper(*args, **kwargs):
                calls.append((name, args))
                return fn(*args, **kwargs)
            return wrapper

        solver.transfer.find_solid_bc = record("solid_bc", solver.transfer.find_solid_bc)
        solver.transfer.find_fluid_bc = record("fluid_bc", solver.transfer.find_fluid_bc)
        solid.run_one_step = record("solid", solid.run_one_step)
        fluid.run_one_step = record("fluid", fluid.run_one_step)
        solver.run()

        names = [name for name, _ in calls]
        assert names == ["solid_bc", "solid", "fluid_bc", "fluid"] * 3
        flags = [args[0] for name, args in calls if name in ("solid", "fluid")]
        assert flags == [True, True, False, False, False, False]

    def test_remesh_interval(self):
        """refinement_interval마다 적응 세분화, 레벨 범위 유지."""
        fluid, solid, config = _scenario(refinement_interval=0.02)
        result = FSISolver(fluid, solid, config).run()
        assert result.n_remeshes == 2
        levels = [fluid.mesh.level(c) for c in fluid.mesh.active_cells()]
        assert max(levels) == 1
        assert result.fluid_active_cells > 88
        fluid.records.check_size(fluid.dof_handler.n_active_cells, fluid.fe_values.n_quadrature_points)

    def test_default_window_stays_balanced(self):
        """기본 레벨 창(base..base+2) 반복 세분화: 이웃 레벨 차 1 이하, 매달린 절점 구속."""
        fluid, solid, config = _scenario(end_time=0.03, refinement_interval=0.01, max_refinement_offset=2)
        result = FSISolver(fluid, solid, config).run()
        assert result.n_remeshes == 3
        mesh = fluid.mesh
        assert mesh.n_levels == 3

        levels = {}
        for c in mesh.active_cells():
            for v in mesh.cell_vertices(c):
                levels.setdefault(int(v), []).append(mesh.level(c))
        assert max(max(l) - min(l) for l in levels.values()) == 1

        # 활성 셀 모서리 내부에 놓인 절점은 모두 매달린 절점으로 구속됨
        dh = fluid.dof_handler
        coords = dh.node_coordinates()
        constrained = set(fluid.constraints.nodes)
        for row in dh.cell_nodes:
            for i, j in ELEMENT_EDGES[dh.element_type]:
                a, d = coords[row[i]], coords[row[j]] - coords[row[i]]
                t = (coords - a) @ d / (d @ d)
                off = np.linalg.norm(coords - a - t[:, None] * d, axis=1)
                hit = np.flatnonzero((t > 1e-10) & (t < 1.0 - 1e-10) & (off < 1e-12))
                assert all(int(n) in constrained for n in hit)
        assert len(constrained) > 0

    def test_output_callback(self):
        fluid, solid, config = _scenario(output_interval=0.02)
        seen = []
        FSISolver(fluid, solid, config, output_callback=lambda s: seen.append(s.time.timestep)).run()
        assert seen == [2, 4]

    def test_obstacle_sees_channel_flow(self):
        """장애물 주위 몰입 적분점과 트랙션 발생."""
        fluid, solid, config = _scenario(end_time=0.01)
        result = FSISolver(fluid, solid, config).run()
        info = result.history[0]
        assert info["n_immersed"] > 0
        assert info["n_traction_points"] == 16
        assert fluid.last_coupling["immersed_volume"] > 0.0
        assert np.all(np.isfinite(solid.displacement))

    def test_global_refinements(self):
        """설정의 전역 세분화 횟수 적용."""
        fluid, solid, config = _scenario(end_time=0.01, global_refinements=[1, 1])
        solver = FSISolver(fluid, solid, config)
        solver.setup()
        assert fluid.dof_handler.n_active_cells == 88 * 4
        assert solid.dof_handler.n_active_cells == 16
