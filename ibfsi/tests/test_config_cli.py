"""설정, 입력 검증, 벤치마크, CLI 테스트."""

import json
import logging

import numpy as np
import pytest
from pydantic import ValidationError
from typer.testing import CliRunner

from ibfsi import runtime
from ibfsi.benchmarks import (
    REFERENCE_MAX_PRESSURE,
    REFERENCE_MAX_VELOCITY,
    channel_scenario,
    check_reference,
    solution_extrema,
)
from ibfsi.cli import app
from ibfsi.config import FSIConfig
from ibfsi.validation import (
    FSIValidationError,
    GeometricInconsistencyError,
    PointNotFoundError,
    validate_field_size,
    validate_refinement_levels,
    validate_time_step,
)

TOML = """
dimension = 2
viscosity = 0.002
gravity = [0.0, -1.0]
end_time = 0.02
time_step = 0.01
global_refinements = [1, 0]
acceleration_model = "fluid_inertia"

[solid]
material = "neo_hookean"
E = 2000.0
nu = 0.4
dirichlet_boundary_ids = [0]

[channel]
subdivisions = [11, 2]
"""


# ============================================================
# 설정
# ============================================================

class TestConfig:
    """Pydantic 설정 테스트."""

    def test_defaults(self):
        config = FSIConfig.default()
        assert config.dimension == 2
        assert config.fluid_refinements == 0
        assert config.acceleration_model == "gravity"
        np.testing.assert_array_equal(config.gravity_vector(), [0.0, 0.0])

    def test_from_toml(self, tmp_path):
        path = tmp_path / "fsi.toml"
        path.write_text(TOML, encoding="utf-8")
        config = FSIConfig.from_toml(path)
        assert config.viscosity == 0.002
        assert config.fluid_refinements == 1
        assert config.solid_refinements == 0
        assert config.solid.material == "neo_hookean"
        assert config.solid.dirichlet_boundary_ids == [0]
        assert config.channel.subdivisions == [11, 2]
        assert config.channel.length == pytest.approx(2.2)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            FSIConfig.from_toml(tmp_path / "없음.toml")

    def test_gravity_default_follows_dimension(self):
        """중력 생략 시 차원에 맞는 영벡터."""
        config = FSIConfig(dimension=3)
        assert config.gravity == [0.0, 0.0, 0.0]
        np.testing.assert_array_equal(config.gravity_vector(), np.zeros(3))
        assert FSIConfig.model_validate(config.model_dump()).gravity == [0.0, 0.0, 0.0]

    def test_gravity_dimension(self):
        """중력 벡터 길이 ≠ 차원 → 검증 오류."""
        with pytest.raises(ValidationError):
            FSIConfig(dimension=3, gravity=[0.0, -1.0])

    def test_invalid_values(self):
        with pytest.raises(ValidationError):
            FSIConfig(time_step=0.0)
        with pytest.raises(ValidationError):
            FSIConfig(global_refinements=[-1, 0])
        with pytest.raises(ValidationError):
            FSIConfig(acceleration_model="other")
        with pytest.raises(ValidationError):
            FSIConfig(solid={"nu": 0.5})


# ============================================================
# 입력 검증 / 예외
# ============================================================

class TestValidation:
    """검증 함수와 예외 테스트."""

    def test_time_step(self, caplog):
        with pytest.raises(FSIValidationError) as exc:
            validate_time_step(-0.1, 1.0)
        assert exc.value.parameter == "time_step"
        with caplog.at_level(logging.WARNING, logger="ibfsi.validation"):
            validate_time_step(2.0, 1.0)
        assert any("1 스텝" in r.message for r in caplog.records)

    def test_refinement_levels(self):
        validate_refinement_levels(0, 0)
        with pytest.raises(FSIValidationError) as exc:
            validate_refinement_levels(2, 1)
        assert "max_level" in exc.value.suggestion

    def test_field_size(self):
        validate_field_size(np.zeros(6), 6)
        with pytest.raises(FSIValidationError):
            validate_field_size(np.zeros(5), 6, "displacement")

    def test_exception_hierarchy(self):
        """예외 계층: 검증=ValueError, 탐색 실패=LookupError, 기하=RuntimeError."""
        assert issubclass(FSIValidationError, ValueError)
        assert issubclass(PointNotFoundError, LookupError)
        err = GeometricInconsistencyError("밖", point=[1.0, 2.0], mesh_name="fluid")
        assert isinstance(err, RuntimeError)
        np.testing.assert_array_equal(err.point, [1.0, 2.0])


# ============================================================
# 런타임
# ============================================================

class TestRuntime:
    """Taichi 백엔드 선택 테스트."""

    def test_f64_backends_kept(self):
        assert runtime.backend_candidates(runtime.Backend.CPU) == [runtime.Backend.CPU]
        assert runtime.backend_candidates(runtime.Backend.CUDA) == [runtime.Backend.CUDA]

    def test_auto_skips_backends_without_f64(self):
        """AUTO: CUDA → CPU, Vulkan/Metal 제외."""
        assert runtime.backend_candidates(runtime.Backend.AUTO) == [runtime.Backend.CUDA, runtime.Backend.CPU]

    @pytest.mark.parametrize("backend", [runtime.Backend.METAL, runtime.Backend.VULKAN])
    def test_without_f64_falls_back_to_cpu(self, backend, caplog):
        with caplog.at_level(logging.WARNING, logger="ibfsi.runtime"):
            assert runtime.backend_candidates(backend) == [runtime.Backend.CPU]
        assert any("CPU로 대체" in r.message for r in caplog.records)


# ============================================================
# 벤치마크
# ============================================================

class TestBenchmarks:
    """회귀 기준값과 채널 시나리오 테스트."""

    def test_reference_match(self):
        check = check_reference(REFERENCE_MAX_VELOCITY * (1 + 5e-4), REFERENCE_MAX_PRESSURE)
        assert check.passed

    def test_reference_mismatch(self):
        check = check_reference(REFERENCE_MAX_VELOCITY, REFERENCE_MAX_PRESSURE * 1.01)
        assert not check.passed
        assert check.pressure_error == pytest.approx(0.01)

    def test_channel_scenario(self):
        fluid, solid = channel_scenario(FSIConfig.default())
        assert fluid.mesh.n_active_cells == 88
        assert solid.mesh.n_active_cells == 4
        assert fluid.mesh.boundary_ids() == {0, 1, 2, 3}
        lo, hi = solid.mesh.bounding_box()
        np.testing.assert_allclose(lo, [0.15, 0.15])
        np.testing.assert_allclose(hi, [0.25, 0.25])

    def test_channel_dimension_mismatch(self):
        config = FSIConfig(dimension=3, gravity=[0.0, 0.0, 0.0])
        with pytest.raises(FSIValidationError) as exc:
            channel_scenario(config)
        assert exc.value.parameter == "subdivisions"

    def test_solution_extrema(self):
        runtime.init(runtime.Backend.CPU)
        fluid, _ = channel_scenario(FSIConfig.default())
        fluid.setup_dofs()
        fluid.make_constraints()
        fluid.initialize_system()
        fluid.interpolate_initial()
        vmax, pmax = solution_extrema(fluid)
        assert vmax == pytest.approx(1.5 * 0.2)
        assert pmax == pytest.approx(8e-3 * 1.5 * 0.2 / 0.41**2 * 2.2)


# ============================================================
# CLI
# ============================================================

runner = CliRunner()


class TestCLI:
    """Typer CLI 테스트."""

    def test_config_default(self):
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["dimension"] == 2
        assert data["solid"]["material"] == "linear_elastic"

    def test_config_file(self, tmp_path):
        path = tmp_path / "fsi.toml"
        path.write_text(TOML, encoding="utf-8")
        result = runner.invoke(app, ["config", str(path)])
        assert result.exit_code == 0
        assert json.loads(result.output)["viscosity"] == 0.002

    def test_run_short(self):
        """짧은 채널 해석 실행 후 결과 표 출력."""
        result = runner.invoke(app, ["run", "--end-time", "0.02", "--log-level", "WARNING"])
        assert result.exit_code == 0, result.output
        assert "FSI 해석 결과" in result.output
