"""공유 시뮬레이션 시계."""

import math


class SimulationTime:
    """스텝 카운터 기반 시계.

    현재 시각은 timestep · delta_t 로 계산하므로 덧셈 누적 오차가 없다.
    간격(interval)은 시간 단위이며 round(interval / delta_t) 스텝마다 발동한다.
    0 이하 간격은 발동하지 않는다.

    Args:
        end_time: 종료 시각
        delta_t: 시간 간격
        output_interval: 출력 간격
        refinement_interval: 적응 세분화 간격
        save_interval: 저장 간격
    """

    def __init__(
        self,
        end_time: float,
        delta_t: float,
        output_interval: float = 0.0,
        refinement_interval: float = 0.0,
        save_interval: float = 0.0,
    ):
        if delta_t <= 0:
            raise ValueError(f"delta_t는 양수여야 합니다: {delta_t}")
        self.end_time = end_time
        self.delta_t = delta_t
        self.output_interval = output_interval
        self.refinement_interval = refinement_interval
        self.save_interval = save_interval
        self.timestep = 0

    @classmethod
    def from_config(cls, config) -> "SimulationTime":
        return cls(
            config.end_time,
            config.time_step,
            config.output_interval,
            config.refinement_interval,
            config.save_interval,
        )

    def current(self) -> float:
        return self.timestep * self.delta_t

    def increment(self):
        self.timestep += 1

    def n_steps(self) -> int:
        """종료까지 필요한 총 스텝 수 ceil(end / dt) (부동소수점 오차 보정)."""
        ratio = self.end_time / self.delta_t
        nearest = round(ratio)
        if abs(ratio - nearest) < 1e-9 * max(1.0, ratio):
            return int(nearest)
        return int(math.ceil(ratio))

    def finished(self, tol: float = 1e-12) -> bool:
        """end - current ≤ tol 이면 종료.

        스텝 수가 n_steps()에 도달해도 종료로 본다.
        """
        return self.end_time - self.current() <= tol or self.timestep >= self.n_steps()

    def _fires(self, interval: float) -> bool:
        if interval <= 0:
            return False
        every = max(1, int(round(interval / self.delta_t)))
        return self.timestep > 0 and self.timestep % every == 0

    def time_to_output(self) -> bool:
        return self._fires(self.output_interval)

    def time_to_refine(self) -> bool:
        return self._fires(self.refinement_interval)

    def time_to_save(self) -> bool:
        return self._fires(self.save_interval)

    def __repr__(self) -> str:
        return (
            f"SimulationTime(step={self.timestep}, t={self.current():.6g}, "
            f"end={self.end_time:.6g}, dt={self.delta_t:.6g})"
        )
