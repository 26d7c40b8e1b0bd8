"""CLI 진입점 — Typer 서브커맨드."""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

app = typer.Typer(
    name="ibfsi",
    help="몰입 메쉬 유체-구조 연성(FSI) 해석",
    no_args_is_help=True,
)

console = Console()


def setup_logging(level: str = "INFO"):
    """ibfsi 로거에 RichHandler 설치."""
    handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root = logging.getLogger("ibfsi")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())


@app.command()
def run(
    config_path: Optional[Path] = typer.Argument(None, help="TOML 설정 파일 (생략 시 기본값)"),
    end_time: Optional[float] = typer.Option(None, "--end-time", help="종료 시각 덮어쓰기"),
    backend: str = typer.Option("cpu", "--backend", help="Taichi 백엔드 (cpu/cuda/auto, vulkan/metal은 f64 미보장으로 CPU 대체)"),
    log_level: str = typer.Option("INFO", "--log-level", help="로그 레벨"),
):
    """채널 + 장애물 시나리오 FSI 해석 실행."""
    from . import runtime
    from .benchmarks import channel_scenario, check_reference, solution_extrema
    from .config import FSIConfig
    from .coupling.coupled_solver import FSISolver

    setup_logging(log_level)
    config = FSIConfig.from_toml(config_path) if config_path else FSIConfig.default()
    if end_time is not None:
        config = config.model_copy(update={"end_time": end_time})

    runtime.init(runtime.Backend(backend))
    fluid, solid = channel_scenario(config)
    solver = FSISolver(fluid, solid, config)

    with Progress(SpinnerColumn(), TextColumn("{task.description}"), console=console) as progress:
        task = progress.add_task("[cyan]fsi[/] 설정...", total=None)
        solver.setup()
        progress.update(task, description=f"[cyan]fsi[/] {solver.time.n_steps()} 스텝 실행 중...")
        result = solver.run()

    vmax, pmax = solution_extrema(fluid)
    check = check_reference(vmax, pmax)

    table = Table(title="FSI 해석 결과")
    table.add_column("항목")
    table.add_column("값", justify="right")
    table.add_row("스텝 수", str(result.n_steps))
    table.add_row("최종 시각", f"{result.final_time:.6g}")
    table.add_row("적응 세분화", str(result.n_remeshes))
    table.add_row("유체 활성 셀", str(result.fluid_active_cells))
    table.add_row("최대 속도", f"{vmax:.6g}")
    table.add_row("최대 압력", f"{pmax:.6g}")
    table.add_row("기준값 일치", "예" if check.passed else "아니오")
    table.add_row("소요 시간", f"{result.elapsed_time:.2f}초")
    console.print(table)


@app.command()
def config(
    config_path: Optional[Path] = typer.Argument(None, help="TOML 설정 파일 (생략 시 기본값)"),
):
    """설정 검증 후 JSON으로 출력."""
    from .config import FSIConfig

    cfg = FSIConfig.from_toml(config_path) if config_path else FSIConfig.default()
    console.print_json(cfg.model_dump_json())


if __name__ == "__main__":
    app()
