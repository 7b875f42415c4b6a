"""CLI 진입점: Typer 서브커맨드."""

import json
from pathlib import Path
from typing import Optional, Tuple

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

app = typer.Typer(
    name="rt-gamma",
    help="3D 선량 분포 감마 지수 분석",
    no_args_is_help=True,
)

console = Console()


def _make_progress_callback(progress: Progress, task_id):
    """Rich Progress 콜백 생성 (정수 % 입력)."""
    def callback(percent: int):
        progress.update(task_id, completed=percent)
    return callback


def _load_config(config_path: Optional[Path]):
    from .config import AnalysisConfig

    if config_path is None:
        return AnalysisConfig.default()
    return AnalysisConfig.from_toml(config_path)


def _load_grids(*paths: Path):
    from .grid_io import load_grid

    try:
        return [load_grid(p) for p in paths]
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]실패[/]: {e}")
        raise typer.Exit(1)


def _print_summary(summary: dict):
    table = Table(title=f"감마 분석 {summary['criteria'].get('label', '')}")
    table.add_column("항목")
    table.add_column("값", justify="right")
    table.add_row("평가 복셀", str(summary["n_evaluated"]))
    table.add_row("제외 복셀", str(summary["n_excluded"]))
    table.add_row("통과 복셀", str(summary["n_passed"]))
    table.add_row("통과율", f"{summary['pass_rate']:.2f} %")
    if summary["mean_gamma"] is not None:
        table.add_row("평균 감마", f"{summary['mean_gamma']:.4f}")
    if summary["max_gamma"] is not None:
        table.add_row("최대 감마", f"{summary['max_gamma']:.4f}")
    if summary["n_non_finite"]:
        table.add_row("[red]비유한 감마[/]", str(summary["n_non_finite"]))
    console.print(table)


@app.command()
def gamma(
    reference_path: Path = typer.Argument(..., help="기준 선량 격자 (.npz)"),
    evaluated_path: Path = typer.Argument(..., help="평가 선량 격자 (.npz)"),
    output_dir: Path = typer.Option("output/gamma", "-o", "--output", help="출력 디렉토리"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="설정 파일 경로 (TOML)"),
    dta: Optional[float] = typer.Option(None, "--dta", help="DTA (mm)"),
    dd: Optional[float] = typer.Option(None, "--dd", help="선량 기준 (%)"),
    threshold: Optional[float] = typer.Option(None, "--threshold", help="제외 문턱 (%)"),
    union: bool = typer.Option(False, "--union", help="두 격자의 합집합 기하로 평가"),
    jacobian: bool = typer.Option(False, "--jacobian", help="벡터장 야코비안 계산"),
):
    """감마 분포 계산."""
    from src.gamma import GammaEvaluator
    from .grid_io import save_result

    try:
        cfg = _load_config(config_path)
        overrides = {
            key: value
            for key, value in (("distance_tolerance", dta), ("dose_tolerance", dd), ("threshold", threshold))
            if value is not None
        }
        if union:
            overrides["output_grid"] = "union"
        if jacobian:
            overrides["compute_jacobian"] = True
        cfg = cfg.model_validate({**cfg.model_dump(), "gamma": {**cfg.gamma.model_dump(), **overrides}})
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]설정 오류[/]: {e}")
        raise typer.Exit(1)

    reference, evaluated = _load_grids(reference_path, evaluated_path)
    evaluator = GammaEvaluator(**cfg.evaluator_kwargs())

    with Progress(
        SpinnerColumn(), TextColumn("{task.description}"), BarColumn(),
        TextColumn("{task.completed:>3.0f}%"), console=console,
    ) as progress:
        task = progress.add_task(f"[cyan]gamma[/] {evaluator.criteria['label']}", total=100)
        result = evaluator.evaluate(reference, evaluated, _make_progress_callback(progress, task))

    output_dir = Path(output_dir)
    npz_path = save_result(output_dir / "gamma.npz", result)
    summary = result.summary()
    json_path = output_dir / "summary.json"
    with open(json_path, "w", encoding="utf-8") as f:
        json.dump(summary, f, indent=2, ensure_ascii=False, allow_nan=False)

    _print_summary(summary)
    console.print(f"[green]완료[/]: {npz_path}, {json_path}")


@app.command()
def subtract(
    path_a: Path = typer.Argument(..., help="선량 격자 A (.npz)"),
    path_b: Path = typer.Argument(..., help="선량 격자 B (.npz)"),
    output_path: Path = typer.Option("output/difference.npz", "-o", "--output", help="출력 파일"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="설정 파일 경로 (TOML)"),
    spacing: Optional[Tuple[float, float, float]] = typer.Option(
        None, "--spacing", help="합집합 격자 간격 (mm, x y z)",
    ),
):
    """A - B 선량 차이 (A 최대 선량 대비 %)."""
    from src.core.geometry import Point3d
    from src.gamma import subtract as subtract_grids
    from .config import ReconcileConfig
    from .grid_io import save_grid

    try:
        cfg = _load_config(config_path)
        reconcile = ReconcileConfig(spacing=spacing) if spacing is not None else cfg.reconcile
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]설정 오류[/]: {e}")
        raise typer.Exit(1)

    grid_a, grid_b = _load_grids(path_a, path_b)
    difference = subtract_grids(grid_a, grid_b, Point3d(*reconcile.spacing))
    save_grid(output_path, difference)

    console.print(
        f"[green]완료[/]: {output_path} "
        f"(shape={difference.shape}, 범위 {difference.min_value:.2f} ~ {difference.max_value:.2f} %)"
    )


@app.command()
def offsets(
    dta: float = typer.Option(3.0, "--dta", help="DTA (mm)"),
    spacing: Tuple[float, float, float] = typer.Option((1.0, 1.0, 1.0), "--spacing", help="평가 격자 간격 (mm)"),
    show: int = typer.Option(10, "--show", help="출력할 오프셋 개수"),
):
    """오프셋 테이블 정보 출력."""
    from src.core.geometry import Point3d
    from src.gamma import offsets_for_tolerance

    try:
        table = offsets_for_tolerance(dta, Point3d(*spacing))
    except ValueError as e:
        console.print(f"[red]실패[/]: {e}")
        raise typer.Exit(1)

    console.print(f"오프셋 {len(table)}개, 최대 거리 {float(table.distance_squared[-1]) ** 0.5:.3f} mm")
    for offset in (table[i] for i in range(min(show, len(table)))):
        d = offset.displacement
        console.print(f"  ({d.x:+.3f}, {d.y:+.3f}, {d.z:+.3f})  r^2={offset.distance_squared:.4f}")


if __name__ == "__main__":
    app()
