"""감마 분석 설정: Pydantic 모델 + TOML 로드."""

import tomllib
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator


class GammaConfig(BaseModel):
    """감마 평가 기준."""

    distance_tolerance: float = Field(3.0, gt=0, description="DTA (mm)")
    dose_tolerance: float = Field(3.0, gt=0, description="선량 기준 (기준 최대 선량 대비 %)")
    threshold: float = Field(10.0, ge=0, description="제외 문턱 (기준 최대 선량 대비 %)")
    search_factor: float = Field(3.0, gt=0)
    step_divisor: float = Field(10.0, gt=0)
    output_grid: Literal["reference", "union"] = "reference"
    compute_jacobian: bool = False
    pass_threshold: float = Field(1.0, gt=0)


class ReconcileConfig(BaseModel):
    """격자 정합 설정."""

    spacing: tuple[float, float, float] = (1.0, 1.0, 2.0)

    @field_validator("spacing")
    @classmethod
    def _positive_spacing(cls, value: tuple[float, float, float]) -> tuple[float, float, float]:
        if any(s <= 0 for s in value):
            raise ValueError(f"spacing은 양수여야 합니다: {value}")
        return value


class AnalysisConfig(BaseModel):
    """최상위 분석 설정."""

    gamma: GammaConfig = Field(default_factory=GammaConfig)
    reconcile: ReconcileConfig = Field(default_factory=ReconcileConfig)

    @classmethod
    def from_toml(cls, path: str | Path) -> "AnalysisConfig":
        """TOML 파일에서 설정 로드.

        Args:
            path: TOML 파일 경로

        Returns:
            AnalysisConfig 인스턴스
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"설정 파일을 찾을 수 없습니다: {path}")

        with open(path, "rb") as f:
            data = tomllib.load(f)

        return cls(**data)

    @classmethod
    def default(cls) -> "AnalysisConfig":
        """기본 설정 반환."""
        return cls()

    def evaluator_kwargs(self) -> dict:
        """GammaEvaluator 생성 인자."""
        return {
            **self.gamma.model_dump(),
            "union_spacing": self.reconcile.spacing,
        }
