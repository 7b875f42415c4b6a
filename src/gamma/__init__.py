"""3D 감마 지수 평가.

    from src.core import VoxelGrid
    from src.gamma import GammaEvaluator

    reference = VoxelGrid.from_array(ref_dose, spacing=(2.5, 2.5, 3.0))
    evaluated = VoxelGrid.from_array(eval_dose, spacing=(2.5, 2.5, 3.0))

    result = GammaEvaluator(distance_tolerance=3.0, dose_tolerance=3.0, threshold=10.0).evaluate(
        reference, evaluated, progress=lambda pct: print(pct, "%"),
    )
    print(result.pass_rate)
"""

from .evaluator import (
    EvaluationCancelled,
    GammaEvaluator,
    gamma_squared,
    search_minimum,
)
from .jacobian import jacobian_determinant
from .offsets import Offset, OffsetTable, create_offsets, offsets_for_tolerance
from .reconcile import blank_from, blank_from_union, subtract
from .result import EXCLUDED, GammaResult, VectorField

__all__ = [
    "EvaluationCancelled",
    "GammaEvaluator",
    "gamma_squared",
    "search_minimum",
    "jacobian_determinant",
    "Offset",
    "OffsetTable",
    "create_offsets",
    "offsets_for_tolerance",
    "blank_from",
    "blank_from_union",
    "subtract",
    "EXCLUDED",
    "GammaResult",
    "VectorField",
]
