"""기하 기본 타입: 3D 점/벡터와 축 구간."""

from dataclasses import dataclass
from typing import Sequence

import numpy as np


@dataclass(frozen=True)
class Point3d:
    """3D 점 또는 변위 벡터 (mm).

    성분별 산술 연산을 지원한다.
    """
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __add__(self, other: "Point3d") -> "Point3d":
        return Point3d(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: "Point3d") -> "Point3d":
        return Point3d(self.x - other.x, self.y - other.y, self.z - other.z)

    def __mul__(self, factor: float) -> "Point3d":
        return Point3d(self.x * factor, self.y * factor, self.z * factor)

    __rmul__ = __mul__

    def __truediv__(self, divisor: float) -> "Point3d":
        return Point3d(self.x / divisor, self.y / divisor, self.z / divisor)

    def __neg__(self) -> "Point3d":
        return Point3d(-self.x, -self.y, -self.z)

    def __iter__(self):
        yield self.x
        yield self.y
        yield self.z

    @property
    def length_squared(self) -> float:
        """원점까지 거리의 제곱."""
        return self.x * self.x + self.y * self.y + self.z * self.z

    @property
    def length(self) -> float:
        return float(np.sqrt(self.length_squared))

    def to_array(self) -> np.ndarray:
        """(3,) float64 배열로 변환."""
        return np.array([self.x, self.y, self.z], dtype=np.float64)

    @classmethod
    def from_array(cls, values: Sequence[float]) -> "Point3d":
        """길이 3 시퀀스에서 생성."""
        if len(values) != 3:
            raise ValueError(f"3개 성분이 필요합니다: {values}")
        return cls(float(values[0]), float(values[1]), float(values[2]))


@dataclass(frozen=True)
class Range:
    """한 축의 닫힌 구간 [minimum, maximum]."""
    minimum: float
    maximum: float

    def __post_init__(self):
        if self.maximum < self.minimum:
            raise ValueError(f"잘못된 구간: [{self.minimum}, {self.maximum}]")

    @property
    def length(self) -> float:
        return self.maximum - self.minimum

    def contains(self, value: float) -> bool:
        return self.minimum <= value <= self.maximum

    def combine(self, other: "Range") -> "Range":
        """두 구간을 모두 포함하는 합집합 구간 반환."""
        return Range(min(self.minimum, other.minimum), max(self.maximum, other.maximum))
