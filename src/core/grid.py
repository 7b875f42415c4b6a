"""직교 격자 선량 볼륨.

감마 평가 엔진이 입력 격자에 요구하는 기능(임의 위치 샘플링, 최대값,
스케일링 계수, 좌표축)을 DoseVolume 추상 클래스로 정의하고,
numpy 버퍼 기반 VoxelGrid를 실제 구현으로 제공한다.

데이터 버퍼는 (x, y, z) C 순서의 1차원 배열이다:
    index = (i * ny + j) * nz + k
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence, Tuple

import numpy as np
from scipy import ndimage

from .geometry import Point3d, Range

# 등간격 판정 허용 오차 (mm)
SPACING_TOLERANCE = 1e-6


@dataclass(frozen=True)
class Voxel:
    """샘플링된 격자점 (위치 + 원시 값)."""
    position: Point3d
    value: float


class DoseVolume(ABC):
    """감마 평가에 필요한 격자 기능의 추상 클래스.

    interpolate()는 스케일링 전 원시 값을 반환한다.
    물리 선량은 원시 값 * scaling 이다.
    """

    @property
    @abstractmethod
    def x_coords(self) -> np.ndarray:
        ...

    @property
    @abstractmethod
    def y_coords(self) -> np.ndarray:
        ...

    @property
    @abstractmethod
    def z_coords(self) -> np.ndarray:
        ...

    @property
    @abstractmethod
    def spacing(self) -> Point3d:
        """공칭 격자 간격."""
        ...

    @property
    @abstractmethod
    def scaling(self) -> float:
        ...

    @property
    @abstractmethod
    def max_value(self) -> float:
        """최대 원시 값 (스케일링 전)."""
        ...

    @abstractmethod
    def interpolate(self, points: np.ndarray) -> np.ndarray:
        """임의 위치의 원시 값 샘플링.

        Args:
            points: (N, 3) 위치 배열 (mm)

        Returns:
            (N,) 원시 값 배열
        """
        ...

    def sample(self, point: Point3d) -> float:
        """단일 위치의 원시 값."""
        return float(self.interpolate(point.to_array()[None, :])[0])

    @property
    def x_range(self) -> Range:
        return Range(float(self.x_coords[0]), float(self.x_coords[-1]))

    @property
    def y_range(self) -> Range:
        return Range(float(self.y_coords[0]), float(self.y_coords[-1]))

    @property
    def z_range(self) -> Range:
        return Range(float(self.z_coords[0]), float(self.z_coords[-1]))

    @property
    def shape(self) -> Tuple[int, int, int]:
        return len(self.x_coords), len(self.y_coords), len(self.z_coords)

    @property
    def number_of_voxels(self) -> int:
        nx, ny, nz = self.shape
        return nx * ny * nz

    def positions(self) -> np.ndarray:
        """모든 격자점 위치 (N, 3), 데이터 버퍼와 같은 순서."""
        gx, gy, gz = np.meshgrid(self.x_coords, self.y_coords, self.z_coords, indexing="ij")
        return np.stack([gx.ravel(), gy.ravel(), gz.ravel()], axis=1)


def _as_axis(values: Sequence[float], name: str) -> np.ndarray:
    axis = np.array(values, dtype=np.float64).ravel()
    if axis.size > 1 and not np.all(np.diff(axis) > 0):
        raise ValueError(f"{name} 좌표축은 엄격히 증가해야 합니다")
    return axis


def _nominal_spacing(axis: np.ndarray) -> Tuple[float, bool]:
    """축의 공칭 간격과 등간격 여부."""
    if axis.size < 2:
        return 0.0, True
    steps = np.diff(axis)
    constant = bool(np.all(np.abs(steps - steps[0]) <= SPACING_TOLERANCE))
    return float(steps[0]), constant


class VoxelGrid(DoseVolume):
    """직교(비등간격 허용) 3D 격자 선량 분포.

    샘플링은 삼선형 보간이며, 격자 범위 밖의 위치는
    가장 가까운 경계로 클램프된다.
    """

    def __init__(
        self,
        x_coords: Sequence[float],
        y_coords: Sequence[float],
        z_coords: Sequence[float],
        data: Optional[np.ndarray] = None,
        scaling: float = 1.0,
        spacing: Optional[Point3d] = None,
        constant_spacing: Optional[bool] = None,
    ):
        """격자 생성.

        Args:
            x_coords, y_coords, z_coords: 엄격히 증가하는 좌표축 (mm)
            data: 1차원 원시 값 버퍼 (None이면 0으로 채움)
            scaling: 원시 값에 곱해지는 스케일링 계수
            spacing: 공칭 간격 (None이면 축에서 계산)
            constant_spacing: 등간격 여부 (None이면 축에서 판정)
        """
        self._x = _as_axis(x_coords, "x")
        self._y = _as_axis(y_coords, "y")
        self._z = _as_axis(z_coords, "z")

        size = self._x.size * self._y.size * self._z.size
        if data is None:
            data = np.zeros(size, dtype=np.float64)
        data = np.asarray(data, dtype=np.float64).ravel()
        if data.size != size:
            raise ValueError(
                f"데이터 길이 {data.size}가 좌표축 크기 곱 {size}와 다릅니다"
            )
        self.data = data
        self._scaling = float(scaling)

        (sx, cx), (sy, cy), (sz, cz) = (_nominal_spacing(a) for a in (self._x, self._y, self._z))
        self._spacing = spacing if spacing is not None else Point3d(sx, sy, sz)
        self.constant_spacing = constant_spacing if constant_spacing is not None else (cx and cy and cz)

        self.min_value = float("inf")
        self._max_value = float("-inf")
        self.update_extrema(self.data)

    @classmethod
    def from_array(
        cls,
        values: np.ndarray,
        origin: Sequence[float] = (0.0, 0.0, 0.0),
        spacing: Sequence[float] = (1.0, 1.0, 1.0),
        scaling: float = 1.0,
    ) -> "VoxelGrid":
        """(nx, ny, nz) 배열에서 등간격 격자 생성."""
        values = np.asarray(values, dtype=np.float64)
        if values.ndim != 3:
            raise ValueError(f"3D 배열 필요, 받은 차원: {values.ndim}")
        if any(s <= 0 for s in spacing):
            raise ValueError(f"spacing은 양수여야 합니다: {tuple(spacing)}")
        axes = [origin[d] + np.arange(values.shape[d]) * spacing[d] for d in range(3)]
        return cls(
            *axes,
            data=values.ravel(),
            scaling=scaling,
            spacing=Point3d.from_array(spacing),
            constant_spacing=True,
        )

    @property
    def x_coords(self) -> np.ndarray:
        return self._x

    @property
    def y_coords(self) -> np.ndarray:
        return self._y

    @property
    def z_coords(self) -> np.ndarray:
        return self._z

    @property
    def spacing(self) -> Point3d:
        return self._spacing

    @property
    def scaling(self) -> float:
        return self._scaling

    @scaling.setter
    def scaling(self, value: float):
        self._scaling = float(value)

    @property
    def max_value(self) -> float:
        return self._max_value

    def as_array(self) -> np.ndarray:
        """(nx, ny, nz) 뷰."""
        return self.data.reshape(self.shape)

    def reset_extrema(self):
        self.min_value = float("inf")
        self._max_value = float("-inf")

    def update_extrema(self, values: np.ndarray):
        """최소/최대 추적값 갱신 (리덕션)."""
        values = np.asarray(values)
        if values.size == 0:
            return
        self.min_value = min(self.min_value, float(np.min(values)))
        self._max_value = max(self._max_value, float(np.max(values)))

    def _fractional_indices(self, points: np.ndarray) -> np.ndarray:
        # np.interp는 축 범위 밖을 양 끝 인덱스로 클램프한다
        return np.stack([
            np.interp(points[:, d], axis, np.arange(axis.size, dtype=np.float64))
            for d, axis in enumerate((self._x, self._y, self._z))
        ])

    def interpolate(self, points: np.ndarray) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        if points.shape[0] == 0 or self.data.size == 0:
            return np.zeros(points.shape[0], dtype=np.float64)
        coords = self._fractional_indices(points)
        return ndimage.map_coordinates(self.as_array(), coords, order=1, mode="nearest")

    def index_of(self, x: float, y: float, z: float) -> Tuple[int, int, int]:
        """좌표에 가장 가까운 격자 인덱스."""
        return tuple(
            int(np.argmin(np.abs(axis - value)))
            for axis, value in zip((self._x, self._y, self._z), (x, y, z))
        )

    def flat_index(self, i: int, j: int, k: int) -> int:
        _, ny, nz = self.shape
        return (i * ny + j) * nz + k

    def value_at_index(self, i: int, j: int, k: int) -> float:
        return float(self.data[self.flat_index(i, j, k)])

    def set_value(self, x: float, y: float, z: float, value: float):
        """좌표 위치의 격자값 기록."""
        self.data[self.flat_index(*self.index_of(x, y, z))] = value

    def voxels(self) -> Iterator[Voxel]:
        """모든 격자점 순회."""
        for position, value in zip(self.positions(), self.data):
            yield Voxel(Point3d.from_array(position), float(value))

    def __repr__(self) -> str:
        return (
            f"VoxelGrid(shape={self.shape}, spacing=({self._spacing.x}, "
            f"{self._spacing.y}, {self._spacing.z}), scaling={self._scaling})"
        )
