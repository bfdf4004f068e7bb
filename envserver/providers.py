"""Environmental data providers queried by the request handler.

A provider is a pure function of a coordinate. Every record carries a
``valid`` flag; an invalid record means "no data at this location" and is
answered with sentinel values rather than an error.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from envserver.errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lon: float


@dataclass(frozen=True)
class WindData:
    angle: float = 0.0
    magnitude: float = 0.0
    gust: float = 0.0
    valid: bool = True


@dataclass(frozen=True)
class OceanData:
    current_angle: float = 0.0
    current_magnitude: float = 0.0
    ice_fraction: float = 0.0
    valid: bool = True


@dataclass(frozen=True)
class WaveData:
    height: float = 0.0
    valid: bool = True


NO_WIND = WindData(valid=False)
NO_OCEAN = OceanData(valid=False)
NO_WAVE = WaveData(valid=False)


class EnvironmentProvider(ABC):
    """Interface of the wind, ocean and wave data sources."""

    @abstractmethod
    def get_wind(self, coord: Coordinate) -> WindData:
        ...

    @abstractmethod
    def get_ocean(self, coord: Coordinate) -> OceanData:
        ...

    @abstractmethod
    def get_wave(self, coord: Coordinate) -> WaveData:
        ...


class NoDataProvider(EnvironmentProvider):
    """Reports no valid data anywhere."""

    def get_wind(self, coord: Coordinate) -> WindData:
        return NO_WIND

    def get_ocean(self, coord: Coordinate) -> OceanData:
        return NO_OCEAN

    def get_wave(self, coord: Coordinate) -> WaveData:
        return NO_WAVE


class StaticProvider(EnvironmentProvider):
    """Returns the same values for every coordinate.

    Passing ``None`` for a record makes that query report no data.
    """

    def __init__(
        self,
        wind: WindData | None = None,
        ocean: OceanData | None = None,
        wave: WaveData | None = None,
    ) -> None:
        self._wind = wind or NO_WIND
        self._ocean = ocean or NO_OCEAN
        self._wave = wave or NO_WAVE

    def get_wind(self, coord: Coordinate) -> WindData:
        return self._wind

    def get_ocean(self, coord: Coordinate) -> OceanData:
        return self._ocean

    def get_wave(self, coord: Coordinate) -> WaveData:
        return self._wave


def _section(settings: dict, key: str, fields: tuple[str, ...]) -> dict | None:
    section = settings.get(key)
    if section is None:
        return None
    if not isinstance(section, dict):
        raise ConfigError(f"provider.{key} must be a mapping")
    unknown = set(section) - set(fields)
    if unknown:
        raise ConfigError(f"unknown provider.{key} fields: {', '.join(sorted(unknown))}")
    try:
        return {name: float(value) for name, value in section.items()}
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"provider.{key} values must be numbers: {exc}") from exc


def build_provider(settings: dict | None) -> EnvironmentProvider:
    """Build a provider from the ``provider:`` section of the YAML config.

    Example::

        provider:
          type: static
          wind: {angle: 180.0, magnitude: 12.5, gust: 18.0}
          ocean: {current_angle: 90.0, current_magnitude: 0.4, ice_fraction: 0.0}
          wave: {height: 1.5}
    """
    settings = settings or {}
    kind = str(settings.get("type", "none")).lower()

    if kind == "none":
        logger.info("Using no-data provider")
        return NoDataProvider()

    if kind == "static":
        wind = _section(settings, "wind", ("angle", "magnitude", "gust"))
        ocean = _section(settings, "ocean", ("current_angle", "current_magnitude", "ice_fraction"))
        wave = _section(settings, "wave", ("height",))
        logger.info(
            "Using static provider (wind=%s, ocean=%s, wave=%s)",
            wind is not None, ocean is not None, wave is not None,
        )
        return StaticProvider(
            wind=WindData(**wind) if wind is not None else None,
            ocean=OceanData(**ocean) if ocean is not None else None,
            wave=WaveData(**wave) if wave is not None else None,
        )

    raise ConfigError(f"unknown provider type {kind!r}")
