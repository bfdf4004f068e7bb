"""Tests for the provider records and the provider factory."""

import pytest

from envserver.errors import ConfigError
from envserver.providers import (
    Coordinate,
    EnvironmentProvider,
    NoDataProvider,
    OceanData,
    StaticProvider,
    WaveData,
    WindData,
    build_provider,
)

HERE = Coordinate(lat=45.0, lon=-63.0)


class TestNoDataProvider:
    def test_everything_invalid(self):
        p = NoDataProvider()
        assert p.get_wind(HERE).valid is False
        assert p.get_ocean(HERE).valid is False
        assert p.get_wave(HERE).valid is False


class TestStaticProvider:
    def test_returns_configured_values(self):
        p = StaticProvider(wind=WindData(angle=10.0, magnitude=5.0, gust=7.0))
        assert p.get_wind(HERE) == WindData(angle=10.0, magnitude=5.0, gust=7.0, valid=True)

    def test_omitted_records_are_invalid(self):
        p = StaticProvider(wave=WaveData(height=1.0))
        assert p.get_wave(HERE).height == 1.0
        assert p.get_ocean(HERE).valid is False
        assert p.get_wind(HERE).valid is False

    def test_abstract_base(self):
        with pytest.raises(TypeError):
            EnvironmentProvider()


class TestBuildProvider:
    def test_default_is_no_data(self):
        assert isinstance(build_provider(None), NoDataProvider)
        assert isinstance(build_provider({}), NoDataProvider)

    def test_static(self):
        p = build_provider({
            "type": "static",
            "wind": {"angle": 180, "magnitude": 12.5, "gust": 18},
            "ocean": {"current_angle": 90, "current_magnitude": 0.4, "ice_fraction": 0.0},
        })
        assert isinstance(p, StaticProvider)
        assert p.get_wind(HERE) == WindData(angle=180.0, magnitude=12.5, gust=18.0)
        assert p.get_ocean(HERE) == OceanData(current_angle=90.0, current_magnitude=0.4)
        assert p.get_wave(HERE).valid is False

    def test_type_is_case_insensitive(self):
        assert isinstance(build_provider({"type": "STATIC"}), StaticProvider)

    def test_unknown_type(self):
        with pytest.raises(ConfigError, match="unknown provider type"):
            build_provider({"type": "netcdf"})

    def test_unknown_field(self):
        with pytest.raises(ConfigError, match="unknown provider.wave fields"):
            build_provider({"type": "static", "wave": {"period": 8}})

    def test_non_numeric_value(self):
        with pytest.raises(ConfigError):
            build_provider({"type": "static", "wave": {"height": "tall"}})

    def test_section_must_be_mapping(self):
        with pytest.raises(ConfigError):
            build_provider({"type": "static", "wind": [1, 2]})
