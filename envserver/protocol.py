"""Text request protocol: one comma-separated request per line, one response per line.

Request:   <command>[,<arg>...]\\n
Response:  <command>,<lat>,<lon>,<value>[,<value>]\\n   or   error\\n

Commands:
  wind           lat,lon -> angle, magnitude
  wind_gust      lat,lon -> angle, gust
  ocean_current  lat,lon -> angle, magnitude
  sea_ice        lat,lon -> ice fraction
  wave_height    lat,lon -> height

Values are printed in fixed-point notation with six decimals. A provider
reporting no data is answered with the sentinel -999.0 in place of each value.
"""

import re
from dataclasses import dataclass
from enum import Enum, IntEnum

from envserver.errors import ProtocolError
from envserver.providers import Coordinate, OceanData, WaveData, WindData

DELIMITER = ","
ERROR_RESPONSE = b"error\n"

# Sentinel for ArgType.INT fields; every current response field is a double.
INVALID_INTEGER_VALUE = -999
INVALID_DOUBLE_VALUE = -999.0

LAT_RANGE = (-90.0, 90.0)
LON_RANGE = (-180.0, 180.0)


class RequestKind(Enum):
    INVALID = ""
    WIND = "wind"
    WIND_GUST = "wind_gust"
    OCEAN_CURRENT = "ocean_current"
    SEA_ICE = "sea_ice"
    WAVE_HEIGHT = "wave_height"


# Matching order for command tokens; the first name the token is a prefix of wins.
COMMANDS = (
    RequestKind.WIND,
    RequestKind.WIND_GUST,
    RequestKind.OCEAN_CURRENT,
    RequestKind.SEA_ICE,
    RequestKind.WAVE_HEIGHT,
)


class ArgType(IntEnum):
    INT = 1
    DOUBLE = 2


ARGS_NONE: tuple[ArgType, ...] = ()
ARGS_LAT_LON: tuple[ArgType, ...] = (ArgType.DOUBLE, ArgType.DOUBLE)

_SCHEMAS = {
    RequestKind.WIND: ARGS_LAT_LON,
    RequestKind.WIND_GUST: ARGS_LAT_LON,
    RequestKind.OCEAN_CURRENT: ARGS_LAT_LON,
    RequestKind.SEA_ICE: ARGS_LAT_LON,
    RequestKind.WAVE_HEIGHT: ARGS_LAT_LON,
}

_COORDINATE_KINDS = frozenset(kind for kind, schema in _SCHEMAS.items() if schema == ARGS_LAT_LON)

# ASCII only: Unicode digits and spaces are not numeric input on the wire.
_INT_PATTERN = r"\s*[+-]?\d+"
_DOUBLE_PATTERN = (
    r"\s*[+-]?(?:"
    r"0x(?:[0-9a-f]+\.?[0-9a-f]*|\.[0-9a-f]+)(?:p[+-]?\d+)?"
    r"|(?:\d+\.?\d*|\.\d+)(?:e[+-]?\d+)?"
    r"|inf(?:inity)?|nan)"
)

_INT_PREFIX = re.compile(_INT_PATTERN, re.ASCII)
_INT_TOKEN = re.compile(_INT_PATTERN + r"\s*", re.ASCII)
_DOUBLE_PREFIX = re.compile(_DOUBLE_PATTERN, re.IGNORECASE | re.ASCII)
_DOUBLE_TOKEN = re.compile(_DOUBLE_PATTERN + r"\s*", re.IGNORECASE | re.ASCII)


@dataclass(frozen=True)
class Request:
    kind: RequestKind
    args: tuple = ()

    @property
    def coordinate(self) -> Coordinate:
        if self.kind not in _COORDINATE_KINDS:
            raise ProtocolError(f"{self.kind.value or 'invalid'} request has no coordinate")
        return Coordinate(lat=self.args[0], lon=self.args[1])


def get_request_kind(token: str) -> RequestKind:
    """Map a command token to its request kind by prefix match, INVALID if none."""
    if not token:
        return RequestKind.INVALID
    for kind in COMMANDS:
        if kind.value.startswith(token):
            return kind
    return RequestKind.INVALID


def get_expected_args(kind: RequestKind) -> tuple[ArgType, ...]:
    return _SCHEMAS.get(kind, ARGS_NONE)


def parse_int(token: str, strict: bool = False) -> int:
    """Parse a base-10 integer. Permissive mode uses the longest valid prefix, else 0."""
    if strict:
        if not _INT_TOKEN.fullmatch(token):
            raise ProtocolError(f"malformed integer {token!r}")
        return int(token)
    match = _INT_PREFIX.match(token)
    return int(match.group()) if match else 0


def _to_float(text: str) -> float:
    if "x" in text.lower():
        try:
            return float.fromhex(text)
        except OverflowError:
            return float("-inf") if text.strip().startswith("-") else float("inf")
    return float(text)


def parse_double(token: str, strict: bool = False) -> float:
    """Parse a decimal or hexadecimal number.

    Permissive mode uses the longest valid prefix, else 0.0.
    """
    if strict:
        if not _DOUBLE_TOKEN.fullmatch(token):
            raise ProtocolError(f"malformed number {token!r}")
        return _to_float(token)
    match = _DOUBLE_PREFIX.match(token)
    return _to_float(match.group()) if match else 0.0


def is_valid_for_kind(kind: RequestKind, args: tuple) -> bool:
    """Semantic validation of parsed arguments."""
    if kind in _COORDINATE_KINDS:
        lat, lon = args
        return (LAT_RANGE[0] <= lat <= LAT_RANGE[1]
                and LON_RANGE[0] <= lon <= LON_RANGE[1])
    # Kinds without arguments have no restrictions.
    return True


def parse_request(message: bytes | str, strict_numbers: bool = False) -> Request:
    """Parse and validate one message (without its newline).

    Raises ProtocolError for an unknown command, a missing argument, a
    malformed number in strict mode, or an out-of-range coordinate.
    """
    if isinstance(message, bytes):
        message = message.decode("utf-8", errors="replace")

    # Consecutive delimiters collapse, as with strtok.
    tokens = iter([t for t in message.split(DELIMITER) if t])

    command = next(tokens, None)
    if command is None:
        raise ProtocolError("empty request")

    kind = get_request_kind(command)
    if kind is RequestKind.INVALID:
        raise ProtocolError(f"unknown command {command!r}")

    args = []
    for arg_type in get_expected_args(kind):
        token = next(tokens, None)
        if token is None:
            raise ProtocolError(f"{kind.value}: missing argument {len(args) + 1}")
        if arg_type is ArgType.INT:
            args.append(parse_int(token, strict_numbers))
        else:
            args.append(parse_double(token, strict_numbers))

    args = tuple(args)
    if not is_valid_for_kind(kind, args):
        raise ProtocolError(f"{kind.value}: arguments out of range {args}")

    return Request(kind=kind, args=args)


def _fmt(value: float) -> str:
    return "%f" % value


def _line(kind: RequestKind, coord: Coordinate, *values: float) -> bytes:
    fields = [kind.value, _fmt(coord.lat), _fmt(coord.lon)]
    fields.extend(_fmt(v) for v in values)
    return (DELIMITER.join(fields) + "\n").encode("ascii")


def _or_invalid(valid: bool, value: float) -> float:
    return value if valid else INVALID_DOUBLE_VALUE


def format_wind_response(coord: Coordinate, wind: WindData, gust: bool = False) -> bytes:
    kind = RequestKind.WIND_GUST if gust else RequestKind.WIND
    return _line(
        kind, coord,
        _or_invalid(wind.valid, wind.angle),
        _or_invalid(wind.valid, wind.gust if gust else wind.magnitude),
    )


def format_ocean_response(coord: Coordinate, ocean: OceanData, sea_ice: bool = False) -> bytes:
    if sea_ice:
        return _line(RequestKind.SEA_ICE, coord, _or_invalid(ocean.valid, ocean.ice_fraction))
    return _line(
        RequestKind.OCEAN_CURRENT, coord,
        _or_invalid(ocean.valid, ocean.current_angle),
        _or_invalid(ocean.valid, ocean.current_magnitude),
    )


def format_wave_response(coord: Coordinate, wave: WaveData) -> bytes:
    return _line(RequestKind.WAVE_HEIGHT, coord, _or_invalid(wave.valid, wave.height))
