"""Tests for request dispatch and the per-connection session engine."""

import socket
import threading
import time

import pytest

from envserver import stats as counters
from envserver.errors import ProtocolError, ProviderError
from envserver.handler import ConnectionSession, RequestHandler, SessionOutcome
from envserver.providers import NoDataProvider, StaticProvider, WindData
from envserver.stats import ServerStats


class FailingProvider(NoDataProvider):
    def get_wave(self, coord):
        raise ProviderError("wave model unavailable")


class BrokenProvider(NoDataProvider):
    def get_wave(self, coord):
        raise ValueError("bad grid index")


@pytest.fixture
def handler(provider):
    return RequestHandler(provider)


@pytest.fixture
def stats():
    return ServerStats()


@pytest.fixture
def pair():
    client, server = socket.socketpair()
    client.settimeout(5.0)
    server.settimeout(5.0)
    yield client, server
    client.close()
    server.close()


def run_session(pair, handler, stats, payload: bytes, buffer_size=1024, close=True):
    """Feed *payload*, optionally half-close, run the session, return (outcome, output)."""
    client, server = pair
    client.sendall(payload)
    if close:
        client.shutdown(socket.SHUT_WR)
    outcome = ConnectionSession(server, "test-peer", handler, stats, buffer_size).run()
    server.shutdown(socket.SHUT_WR)
    output = b""
    while True:
        chunk = client.recv(4096)
        if not chunk:
            break
        output += chunk
    return outcome, output


# ── RequestHandler ────────────────────────────────────────────────


class TestRequestHandler:
    def test_wind(self, handler):
        assert handler.respond(b"wind,45.0,-63.0") == \
            b"wind,45.000000,-63.000000,180.000000,12.500000\n"

    def test_wind_gust(self, handler):
        assert handler.respond(b"wind_gust,45.0,-63.0") == \
            b"wind_gust,45.000000,-63.000000,180.000000,20.250000\n"

    def test_ocean_current(self, handler):
        assert handler.respond(b"ocean_current,0,0") == \
            b"ocean_current,0.000000,0.000000,90.000000,0.500000\n"

    def test_sea_ice(self, handler):
        assert handler.respond(b"sea_ice,70,10") == \
            b"sea_ice,70.000000,10.000000,0.750000\n"

    def test_wave_height(self, handler):
        assert handler.respond(b"wave_height,-10,100") == \
            b"wave_height,-10.000000,100.000000,2.250000\n"

    def test_abbreviated_command_echoes_full_name(self, handler):
        assert handler.respond(b"wa,1,2").startswith(b"wave_height,")

    def test_no_data_provider_gives_sentinels(self):
        handler = RequestHandler(NoDataProvider())
        assert handler.respond(b"sea_ice,45.0,-63.0") == \
            b"sea_ice,45.000000,-63.000000,-999.000000\n"
        assert handler.respond(b"wind,45.0,-63.0") == \
            b"wind,45.000000,-63.000000,-999.000000,-999.000000\n"

    def test_partial_provider(self):
        handler = RequestHandler(StaticProvider(wind=WindData(angle=1.0, magnitude=2.0, gust=3.0)))
        assert handler.respond(b"wave_height,0,0") == \
            b"wave_height,0.000000,0.000000,-999.000000\n"

    def test_parse_failure_raises(self, handler):
        with pytest.raises(ProtocolError):
            handler.respond(b"bogus")

    def test_provider_failure_becomes_protocol_error(self):
        handler = RequestHandler(FailingProvider())
        with pytest.raises(ProtocolError, match="provider failed"):
            handler.respond(b"wave_height,0,0")

    def test_strict_numbers(self, provider):
        handler = RequestHandler(provider, strict_numbers=True)
        with pytest.raises(ProtocolError):
            handler.respond(b"wind,4x,1")


# ── ConnectionSession ─────────────────────────────────────────────


class TestSessionExchange:
    def test_single_request(self, pair, handler, stats):
        outcome, output = run_session(pair, handler, stats, b"wind,45.0,-63.0\n")
        assert outcome is SessionOutcome.PEER_CLOSED
        assert output == b"wind,45.000000,-63.000000,180.000000,12.500000\n"
        assert stats.get(counters.MESSAGE) == 1
        assert stats.get(counters.MESSAGE_FAIL) == 0

    def test_two_requests_in_one_read(self, pair, handler, stats):
        outcome, output = run_session(pair, handler, stats, b"sea_ice,1,2\nwave_height,3,4\n")
        assert outcome is SessionOutcome.PEER_CLOSED
        assert output == (
            b"sea_ice,1.000000,2.000000,0.750000\n"
            b"wave_height,3.000000,4.000000,2.250000\n"
        )
        assert stats.get(counters.MESSAGE) == 2

    def test_trailing_unterminated_bytes_discarded(self, pair, handler, stats):
        outcome, output = run_session(pair, handler, stats, b"wind,1,2\nwind,3,4")
        assert outcome is SessionOutcome.PEER_CLOSED
        assert output == b"wind,1.000000,2.000000,180.000000,12.500000\n"
        assert stats.get(counters.MESSAGE) == 1

    def test_empty_stream(self, pair, handler, stats):
        outcome, output = run_session(pair, handler, stats, b"")
        assert outcome is SessionOutcome.PEER_CLOSED
        assert output == b""
        assert stats.get(counters.READ) == 1

    def test_nul_byte_hides_terminator(self, pair, handler, stats):
        outcome, output = run_session(pair, handler, stats, b"wi\x00nd,1,2\nwind,1,2\n")
        assert outcome is SessionOutcome.PEER_CLOSED
        assert output == b""
        assert stats.get(counters.MESSAGE) == 0


class TestSessionFailures:
    def test_unknown_command_sends_error_and_ends(self, pair, handler, stats):
        outcome, output = run_session(pair, handler, stats, b"bogus\nwind,1,2\n")
        assert outcome is SessionOutcome.MESSAGE_FAILED
        assert output == b"error\n"
        assert stats.get(counters.MESSAGE) == 1
        assert stats.get(counters.MESSAGE_FAIL) == 1

    def test_error_after_successful_request(self, pair, handler, stats):
        outcome, output = run_session(pair, handler, stats, b"wind,1,2\nwind,95,0\nwind,1,2\n")
        assert outcome is SessionOutcome.MESSAGE_FAILED
        assert output == b"wind,1.000000,2.000000,180.000000,12.500000\nerror\n"

    def test_unexpected_provider_exception_sends_error(self, pair, stats):
        handler = RequestHandler(BrokenProvider())
        outcome, output = run_session(pair, handler, stats, b"wave_height,1,2\nwind,1,2\n")
        assert outcome is SessionOutcome.MESSAGE_FAILED
        assert output == b"error\n"
        assert stats.get(counters.MESSAGE_FAIL) == 1

    def test_empty_line_is_an_error(self, pair, handler, stats):
        outcome, output = run_session(pair, handler, stats, b"\n")
        assert outcome is SessionOutcome.MESSAGE_FAILED
        assert output == b"error\n"

    def test_oversized_message(self, pair, handler, stats):
        outcome, output = run_session(pair, handler, stats, b"x" * 16, buffer_size=16, close=False)
        assert outcome is SessionOutcome.OVERSIZED
        assert output == b""
        assert stats.get(counters.DATA_TOO_LONG) == 1
        assert stats.get(counters.MESSAGE) == 0

    def test_terminated_message_filling_buffer_fits(self, pair, handler, stats):
        payload = b"wind,1,2" + b"," * 7 + b"\n"
        assert len(payload) == 16
        outcome, output = run_session(pair, handler, stats, payload, buffer_size=16)
        assert outcome is SessionOutcome.PEER_CLOSED
        assert output.startswith(b"wind,1.000000,2.000000")
        assert stats.get(counters.DATA_TOO_LONG) == 0

    def test_many_messages_through_small_buffer(self, pair, handler, stats):
        payload = b"wind,1,2\n" * 20
        outcome, output = run_session(pair, handler, stats, payload, buffer_size=16)
        assert outcome is SessionOutcome.PEER_CLOSED
        assert output.count(b"\n") == 20
        assert stats.get(counters.MESSAGE) == 20

    def test_shutdown_event_ends_session(self, pair, handler, stats):
        client, server = pair
        event = threading.Event()
        event.set()
        session = ConnectionSession(server, "test-peer", handler, stats, 64, event)
        assert session.run() is SessionOutcome.SHUTDOWN


class TestSessionPartialReads:
    def test_request_split_across_deliveries(self, pair, handler, stats):
        client, server = pair
        result = {}

        def serve():
            session = ConnectionSession(server, "test-peer", handler, stats, 1024)
            result["outcome"] = session.run()

        t = threading.Thread(target=serve)
        t.start()
        client.sendall(b"wind,45.")
        time.sleep(0.1)
        client.sendall(b"0,-63.0\n")
        response = b""
        while b"\n" not in response:
            response += client.recv(4096)
        client.shutdown(socket.SHUT_WR)
        t.join(timeout=5)

        assert response == b"wind,45.000000,-63.000000,180.000000,12.500000\n"
        assert result["outcome"] is SessionOutcome.PEER_CLOSED
        assert stats.get(counters.READ) >= 2
