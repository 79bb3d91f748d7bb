"""Tests for outbound datagram encoding and RREF decoding."""

import logging
import struct

import pytest

from xpconnector.datagram import XPDatagram, rref_request, dref_request, cmnd_request, quit_request, fail_request, reco_request
from xpconnector.datagram import is_rref, decode_rref, header
from xpconnector.errors import InvalidArgument

from conftest import rref_values


class TestXPDatagram:
    def test_fields_are_little_endian(self) -> None:
        dg = XPDatagram().add_string("TEST").add_int(1).add_float(2.5)

        assert dg.get() == b"TEST\x00" + b"\x01\x00\x00\x00" + struct.pack("<f", 2.5)
        assert len(dg) == 13

    def test_add_dispatches_on_type(self) -> None:
        dg = XPDatagram().add("A").add(3).add(1.0)

        assert dg.get() == b"A\x00" + struct.pack("<i", 3) + struct.pack("<f", 1.0)

    def test_add_rejects_bool_and_unknown_types(self) -> None:
        with pytest.raises(InvalidArgument):
            XPDatagram().add(True)
        with pytest.raises(InvalidArgument):
            XPDatagram().add(b"raw")

    def test_fill_to_pads_with_zeroes(self) -> None:
        data = XPDatagram().add_string("AB").fill_to(10).get()

        assert data == b"AB\x00" + bytes(7)

    def test_fill_to_rejects_overflow(self) -> None:
        with pytest.raises(InvalidArgument):
            XPDatagram().add_string("ABCDEF").fill_to(4)


class TestRequests:
    def test_rref_request_layout(self) -> None:
        data = rref_request(5, 3, "sim/foo")

        assert len(data) == 413
        assert data[:5] == b"RREF\x00"
        assert struct.unpack_from("<ii", data, 5) == (5, 3)
        assert data[13:21] == b"sim/foo\x00"
        assert data[21:] == bytes(413 - 21)

    def test_rref_request_stop_has_zero_frequency(self) -> None:
        data = rref_request(0, 12, "sim/cockpit/radios/nav1_obs_degm")

        assert struct.unpack_from("<ii", data, 5) == (0, 12)

    def test_rref_request_rejects_missing_or_oversized_path(self) -> None:
        with pytest.raises(InvalidArgument):
            rref_request(1, 0, "")
        with pytest.raises(InvalidArgument):
            rref_request(1, 0, "x" * 400)

    def test_dref_request_float(self) -> None:
        data = dref_request("sim/cockpit/radios/nav1_obs_degm", 150.0)

        assert len(data) == 509
        assert data[:5] == b"DREF\x00"
        assert struct.unpack_from("<f", data, 5) == (150.0,)
        assert data[9:42] == b"sim/cockpit/radios/nav1_obs_degm\x00"
        assert data[42:] == bytes(509 - 42)

    def test_dref_request_int_is_sent_as_float(self) -> None:
        data = dref_request("sim/some/switch", 1)

        assert struct.unpack_from("<f", data, 5) == (1.0,)

    def test_dref_request_string(self) -> None:
        data = dref_request("sim/aircraft/view/acf_tailnum", "N12345")

        assert len(data) == 509
        assert data[:5] == b"DREF\x00"
        assert data[5:12] == b"N12345\x00"
        assert data[12:42] == b"sim/aircraft/view/acf_tailnum\x00"

    def test_dref_request_rejects_invalid_value(self) -> None:
        with pytest.raises(InvalidArgument):
            dref_request("sim/some/switch", None)
        with pytest.raises(InvalidArgument):
            dref_request("", 1.0)

    def test_unpadded_requests(self) -> None:
        assert cmnd_request("sim/autopilot/heading_up") == b"CMND\x00sim/autopilot/heading_up\x00"
        assert quit_request() == b"QUIT\x00"
        assert fail_request(42) == b"FAIL\x0042\x00"
        assert reco_request(42) == b"RECO\x0042\x00"

    def test_cmnd_request_rejects_empty_command(self) -> None:
        with pytest.raises(InvalidArgument):
            cmnd_request("")


class TestDecoding:
    def test_is_rref_checks_first_four_bytes(self) -> None:
        assert is_rref(b"RREF,")
        assert is_rref(b"RREFO")
        assert not is_rref(b"DATA*")
        assert not is_rref(b"RR")

    def test_header(self) -> None:
        assert header(b"BECN\x00\x01") == "BECN"

    def test_decode_rref_pairs(self) -> None:
        pairs = list(decode_rref(rref_values((7, 42.5), (0, -1.0))))

        assert pairs == [(7, 42.5), (0, -1.0)]

    def test_decode_rref_reports_incomplete_pair(self, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="xpconnector.datagram"):
            pairs = list(decode_rref(rref_values((1, 2.0)) + b"\x01\x02\x03"))

        assert pairs == [(1, 2.0)]
        assert "3 trailing bytes" in caplog.text

    def test_decode_rref_complete_pairs_are_not_reported(self, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="xpconnector.datagram"):
            list(decode_rref(rref_values((1, 2.0), (2, 3.0))))

        assert caplog.text == ""

    def test_decode_rref_without_values(self) -> None:
        assert list(decode_rref(b"RREF,")) == []

    def test_request_round_trip_header_and_id(self) -> None:
        data = rref_request(5, 3, "sim/foo")

        assert is_rref(data)
        frequency, dataref_id = struct.unpack_from("<ii", data, 5)
        assert dataref_id == 3
        assert b"sim/foo" in data
