"""Tests for scalar and string dataref elements."""

import math

import pytest

from xpconnector import DataRefElement, StringDataRefElement
from xpconnector.errors import InvalidArgument

from conftest import FakeClock


class TestDataRefElement:
    def test_array_path_is_split(self) -> None:
        element = DataRefElement("sim/flightmodel/engine/ENGN_N1_[2]")

        assert element.dataref == "sim/flightmodel/engine/ENGN_N1_"
        assert element.index == 2

    def test_scalar_path_has_no_index(self) -> None:
        element = DataRefElement("sim/flightmodel/position/elevation", frequency=5)

        assert element.dataref == element.path
        assert element.index is None
        assert element.frequency == 5
        assert element.id is None

    def test_missing_path_is_rejected(self) -> None:
        with pytest.raises(InvalidArgument):
            DataRefElement("")
        with pytest.raises(InvalidArgument):
            DataRefElement("sim/values[x]")

    def test_never_updated_element_is_infinitely_old(self) -> None:
        element = DataRefElement("sim/a", clock=FakeClock())

        assert element.value is None
        assert math.isinf(element.age)

    def test_update_records_value_and_time(self) -> None:
        clock = FakeClock(50.0)
        element = DataRefElement("sim/a", clock=clock)

        element.update(3.5)
        clock.advance(2.0)

        assert element.value == 3.5
        assert element.last_update == 50.0
        assert element.age == 2.0

    def test_listeners_called_in_registration_order(self) -> None:
        calls = []
        element = DataRefElement("sim/a")
        element.add_listener(lambda e, v: calls.append(("first", e, v)))
        element.add_listener(lambda e, v: calls.append(("second", e, v)))

        element.update(1.0)

        assert calls == [("first", element, 1.0), ("second", element, 1.0)]

    def test_removed_listener_is_not_called(self) -> None:
        calls = []

        def listener(e, v):
            calls.append(v)

        element = DataRefElement("sim/a")
        element.add_listener(listener)

        assert element.remove_listener(listener)
        assert not element.remove_listener(listener)
        element.update(1.0)
        assert calls == []

    def test_frequency_must_be_positive(self) -> None:
        with pytest.raises(InvalidArgument):
            DataRefElement("sim/a", frequency=0)
        with pytest.raises(InvalidArgument):
            DataRefElement("sim/a", frequency=-1)
        with pytest.raises(InvalidArgument):
            StringDataRefElement("sim/aircraft/view/acf_ICAO", length=4, frequency=0)

    def test_listener_must_be_callable(self) -> None:
        with pytest.raises(InvalidArgument):
            DataRefElement("sim/a").add_listener("not callable")


class TestStringDataRefElement:
    def test_buffer_has_declared_length(self) -> None:
        element = StringDataRefElement("sim/aircraft/view/acf_tailnum", length=5)

        assert len(element.buffer) == 5
        assert element.value == "\x00" * 5
        assert element.text == ""
        assert not element.complete

    def test_invalid_length_is_rejected(self) -> None:
        with pytest.raises(InvalidArgument):
            StringDataRefElement("sim/aircraft/view/acf_tailnum", length=0)

    def test_characters_in_any_order_fire_on_every_update(self) -> None:
        received = []
        element = StringDataRefElement("sim/aircraft/view/acf_tailnum", length=5)
        element.add_listener(lambda e, v: received.append(v))

        for offset in [3, 0, 4, 1, 2]:
            element.update(offset, float(ord("HELLO"[offset])))

        assert element.value == "HELLO"
        assert element.complete
        assert len(received) == 5
        assert received[0] == "\x00\x00\x00L\x00"
        assert received[-1] == "HELLO"

    def test_text_stops_at_first_nul(self) -> None:
        element = StringDataRefElement("sim/aircraft/view/acf_tailnum", length=6)
        for offset, character in enumerate("N123"):
            element.update(offset, float(ord(character)))

        assert element.text == "N123"
        assert len(element.value) == 6

    def test_out_of_range_offset_is_rejected(self) -> None:
        element = StringDataRefElement("sim/aircraft/view/acf_tailnum", length=2)

        with pytest.raises(InvalidArgument):
            element.update(2, 65.0)
        with pytest.raises(InvalidArgument):
            element.update(0, -1.0)

    def test_character_paths(self) -> None:
        element = StringDataRefElement("sim/aircraft/view/acf_ICAO", length=4)

        assert element.character_path(3) == "sim/aircraft/view/acf_ICAO[3]"
