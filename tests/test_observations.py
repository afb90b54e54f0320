"""Tests for census.observations — loading crawler dumps."""

import json
from datetime import UTC, datetime

import pytest

from census.models import Capability, ForkID
from census.observations import (
    ObservationFormatError,
    load_observations,
    parse_observations,
)

PUBKEY_HEX = "01" * 64


def _entry(**overrides: object) -> dict:
    entry: dict = {
        "peer": {
            "id": "ab12",
            "ip": "1.2.3.4",
            "udp": 30303,
            "tcp": 30303,
            "pubkey": PUBKEY_HEX,
        },
        "info": {
            "client_type": "Geth/v1.10.3-stable/linux-amd64/go1.16.3",
            "software_version": 5,
            "capabilities": ["eth/66", "snap/1"],
            "network_id": 1,
            "fork_id": {"hash": "0xfc64ec04", "next": 1150000},
            "block_height": "0x12d687",
            "total_difficulty": "58750003716598352816469",
            "head_hash": "0xabc",
        },
        "too_many_peers": False,
        "first_response": "2024-01-01T00:00:00+00:00",
        "last_response": "2024-01-01T01:00:00+00:00",
        "seq": 3,
        "score": 10,
    }
    entry.update(overrides)
    return entry


class TestParseObservations:
    """Decoding well-formed and malformed entries."""

    def test_full_entry(self) -> None:
        [obs] = parse_observations([_entry()])

        assert obs.peer.node_id == "ab12"
        assert obs.peer.ip == "1.2.3.4"
        assert obs.peer.tcp == 30303
        assert obs.peer.pubkey == bytes.fromhex(PUBKEY_HEX)
        assert obs.peer.eth2 is None
        assert obs.info is not None
        assert obs.info.capabilities == [Capability("eth", 66), Capability("snap", 1)]
        assert obs.info.fork_id == ForkID.from_hex("fc64ec04", 1150000)
        assert obs.info.total_difficulty == 58750003716598352816469
        assert obs.first_response == datetime(2024, 1, 1, tzinfo=UTC)
        assert obs.seq == 3
        assert obs.score == 10

    def test_minimal_entry(self) -> None:
        [obs] = parse_observations([{"peer": {"id": "ab", "ip": "::1"}}])

        assert obs.info is None
        assert obs.peer.udp is None
        assert obs.peer.pubkey is None
        assert obs.too_many_peers is False
        assert obs.first_response is None

    def test_eth2_entry_decoded_from_hex(self) -> None:
        entry = _entry()
        entry["peer"]["eth2"] = "0x" + "00" * 16
        [obs] = parse_observations([entry])
        assert obs.peer.eth2 == b"\x00" * 16

    def test_empty_list(self) -> None:
        assert parse_observations([]) == []

    def test_top_level_must_be_list(self) -> None:
        with pytest.raises(ObservationFormatError, match="Expected a list"):
            parse_observations({"peer": {}})

    def test_missing_peer_id(self) -> None:
        with pytest.raises(ObservationFormatError, match="Observation #1"):
            parse_observations([_entry(), {"peer": {"ip": "1.2.3.4"}}])

    def test_entry_not_an_object(self) -> None:
        with pytest.raises(ObservationFormatError, match="Observation #0"):
            parse_observations(["not an object"])

    def test_short_pubkey(self) -> None:
        entry = _entry()
        entry["peer"]["pubkey"] = "01" * 10
        with pytest.raises(ObservationFormatError, match="pubkey"):
            parse_observations([entry])

    def test_bad_capability(self) -> None:
        entry = _entry()
        entry["info"]["capabilities"] = ["eth"]
        with pytest.raises(ObservationFormatError, match="capability"):
            parse_observations([entry])

    def test_too_many_peers_flag(self) -> None:
        [obs] = parse_observations([_entry(too_many_peers=True)])
        assert obs.too_many_peers is True

    @pytest.mark.parametrize("value", ["false", "true", 0, 1, None])
    def test_too_many_peers_must_be_boolean(self, value: object) -> None:
        with pytest.raises(ObservationFormatError, match="too_many_peers"):
            parse_observations([_entry(too_many_peers=value)])

    def test_bad_fork_hash(self) -> None:
        entry = _entry()
        entry["info"]["fork_id"] = {"hash": "0x12", "next": 0}
        with pytest.raises(ObservationFormatError):
            parse_observations([entry])


class TestLoadObservations:
    """Reading dumps from disk."""

    def test_loads_file(self, tmp_path) -> None:
        path = tmp_path / "crawl.json"
        path.write_text(json.dumps([_entry(), _entry(peer={"id": "cd", "ip": "5.6.7.8"})]))

        observations = load_observations(path)

        assert [o.peer.node_id for o in observations] == ["ab12", "cd"]

    def test_invalid_json(self, tmp_path) -> None:
        path = tmp_path / "crawl.json"
        path.write_text("[{")
        with pytest.raises(ObservationFormatError, match="Invalid JSON"):
            load_observations(path)

    def test_not_utf8(self, tmp_path) -> None:
        path = tmp_path / "crawl.json"
        path.write_bytes(b"[\xff\xfe]")
        with pytest.raises(ObservationFormatError, match="Invalid JSON"):
            load_observations(path)

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_observations(tmp_path / "missing.json")
