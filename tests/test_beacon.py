"""Tests for census.beacon — eth2 ENR entry decoding."""

import pytest

from census.beacon import ENRForkID, Eth2DecodeError, decode_enr_fork_id


def _encode(digest: bytes, version: bytes, epoch: int) -> bytes:
    return digest + version + epoch.to_bytes(8, "little")


class TestDecodeENRForkID:
    """SSZ ENRForkID decoding."""

    def test_decodes_fields(self) -> None:
        data = _encode(bytes.fromhex("6a95a1a9"), bytes.fromhex("05000000"), 364032)
        fork = decode_enr_fork_id(data)
        assert fork == ENRForkID(
            fork_digest=bytes.fromhex("6a95a1a9"),
            next_fork_version=bytes.fromhex("05000000"),
            next_fork_epoch=364032,
        )

    def test_far_future_epoch(self) -> None:
        data = _encode(b"\x01\x02\x03\x04", b"\x00" * 4, 2**64 - 1)
        assert decode_enr_fork_id(data).next_fork_epoch == 2**64 - 1

    def test_display(self) -> None:
        fork = decode_enr_fork_id(_encode(bytes.fromhex("b5303f2a"), b"\x00" * 4, 7))
        assert str(fork) == "Hash: 0xb5303f2a, Next 7"

    @pytest.mark.parametrize("size", [0, 8, 15, 17, 32])
    def test_wrong_size_rejected(self, size: int) -> None:
        with pytest.raises(Eth2DecodeError):
            decode_enr_fork_id(b"\x00" * size)

    def test_error_is_a_value_error(self) -> None:
        with pytest.raises(ValueError):
            decode_enr_fork_id(b"bad")
