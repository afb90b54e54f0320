"""Decoding of the ``eth2`` ENR entry carried by beacon-chain nodes."""

import struct
from dataclasses import dataclass

# SSZ container ENRForkID: fork_digest (Bytes4), next_fork_version (Bytes4),
# next_fork_epoch (uint64, little endian).
_ENR_FORK_ID = struct.Struct("<4s4sQ")


class Eth2DecodeError(ValueError):
    """Raised when an ``eth2`` ENR entry is not a valid ``ENRForkID``."""


@dataclass(frozen=True)
class ENRForkID:
    """Fork information a beacon node advertises in its ENR."""

    fork_digest: bytes
    next_fork_version: bytes
    next_fork_epoch: int

    def __str__(self) -> str:
        return f"Hash: 0x{self.fork_digest.hex()}, Next {self.next_fork_epoch}"


def decode_enr_fork_id(data: bytes) -> ENRForkID:
    """Decode an SSZ-serialized ``ENRForkID``.

    Raises:
        Eth2DecodeError: If *data* is not exactly one fixed-size container.
    """
    if len(data) != _ENR_FORK_ID.size:
        raise Eth2DecodeError(
            f"ENRForkID must be {_ENR_FORK_ID.size} bytes, got {len(data)}"
        )
    digest, version, epoch = _ENR_FORK_ID.unpack(data)
    return ENRForkID(fork_digest=digest, next_fork_version=version, next_fork_epoch=epoch)
