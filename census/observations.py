"""Loading crawler output (JSON observation dumps) into ``Observation`` objects.

The crawler writes one JSON document per crawl pass: a list of objects
shaped like::

    {
      "peer": {"id": "ab12...", "ip": "1.2.3.4", "udp": 30303, "tcp": 30303,
               "pubkey": "<128 hex chars>", "eth2": "<32 hex chars>"},
      "info": {"client_type": "Geth/v1.10.3-stable/linux-amd64/go1.16.3",
               "software_version": 5,
               "capabilities": ["eth/66", "snap/1"],
               "network_id": 1,
               "fork_id": {"hash": "0xfc64ec04", "next": 1150000},
               "block_height": "0x12d687",
               "total_difficulty": "58750003716598352816469",
               "head_hash": "0x..."},
      "too_many_peers": false,
      "first_response": "2024-01-01T00:00:00+00:00",
      "last_response": "2024-01-01T01:00:00+00:00",
      "seq": 3,
      "score": 10
    }

Only ``peer.id`` and ``peer.ip`` are required; ``info`` may be null.
"""

import json
import logging
from datetime import datetime
from pathlib import Path

from census.models import Capability, ClientInfo, ForkID, Observation, PeerRecord

logger = logging.getLogger(__name__)


class ObservationFormatError(ValueError):
    """Raised when an observation dump does not have the expected shape."""


def load_observations(path: Path | str) -> list[Observation]:
    """Read a JSON observation dump from *path*.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ObservationFormatError: If the file is not valid JSON or an entry
            is malformed.
    """
    p = Path(path).expanduser()
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ObservationFormatError(f"Invalid JSON in {p}: {exc}") from exc

    observations = parse_observations(raw)
    logger.debug("Loaded %d observations from %s", len(observations), p)
    return observations


def parse_observations(raw: object) -> list[Observation]:
    """Convert decoded JSON into observations.

    Raises:
        ObservationFormatError: If *raw* is not a list of observation objects.
    """
    if not isinstance(raw, list):
        raise ObservationFormatError(
            f"Expected a list of observations, got {type(raw).__name__}"
        )
    observations = []
    for index, entry in enumerate(raw):
        try:
            observations.append(_parse_observation(entry))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ObservationFormatError(f"Observation #{index}: {exc}") from exc
    return observations


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _parse_observation(entry: dict) -> Observation:
    if not isinstance(entry, dict):
        raise TypeError(f"expected an object, got {type(entry).__name__}")
    info = entry.get("info")
    return Observation(
        peer=_parse_peer(entry["peer"]),
        info=_parse_info(info) if info is not None else None,
        too_many_peers=_parse_bool(entry.get("too_many_peers", False)),
        first_response=_parse_time(entry.get("first_response")),
        last_response=_parse_time(entry.get("last_response")),
        seq=int(entry.get("seq", 0)),
        score=int(entry.get("score", 0)),
    )


def _parse_peer(raw: dict) -> PeerRecord:
    pubkey = _parse_hex(raw.get("pubkey"))
    if pubkey is not None and len(pubkey) != 64:
        raise ValueError(f"pubkey must be 64 bytes, got {len(pubkey)}")
    return PeerRecord(
        node_id=str(raw["id"]),
        ip=str(raw["ip"]),
        udp=_optional_int(raw.get("udp")),
        tcp=_optional_int(raw.get("tcp")),
        pubkey=pubkey,
        eth2=_parse_hex(raw.get("eth2")),
    )


def _parse_info(raw: dict) -> ClientInfo:
    fork = raw.get("fork_id") or {}
    return ClientInfo(
        client_type=str(raw.get("client_type", "")),
        software_version=int(raw.get("software_version", 0)),
        capabilities=[_parse_capability(c) for c in raw.get("capabilities", [])],
        network_id=int(raw.get("network_id", 0)),
        fork_id=ForkID.from_hex(fork.get("hash", "0x00000000"), int(fork.get("next", 0))),
        block_height=str(raw.get("block_height", "")),
        total_difficulty=_optional_int(raw.get("total_difficulty")),
        head_hash=str(raw.get("head_hash", "")),
    )


def _parse_capability(raw: str) -> Capability:
    name, _, version = str(raw).partition("/")
    if not name or not version:
        raise ValueError(f"capability {raw!r} is not of the form name/version")
    return Capability(name=name, version=int(version))


def _parse_hex(value: str | None) -> bytes | None:
    if value is None:
        return None
    return bytes.fromhex(value.removeprefix("0x"))


def _parse_bool(value: object) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"too_many_peers must be a boolean, got {value!r}")
    return value


def _parse_time(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _optional_int(value: object) -> int | None:
    if value is None:
        return None
    return int(value)
