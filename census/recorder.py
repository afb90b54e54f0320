"""Telemetry recorder: merge crawl observations and append them to the store."""

import logging
import sqlite3
from collections.abc import Callable, Sequence
from datetime import UTC, datetime

from census.beacon import Eth2DecodeError, decode_enr_fork_id
from census.forkid import ForkIDClassifier, default_classifier
from census.geoip import Geolocator
from census.models import ClientInfo, GeoLocation, NodeRow, Observation, PeerRecord
from census.persistence import insert_rows
from census.vparser import parse

logger = logging.getLogger(__name__)

# Client type placeholders.
TOO_MANY_PEERS = "tmp"
ETH2 = "eth2"


class TelemetryRecorder:
    """Write batches of crawl observations as one transaction each.

    Every call to ``record`` appends one row per observation, all stamped
    with the same freshly generated observation time, so repeated crawls of
    the same peer accumulate as a time series.

    Args:
        conn: Open connection to a store initialized with ``create_schema``.
        geo: Geolocator used for country/city/coordinates.  When ``None``
            the geo columns are left empty.
        classifier: Fork ID classifier (default: the built-in registry).
        clock: Returns the current time (default: ``datetime.now(UTC)``).
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        geo: Geolocator | None = None,
        classifier: ForkIDClassifier | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._conn = conn
        self._geo = geo
        self._classifier = classifier or default_classifier()
        self._clock = clock or (lambda: datetime.now(UTC))

    def record(self, batch: Sequence[Observation]) -> int:
        """Persist *batch*, all rows or none.

        Args:
            batch: Observations gathered during one crawl pass.

        Returns:
            Number of rows written.

        Raises:
            GeoLookupError: If any observation's IP cannot be geolocated;
                nothing from the batch is written.
            sqlite3.Error: On store errors, propagated unmodified after the
                transaction is rolled back.
        """
        logger.info("Writing %d observations to db", len(batch))

        observed_at = self._clock().isoformat()
        rows = [self._build_row(obs, observed_at) for obs in batch]

        with self._conn:
            insert_rows(self._conn, rows)
        return len(rows)

    def _build_row(self, obs: Observation, observed_at: str) -> NodeRow:
        """Merge one observation's handshake, peer and geo data into a row."""
        peer = obs.peer
        info = obs.info or ClientInfo()

        client_type = info.client_type
        if not client_type and obs.too_many_peers:
            client_type = TOO_MANY_PEERS

        fork_display = str(info.fork_id)
        fork_name = self._classifier.classify(info.fork_id)

        if peer.eth2 is not None:
            client_type = ETH2
            try:
                fork_display = str(decode_enr_fork_id(peer.eth2))
            except Eth2DecodeError as exc:
                logger.warning("Bad eth2 entry for %s: %s", peer.node_id, exc)

        location = self._geo.lookup(peer.ip) if self._geo else GeoLocation()

        row = NodeRow(
            peer_id=peer.node_id,
            observed_at=observed_at,
            client_type=client_type,
            public_key=_public_key_display(peer),
            software_version=str(info.software_version),
            capabilities=", ".join(str(cap) for cap in info.capabilities),
            network_id=info.network_id,
            fork_id=fork_display,
            fork_id_name=fork_name,
            block_height=info.block_height,
            total_difficulty=_str_or_none(info.total_difficulty),
            head_hash=info.head_hash,
            ip=peer.ip,
            country=location.country,
            city=location.city,
            coordinates=_coordinates_display(location),
            first_seen=_isoformat(obs.first_response),
            last_seen=_isoformat(obs.last_response),
            seq=obs.seq,
            score=obs.score,
            conn_type=transport_kind(peer),
        )
        _apply_identity(row, info.client_type)
        logger.debug("Row for %s: client=%r fork=%r", peer.node_id, client_type, fork_name)
        return row


def transport_kind(peer: PeerRecord) -> str:
    """Return ``"TCP"`` if the record has a TCP port, else ``"UDP"`` or ``""``."""
    kind = ""
    if peer.udp is not None:
        kind = "UDP"
    if peer.tcp is not None:
        kind = "TCP"
    return kind


def _apply_identity(row: NodeRow, client_type: str) -> None:
    """Fill the parsed-identity columns of *row* from the raw client string."""
    identity = parse(client_type) if client_type else None
    if identity is None:
        return
    row.client_name = identity.name
    row.client_label = identity.label
    row.client_version = str(identity.version)
    row.client_os = identity.os.os
    row.client_arch = identity.os.architecture
    row.client_language = (
        f"{identity.language.name}{identity.language.version}"
        if identity.language.name
        else ""
    )


def _public_key_display(peer: PeerRecord) -> str:
    if not peer.pubkey:
        return ""
    x = int.from_bytes(peer.pubkey[:32], "big")
    y = int.from_bytes(peer.pubkey[32:], "big")
    return f"X: {x}, Y: {y}"


def _coordinates_display(location: GeoLocation) -> str | None:
    if location.latitude is None or location.longitude is None:
        return None
    return f"{location.latitude},{location.longitude}"


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _str_or_none(value: object) -> str | None:
    return None if value is None else str(value)
