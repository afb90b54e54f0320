"""Aggregator: client, fork, country and transport distributions."""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"


@dataclass
class CensusSummary:
    """Aggregated statistics computed from stored observations.

    Every distribution is a list of ``(label, count)`` pairs sorted by
    count descending, then label.

    Attributes:
        total: Number of observations aggregated.
        clients: Parsed client names (raw client type when unparseable).
        versions: ``"name major.minor.patch"`` labels.
        forks: Classified fork names.
        countries: Country names.
        operating_systems: Parsed operating systems.
        transports: Transport kinds (``TCP`` / ``UDP``).
    """

    total: int = 0
    clients: list[tuple[str, int]] = field(default_factory=list)
    versions: list[tuple[str, int]] = field(default_factory=list)
    forks: list[tuple[str, int]] = field(default_factory=list)
    countries: list[tuple[str, int]] = field(default_factory=list)
    operating_systems: list[tuple[str, int]] = field(default_factory=list)
    transports: list[tuple[str, int]] = field(default_factory=list)


def aggregate(rows: Iterable[Mapping]) -> CensusSummary:
    """Compute distributions over observation rows.

    Args:
        rows: Rows from the ``nodes`` table (``sqlite3.Row`` or dicts).

    Returns:
        A ``CensusSummary``.
    """
    clients: dict[str, int] = {}
    versions: dict[str, int] = {}
    forks: dict[str, int] = {}
    countries: dict[str, int] = {}
    systems: dict[str, int] = {}
    transports: dict[str, int] = {}
    total = 0

    for row in rows:
        total += 1

        name = row["client_name"] or row["client_type"] or UNKNOWN
        _count(clients, name)

        if row["client_name"] and row["client_version"]:
            _count(versions, f"{row['client_name']} {_release(row['client_version'])}")

        _count(forks, row["fork_id_name"] or UNKNOWN)

        if row["country"]:
            _count(countries, row["country"])

        if row["client_os"]:
            _count(systems, row["client_os"])

        if row["conn_type"]:
            _count(transports, row["conn_type"])

    logger.debug("Aggregated %d observations", total)
    return CensusSummary(
        total=total,
        clients=_sorted(clients),
        versions=_sorted(versions),
        forks=_sorted(forks),
        countries=_sorted(countries),
        operating_systems=_sorted(systems),
        transports=_sorted(transports),
    )


def _count(counts: dict[str, int], key: str) -> None:
    counts[key] = counts.get(key, 0) + 1


def _sorted(counts: dict[str, int]) -> list[tuple[str, int]]:
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))


def _release(version: str) -> str:
    """Strip qualifiers: ``"1.10.3-stable-991384a7"`` -> ``"1.10.3"``."""
    return version.split("-", 1)[0]
