"""Data models: parsed client identity, handshake info, peer records, observations."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class Version:
    """Semantic version recovered from a client version string.

    Attributes:
        major: Major version number.
        minor: Minor version number.
        patch: Patch version number.
        tag: Pre-release or channel tag (e.g. "stable", "unstable", "rc1").
        build: Commit short hash or build metadata.
        date: Build date as an 8-digit ``YYYYMMDD`` string.
    """

    major: int = 0
    minor: int = 0
    patch: int = 0
    tag: str = ""
    build: str = ""
    date: str = ""

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        for qualifier in (self.tag, self.build, self.date):
            if qualifier:
                text = f"{text}-{qualifier}"
        return text


@dataclass(frozen=True)
class OSInfo:
    """Operating system and CPU architecture the client was built for."""

    os: str = ""
    architecture: str = ""


@dataclass(frozen=True)
class LanguageInfo:
    """Runtime or toolchain that built the client (e.g. go, rustc, java)."""

    name: str = ""
    version: str = ""


@dataclass(frozen=True)
class IdentityRecord:
    """Normalized client identity parsed from a version string.

    Only ``name`` is required; every other field is independently optional
    and left at its empty value when the version string does not carry it.

    Attributes:
        name: Lowercase client family (e.g. "geth", "coregeth", "besu").
        label: Lowercase sub-identifier or build variant, or "".
        version: Parsed semantic version.
        os: Operating system / architecture pair.
        language: Runtime name and version.
    """

    name: str
    label: str = ""
    version: Version = field(default_factory=Version)
    os: OSInfo = field(default_factory=OSInfo)
    language: LanguageInfo = field(default_factory=LanguageInfo)


@dataclass(frozen=True)
class ForkID:
    """EIP-2124 fork identifier advertised by a peer.

    Attributes:
        hash: 4-byte CRC32 checksum of the genesis hash and passed forks.
        next: Block number or timestamp of the next expected fork, 0 if none.
    """

    hash: bytes = b"\x00\x00\x00\x00"
    next: int = 0

    @classmethod
    def from_hex(cls, hash_hex: str, next_fork: int = 0) -> "ForkID":
        """Build a ``ForkID`` from a hex checksum such as ``"0xfc64ec04"``.

        Raises:
            ValueError: If *hash_hex* is not 4 bytes of hex.
        """
        checksum = bytes.fromhex(hash_hex.removeprefix("0x"))
        if len(checksum) != 4:
            raise ValueError(f"Fork hash must be 4 bytes, got {hash_hex!r}")
        return cls(hash=checksum, next=next_fork)

    def __str__(self) -> str:
        return f"Hash: 0x{self.hash.hex()}, Next {self.next}"


@dataclass(frozen=True)
class Capability:
    """A devp2p sub-protocol capability such as ``eth/68``."""

    name: str
    version: int

    def __str__(self) -> str:
        return f"{self.name}/{self.version}"


@dataclass
class ClientInfo:
    """Identity a peer reported live during the devp2p/eth handshake.

    Attributes:
        client_type: Raw client version string from the hello message.
        software_version: Advertised p2p protocol version.
        capabilities: Advertised sub-protocol capabilities.
        network_id: Declared network id.
        fork_id: Advertised fork identifier.
        block_height: Head block height as reported (display string).
        total_difficulty: Total difficulty, if the peer reported one.
        head_hash: Head block hash as a hex string.
    """

    client_type: str = ""
    software_version: int = 0
    capabilities: list[Capability] = field(default_factory=list)
    network_id: int = 0
    fork_id: ForkID = field(default_factory=ForkID)
    block_height: str = ""
    total_difficulty: int | None = None
    head_hash: str = ""


@dataclass
class PeerRecord:
    """Descriptor of a network participant as handed over by discovery.

    Attributes:
        node_id: Hex node identifier.
        ip: IPv4 or IPv6 address.
        udp: UDP discovery port, if the record declares one.
        tcp: TCP listening port, if the record declares one.
        pubkey: 64-byte uncompressed secp256k1 public key (X || Y), if known.
        eth2: Raw ``eth2`` ENR entry (SSZ-encoded ``ENRForkID``), if present.
    """

    node_id: str
    ip: str
    udp: int | None = None
    tcp: int | None = None
    pubkey: bytes | None = None
    eth2: bytes | None = None


@dataclass
class Observation:
    """One crawl pass's findings about one peer.

    Attributes:
        peer: The peer record discovered by the crawler.
        info: Handshake identity, or None when the peer refused it.
        too_many_peers: The peer answered but dropped us for being full.
        first_response: When the peer first answered the crawler.
        last_response: When the peer last answered the crawler.
        seq: Protocol sequence number recorded by the crawler.
        score: Reachability score kept by the crawler.
    """

    peer: PeerRecord
    info: ClientInfo | None = None
    too_many_peers: bool = False
    first_response: datetime | None = None
    last_response: datetime | None = None
    seq: int = 0
    score: int = 0


@dataclass(frozen=True)
class GeoLocation:
    """Result of a geolocation lookup for a single IP address."""

    country: str | None = None
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None


@dataclass
class NodeRow:
    """One persisted crawl observation, flattened to storable values.

    Field order matches the column order of the ``nodes`` table.
    """

    peer_id: str
    observed_at: str
    client_type: str | None = None
    public_key: str | None = None
    software_version: str | None = None
    capabilities: str | None = None
    network_id: int | None = None
    fork_id: str | None = None
    fork_id_name: str | None = None
    block_height: str | None = None
    total_difficulty: str | None = None
    head_hash: str | None = None
    ip: str | None = None
    country: str | None = None
    city: str | None = None
    coordinates: str | None = None
    first_seen: str | None = None
    last_seen: str | None = None
    seq: int | None = None
    score: int | None = None
    conn_type: str | None = None

    # -- Parsed from client_type --
    client_name: str | None = None
    client_label: str | None = None
    client_version: str | None = None
    client_os: str | None = None
    client_arch: str | None = None
    client_language: str | None = None
