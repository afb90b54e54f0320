"""Fork identifier (EIP-2124) filters and chain classification.

A fork ID is a CRC32 running checksum over the genesis hash and every fork
activation point (block numbers first, then timestamps), plus the next
upcoming activation.  ``ForkFilter`` answers whether a remote fork ID is
compatible with a chain; ``ForkIDClassifier`` walks an ordered registry of
such filters and names the first chain that accepts the ID.
"""

import functools
import logging
import zlib
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from census.models import ForkID

logger = logging.getLogger(__name__)

# Fork values above this are timestamps rather than block numbers
# (timestamp of the first mainnet block after genesis).
_TIMESTAMP_THRESHOLD = 1438269973


@dataclass(frozen=True)
class ChainConfig:
    """Fork schedule of a chain as far as fork IDs are concerned.

    Attributes:
        name: Chain name reported by the classifier (e.g. "mainnet").
        genesis_hash: 32-byte genesis block hash.
        block_forks: Block numbers at which forks activate.
        time_forks: Timestamps at which forks activate.
    """

    name: str
    genesis_hash: bytes
    block_forks: tuple[int, ...] = ()
    time_forks: tuple[int, ...] = ()

    @classmethod
    def from_dict(cls, raw: dict) -> "ChainConfig":
        """Build a ``ChainConfig`` from a config-file mapping.

        Expected keys: ``name``, ``genesis_hash`` (hex), and optionally
        ``block_forks`` and ``time_forks`` (lists of integers).

        Raises:
            ValueError: If a required key is missing or malformed.
        """
        try:
            name = str(raw["name"])
            genesis = bytes.fromhex(str(raw["genesis_hash"]).removeprefix("0x"))
        except (KeyError, ValueError) as exc:
            raise ValueError(f"Invalid chain definition {raw!r}: {exc}") from exc
        if len(genesis) != 32:
            raise ValueError(f"Genesis hash of chain {name!r} must be 32 bytes")
        return cls(
            name=name,
            genesis_hash=genesis,
            block_forks=tuple(int(b) for b in raw.get("block_forks") or ()),
            time_forks=tuple(int(t) for t in raw.get("time_forks") or ()),
        )


def _h(hex_hash: str) -> bytes:
    return bytes.fromhex(hex_hash)


MAINNET = ChainConfig(
    name="mainnet",
    genesis_hash=_h("d4e56740f876aef8c010b86a40d5f56745a118d0906a34e69aec8c0db1cb8fa3"),
    block_forks=(
        1_150_000,  # Homestead
        1_920_000,  # DAO
        2_463_000,  # Tangerine Whistle
        2_675_000,  # Spurious Dragon
        4_370_000,  # Byzantium
        7_280_000,  # Constantinople / Petersburg
        9_069_000,  # Istanbul
        9_200_000,  # Muir Glacier
        12_244_000,  # Berlin
        12_965_000,  # London
        13_773_000,  # Arrow Glacier
        15_050_000,  # Gray Glacier
    ),
    time_forks=(
        1_681_338_455,  # Shanghai
        1_710_338_135,  # Cancun
        1_746_612_311,  # Prague
        1_764_798_551,  # Osaka
        1_765_290_071,  # BPO1
        1_767_747_671,  # BPO2
    ),
)

GOERLI = ChainConfig(
    name="goerli",
    genesis_hash=_h("bf7e331f7f7c1dd2e05159666b3bf8bc7a8a3a9eb1d518969eab529dd9b88c1a"),
    block_forks=(1_561_651, 4_460_644, 5_062_605),
    time_forks=(1_678_832_736, 1_705_473_120),
)

SEPOLIA = ChainConfig(
    name="sepolia",
    genesis_hash=_h("25a5cc106eea7138acab33231d7160d69cb777ee0c2c553fcddf5138993e6dd9"),
    block_forks=(1_735_371,),  # Merge netsplit
    time_forks=(
        1_677_557_088,  # Shanghai
        1_706_655_072,  # Cancun
        1_741_159_776,  # Prague
        1_760_427_360,  # Osaka
        1_761_017_184,  # BPO1
        1_761_607_008,  # BPO2
    ),
)

# Ethereum Classic shares the mainnet genesis and Homestead, so the first two
# checksums are identical to mainnet's.
CLASSIC = ChainConfig(
    name="classic",
    genesis_hash=MAINNET.genesis_hash,
    block_forks=(
        1_150_000,  # Homestead
        2_500_000,  # Gas reprice
        3_000_000,  # Die Hard
        5_000_000,  # Gotham
        5_900_000,  # Defuse difficulty bomb
        8_772_000,  # Atlantis
        9_573_000,  # Agharta
        10_500_839,  # Phoenix
        11_700_000,  # Thanos
        13_189_133,  # Magneto
        14_525_000,  # Mystique
        19_250_000,  # Spiral
    ),
)

MORDOR = ChainConfig(
    name="mordor",
    genesis_hash=_h("a68ebde7932eccb177d38d55dcc6461a019dd795a681e59b5a3e4f3a7259a3f1"),
    block_forks=(
        301_243,  # Atlantis
        999_983,  # Agharta
        2_520_000,  # Phoenix
        3_985_893,  # Thanos
        5_520_000,  # Magneto
        9_957_000,  # Mystique
        10_400_000,  # Spiral
    ),
)

# Order matters: the classifier reports the first chain that accepts an ID.
KNOWN_CHAINS: tuple[ChainConfig, ...] = (MAINNET, GOERLI, SEPOLIA, CLASSIC, MORDOR)


# ---------------------------------------------------------------------------
# Checksums and filters
# ---------------------------------------------------------------------------


def _dedupe_forks(forks: Iterable[int]) -> list[int]:
    """Sort fork points, dropping duplicates and genesis-time activations."""
    return sorted({f for f in forks if f > 0})


def checksums(chain: ChainConfig) -> list[bytes]:
    """Return the fork-hash sequence of *chain*.

    Element 0 is the checksum of the genesis hash alone; element ``i`` is
    the checksum after the ``i``-th fork (block forks before time forks).
    """
    crc = zlib.crc32(chain.genesis_hash)
    sums = [crc.to_bytes(4, "big")]
    for fork in _dedupe_forks(chain.block_forks) + _dedupe_forks(chain.time_forks):
        crc = zlib.crc32(fork.to_bytes(8, "big"), crc)
        sums.append(crc.to_bytes(4, "big"))
    return sums


class ForkIDMismatch(Exception):
    """Raised by a ``ForkFilter`` when a remote fork ID is rejected."""


class RemoteStaleError(ForkIDMismatch):
    """The remote is on a past fork and unaware of the fork we passed."""


class LocalIncompatibleOrStaleError(ForkIDMismatch):
    """The remote fork ID does not belong to our chain, or we are stale."""


class ForkFilter:
    """EIP-2124 fork ID validation for one chain.

    Args:
        chain: Fork schedule to validate against.
        head: Callable returning the local head as ``(block, time)``.
    """

    def __init__(
        self,
        chain: ChainConfig,
        head: Callable[[], tuple[int, int]],
    ) -> None:
        self.chain = chain
        self._head = head
        self._block_forks = _dedupe_forks(chain.block_forks)
        self._time_forks = _dedupe_forks(chain.time_forks)
        self._sums = checksums(chain)

    @classmethod
    def static(cls, chain: ChainConfig) -> "ForkFilter":
        """Filter evaluated against the genesis head.

        Accepts any fork ID whose checksum appears anywhere in the chain's
        fork-hash sequence, which makes it suitable for classifying peers
        without a synced local chain.
        """
        return cls(chain, lambda: (0, 0))

    def __call__(self, fork_id: ForkID) -> None:
        """Validate *fork_id*.

        Raises:
            RemoteStaleError: The remote needs a software update.
            LocalIncompatibleOrStaleError: The remote is on another chain
                or we are behind a fork the remote already passed.
        """
        block, time = self._head()
        forks = self._block_forks + self._time_forks

        for i, fork in enumerate(forks):
            head = block if i < len(self._block_forks) else time
            if head >= fork:
                continue

            # Rule 1: same fork; make sure the remote's next fork isn't behind us.
            if self._sums[i] == fork_id.hash:
                if fork_id.next > 0 and (
                    block >= fork_id.next
                    or (fork_id.next > _TIMESTAMP_THRESHOLD and time >= fork_id.next)
                ):
                    raise LocalIncompatibleOrStaleError(
                        f"local head is past remote's next fork {fork_id.next}"
                    )
                return

            # Rule 2: remote is a subset of our past forks.
            for j in range(i):
                if self._sums[j] == fork_id.hash:
                    if forks[j] != fork_id.next:
                        raise RemoteStaleError(
                            f"remote expects next fork {fork_id.next}, "
                            f"local passed {forks[j]}"
                        )
                    return

            # Rule 3: remote is ahead of us on the same chain.
            for j in range(i + 1, len(self._sums)):
                if self._sums[j] == fork_id.hash:
                    return

            raise LocalIncompatibleOrStaleError(f"unknown fork hash {fork_id}")

        # All forks passed; only the final checksum is acceptable.
        if self._sums[-1] == fork_id.hash:
            if fork_id.next > 0:
                raise LocalIncompatibleOrStaleError(
                    f"remote announces unknown fork at {fork_id.next}"
                )
            return
        raise LocalIncompatibleOrStaleError(f"unknown fork hash {fork_id}")

    def matches(self, fork_id: ForkID) -> bool:
        """Return True if the filter accepts *fork_id*."""
        try:
            self(fork_id)
        except ForkIDMismatch:
            return False
        return True


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

Matcher = Callable[[ForkID], bool]


class ForkIDClassifier:
    """Name the chain a fork ID belongs to.

    The registry is an ordered sequence of ``(name, matcher)`` pairs, frozen
    at construction.  ``classify`` returns the first name whose matcher
    accepts the ID, so registry order breaks ties between chains sharing
    fork checksums (mainnet and classic before the DAO fork).

    Args:
        registry: Ordered ``(name, matcher)`` pairs.
    """

    def __init__(self, registry: Sequence[tuple[str, Matcher]]) -> None:
        self._registry: tuple[tuple[str, Matcher], ...] = tuple(registry)

    @classmethod
    def from_chains(cls, chains: Iterable[ChainConfig]) -> "ForkIDClassifier":
        """Build a classifier with a static filter per chain, in order."""
        return cls(
            [(chain.name, ForkFilter.static(chain).matches) for chain in chains]
        )

    @property
    def names(self) -> list[str]:
        """Chain names in registry order."""
        return [name for name, _ in self._registry]

    def classify(self, fork_id: ForkID) -> str:
        """Return the name of the first matching chain, or ``""``."""
        for name, matcher in self._registry:
            if matcher(fork_id):
                return name
        return ""


@functools.cache
def default_classifier() -> ForkIDClassifier:
    """Return the process-wide classifier over ``KNOWN_CHAINS``."""
    logger.debug("Building fork ID registry: %d chains", len(KNOWN_CHAINS))
    return ForkIDClassifier.from_chains(KNOWN_CHAINS)


def classify(fork_id: ForkID) -> str:
    """Classify *fork_id* with the default registry."""
    return default_classifier().classify(fork_id)
