"""Client version string parser.

Peers announce themselves during the devp2p handshake with a loosely
structured string such as::

    Geth/v1.10.3-stable-991384a7/linux-amd64/go1.16.3
    CoreGeth/ETCMCgethNode/v1.12.10-stable-4d217763/windows-amd64/go1.18.5
    besu/v21.7.0-RC1/darwin-x86_64/corretto-java-11

``parse`` turns such a string into an ``IdentityRecord``.  The parser is all
or nothing: every segment must be recognized for its position, otherwise the
whole string is rejected and ``None`` is returned.  The only tolerated gap is
the OS/architecture segment, which is best effort.
"""

import logging
import re
from typing import NamedTuple

from census.models import IdentityRecord, LanguageInfo, OSInfo, Version

logger = logging.getLogger(__name__)

# Segment that starts a version: "v" followed by a digit.
_VERSION_MARKER_RE = re.compile(r"^v\d", re.IGNORECASE)

_VERSION_RE = re.compile(
    r"^v(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)"
    r"(?P<qualifiers>(?:[-+][0-9a-z]+)*)$",
    re.IGNORECASE,
)
_QUALIFIER_RE = re.compile(r"([-+])([0-9a-z]+)", re.IGNORECASE)

# Characters that only show up in endpoint addresses (enode://id@ip:port),
# never in a client name or label.
_ENDPOINT_MARKERS = (":", "@")

_KNOWN_OS = frozenset(
    {
        "android",
        "darwin",
        "dragonfly",
        "freebsd",
        "illumos",
        "ios",
        "linux",
        "macos",
        "netbsd",
        "openbsd",
        "solaris",
        "windows",
    }
)
_OS_RE = re.compile(r"^(?P<os>[a-z]+)-(?P<arch>[0-9a-z_]+)$")

_KNOWN_RUNTIMES = ("dotnet", "rustc", "rust", "java", "node", "nim", "go")
_RUNTIME_VERSION_RE = re.compile(r"^\d+(?:\.\d+)*$")
_GLUED_RUNTIME_RE = re.compile(
    r"^(?P<name>" + "|".join(_KNOWN_RUNTIMES) + r")(?P<version>\d+(?:\.\d+)*)$"
)


class _QualifierRule(NamedTuple):
    """Assigns a version qualifier token to ``field`` when it fits.

    A rule applies when the token was introduced by one of ``separators``,
    matches ``pattern`` and ``field`` is still empty or ``repeatable``.
    A repeatable field keeps the last token assigned to it.
    """

    field: str
    separators: str
    pattern: re.Pattern[str]
    repeatable: bool = False


# Evaluated in order for every qualifier token; the first rule that applies
# wins.  A token no rule accepts fails the whole parse.
_QUALIFIER_RULES = (
    _QualifierRule("date", "-", re.compile(r"^\d{8}$")),
    _QualifierRule("tag", "-", re.compile(r"^[0-9a-z]{1,40}$")),
    _QualifierRule("build", "-+", re.compile(r"^[0-9a-z]{1,40}$"), repeatable=True),
)


def parse(raw: str | bytes) -> IdentityRecord | None:
    """Parse a client version string into an ``IdentityRecord``.

    Args:
        raw: Version string as reported by the peer.  Bytes are decoded as
            UTF-8 with replacement.

    Returns:
        The parsed identity, or ``None`` if the string is not a recognizable
        single-client identity.  Never raises for malformed input.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")

    segments = raw.strip().split("/")

    name = _parse_name(segments[0])
    if name is None:
        return None

    rest = segments[1:]
    label = ""
    if rest and not _VERSION_MARKER_RE.match(rest[0]):
        label = _parse_name(rest[0])
        if label is None:
            return None
        rest = rest[1:]

    if not rest:
        return IdentityRecord(name=name, label=label)

    version = _parse_version(rest[0])
    if version is None:
        logger.debug("Unrecognized version segment %r in %r", rest[0], raw)
        return None

    tail = rest[1:]
    if any(_VERSION_MARKER_RE.match(segment) for segment in tail):
        # Another client's identity relayed inside this one.
        logger.debug("Nested client identity in %r", raw)
        return None

    os_info = OSInfo()
    language = LanguageInfo()

    if len(tail) == 1:
        parsed_language = _parse_language(tail[0])
        if parsed_language is not None:
            language = parsed_language
        else:
            os_info = _parse_os(tail[0])
    elif len(tail) == 2:
        os_info = _parse_os(tail[0])
        parsed_language = _parse_language(tail[1])
        if parsed_language is None:
            logger.debug("Unrecognized language segment %r in %r", tail[1], raw)
            return None
        language = parsed_language
    elif len(tail) > 2:
        logger.debug("Unexpected trailing segments in %r", raw)
        return None

    return IdentityRecord(
        name=name,
        label=label,
        version=version,
        os=os_info,
        language=language,
    )


# ------------------------------------------------------------------
# Segment parsers
# ------------------------------------------------------------------


def _parse_name(segment: str) -> str | None:
    """Return the lowercased name/label token, or ``None`` if it is invalid."""
    token = segment.strip()
    if not token or any(marker in token for marker in _ENDPOINT_MARKERS):
        return None
    return token.lower()


def _parse_version(segment: str) -> Version | None:
    """Parse ``vMAJOR.MINOR.PATCH[-qualifier...][+build]``."""
    match = _VERSION_RE.match(segment)
    if not match:
        return None

    found = {"tag": "", "build": "", "date": ""}
    for separator, token in _QUALIFIER_RE.findall(match["qualifiers"]):
        token = token.lower()
        for rule in _QUALIFIER_RULES:
            if (
                separator in rule.separators
                and (rule.repeatable or not found[rule.field])
                and rule.pattern.match(token)
            ):
                found[rule.field] = token
                break
        else:
            return None

    return Version(
        major=int(match["major"]),
        minor=int(match["minor"]),
        patch=int(match["patch"]),
        **found,
    )


def _parse_os(segment: str) -> OSInfo:
    """Parse ``<os>-<arch>``; unknown shapes yield an empty ``OSInfo``."""
    match = _OS_RE.match(segment.lower())
    if not match or match["os"] not in _KNOWN_OS:
        return OSInfo()
    return OSInfo(os=match["os"], architecture=match["arch"])


def _parse_language(segment: str) -> LanguageInfo | None:
    """Parse ``go1.16.3`` style or ``vendor-java-11`` style runtime segments."""
    token = segment.lower()

    match = _GLUED_RUNTIME_RE.match(token)
    if match:
        return LanguageInfo(name=match["name"], version=match["version"])

    parts = token.split("-")
    if len(parts) < 2 or not _RUNTIME_VERSION_RE.match(parts[-1]):
        return None
    for part in reversed(parts[:-1]):
        if part in _KNOWN_RUNTIMES:
            return LanguageInfo(name=part, version=parts[-1])
    return None
