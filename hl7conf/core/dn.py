"""Distinguished name helpers on top of ``ldap3.utils.dn``."""

from __future__ import annotations

from ldap3.core.exceptions import LDAPInvalidDnError
from ldap3.utils.dn import escape_rdn, parse_dn

from hl7conf.core.errors import DirectoryProtocolError

_HEX = "0123456789abcdefABCDEF"


def escape_value(value: str) -> str:
    return escape_rdn(value) if value else value


def unescape_value(value: str) -> str:
    # parse_dn hands back values in their escaped form
    out: list[str] = []
    i = 0
    while i < len(value):
        ch = value[i]
        if ch != "\\":
            out.append(ch)
            i += 1
            continue
        if i + 1 >= len(value):
            raise DirectoryProtocolError(f"Dangling escape in '{value}'")
        pair = value[i + 1 : i + 3]
        if len(pair) == 2 and all(c in _HEX for c in pair):
            out.append(chr(int(pair, 16)))
            i += 3
        else:
            out.append(value[i + 1])
            i += 2
    return "".join(out)


def _components(dn: str) -> list[tuple[str, str, str]]:
    try:
        return parse_dn(dn, escape=False, strip=False)
    except LDAPInvalidDnError as exc:
        raise DirectoryProtocolError(f"Invalid DN '{dn}': {exc}") from exc


def dn_of(attr: str, value: str, parent: str) -> str:
    rdn = f"{attr}={escape_value(value)}"
    return f"{rdn},{parent}" if parent else rdn


def split_dn(dn: str) -> list[str]:
    if not dn.strip():
        return []
    rdns: list[str] = []
    avas: list[str] = []
    for attr, value, separator in _components(dn):
        avas.append(f"{attr.strip()}={value}")
        if separator != "+":
            rdns.append("+".join(avas))
            avas = []
    return rdns


def parse_rdn(rdn: str) -> tuple[tuple[str, str], ...]:
    components = _components(rdn)
    if any(separator == "," for _, _, separator in components):
        raise DirectoryProtocolError(f"'{rdn}' holds more than one RDN")
    return tuple((attr.strip(), unescape_value(value)) for attr, value, _ in components)


def rdn_of(dn: str) -> str:
    rdns = split_dn(dn)
    if not rdns:
        raise DirectoryProtocolError("Empty DN has no RDN")
    return rdns[0]


def parent_of(dn: str) -> str:
    return ",".join(split_dn(dn)[1:])


def normalize_dn(dn: str) -> str:
    """Canonical form used for comparisons: lower-cased, unescaped and re-escaped."""
    normalized: list[str] = []
    for rdn in split_dn(dn):
        avas = sorted(
            f"{attr.lower()}={escape_value(value.lower())}" for attr, value in parse_rdn(rdn)
        )
        normalized.append("+".join(avas))
    return ",".join(normalized)


def is_descendant(dn: str, base: str) -> bool:
    """True if ``dn`` lies strictly beneath ``base``."""
    dn_rdns = split_dn(normalize_dn(dn))
    base_rdns = split_dn(normalize_dn(base))
    if len(dn_rdns) <= len(base_rdns):
        return False
    return dn_rdns[len(dn_rdns) - len(base_rdns) :] == base_rdns
