"""Service kinds a table backend can register for

The MTA asks tables for different kinds of data. A backend announces the
kinds it can answer during the handshake; the resulting mask is used to
short-circuit requests for everything else.

Bit values match the MTA's own service constants so a mask can be passed
through the host channel unchanged.
"""

from enum import IntFlag
from typing import Iterator, Optional


class ServiceKind(IntFlag):
    """Lookup service kind (single bit) or a mask of several"""
    ALIAS = 0x001
    DOMAIN = 0x002
    CREDENTIALS = 0x004
    NETADDR = 0x008
    USERINFO = 0x010
    SOURCE = 0x020
    MAILADDR = 0x040
    ADDRNAME = 0x080
    MAILADDRMAP = 0x100

    @classmethod
    def from_name(cls, name: str) -> Optional["ServiceKind"]:
        """Look up a kind by its wire name, returns None if unknown"""
        return _BY_NAME.get(name)

    @classmethod
    def from_value(cls, value: int) -> Optional["ServiceKind"]:
        """Convert a host-supplied integer to a single kind, returns None if invalid"""
        for kind in ALL_SERVICES:
            if int(kind) == value:
                return kind
        return None

    @property
    def service_name(self) -> str:
        """Wire name of a single kind"""
        try:
            return _NAMES[self]
        except KeyError:
            raise ValueError(f"not a single service kind: {int(self):#x}")

    def kinds(self) -> Iterator["ServiceKind"]:
        """Iterate the single kinds contained in this mask"""
        for kind in ALL_SERVICES:
            if self & kind:
                yield kind


ALL_SERVICES = (
    ServiceKind.ALIAS,
    ServiceKind.DOMAIN,
    ServiceKind.CREDENTIALS,
    ServiceKind.NETADDR,
    ServiceKind.USERINFO,
    ServiceKind.SOURCE,
    ServiceKind.MAILADDR,
    ServiceKind.ADDRNAME,
    ServiceKind.MAILADDRMAP,
)

_NAMES = {
    ServiceKind.ALIAS: "alias",
    ServiceKind.DOMAIN: "domain",
    ServiceKind.CREDENTIALS: "credentials",
    ServiceKind.NETADDR: "netaddr",
    ServiceKind.USERINFO: "userinfo",
    ServiceKind.SOURCE: "source",
    ServiceKind.MAILADDR: "mailaddr",
    ServiceKind.ADDRNAME: "addrname",
    ServiceKind.MAILADDRMAP: "mailaddrmap",
}

_BY_NAME = {name: kind for kind, name in _NAMES.items()}

# Empty mask
NO_SERVICES = ServiceKind(0)


def mask_names(mask: ServiceKind) -> str:
    """Comma-separated wire names of a mask, for log lines"""
    return ",".join(kind.service_name for kind in mask.kinds())
