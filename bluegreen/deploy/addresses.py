"""Best-effort resolution of a target's private and public IPv4 addresses.

Lookup tiers, each consulted only while a requested address is still missing
and each only filling gaps:

1. the provider's interface listing for the target
2. address fields embedded in the target descriptor
3. the interface referenced by the descriptor, fetched directly
4. a scan of every payload seen so far for IPv4-looking strings
"""

import ipaddress
import logging
import re
from dataclasses import dataclass, field

from bluegreen.errors import ProviderError
from bluegreen.provisioning.fields import first_field, normalize_items, unwrap_data
from bluegreen.provisioning.types import AddressKind, AddressPair, DeploymentTarget

logger = logging.getLogger(__name__)

_IPV4_RE = re.compile(r"^[0-9]{1,3}(\.[0-9]{1,3}){3}$")

PRIVATE_KEYS = ("privateIp", "private-ip", "privateIpAddress", "private-ip-address", "ipAddress", "ip-address")
PUBLIC_KEYS = ("publicIp", "public-ip", "publicIpAddress", "public-ip-address")
INTERFACE_ID_KEYS = ("vnicId", "vnic-id", "id")


def is_ipv4(value) -> bool:
    if not isinstance(value, str) or not _IPV4_RE.match(value.strip()):
        return False
    try:
        ipaddress.IPv4Address(value.strip())
    except ValueError:
        return False
    return True


def is_usable_address(value) -> bool:
    """True for an IPv4 address a load balancer could route to.

    Rejects 0.0.0.0, loopback and link-local (metadata, DNS) addresses.
    """
    if not is_ipv4(value):
        return False
    address = ipaddress.IPv4Address(value.strip())
    return not (address.is_unspecified or address.is_loopback or address.is_link_local)


def _address(obj, keys):
    value = first_field(obj, *keys)
    return value.strip() if isinstance(value, str) and value.strip() else None


def _walk(node):
    """Yield every (key, value) pair in a nested JSON payload, depth-first."""
    if isinstance(node, dict):
        for key, value in node.items():
            yield key, value
            yield from _walk(value)
    elif isinstance(node, list):
        for item in node:
            yield None, item
            yield from _walk(item)


def _descriptor_interfaces(descriptor):
    """Interface-like objects embedded in a target descriptor, primary first."""
    found = []
    vnics = first_field(descriptor, "vnics")
    if isinstance(vnics, list) and vnics and isinstance(vnics[0], dict):
        found.append(vnics[0])
    primary = first_field(descriptor, "primaryVnic", "primary-vnic")
    if isinstance(primary, dict):
        found.append(primary)
    return found


@dataclass
class _Lookup:
    """State shared by the tiers of one resolution."""

    target_id: str
    kinds: set
    addresses: AddressPair = field(default_factory=AddressPair)
    descriptor: dict | None = None
    payloads: list = field(default_factory=list)

    def missing(self):
        return {kind for kind in self.kinds if not self.addresses.has(kind)}

    def offer(self, private=None, public=None, source=""):
        """Fill gaps only; never overwrite an address found by an earlier tier."""
        if private and AddressKind.PRIVATE in self.missing():
            self.addresses.private = private
            logger.debug(f"private address {private} from {source}")
        if public and AddressKind.PUBLIC in self.missing():
            self.addresses.public = public
            logger.debug(f"public address {public} from {source}")


class AddressResolver:
    """Resolves addresses through an ordered list of lookup tiers. Never raises provider errors."""

    def __init__(self, provider):
        self.provider = provider
        self.tiers = [
            ("interface listing", self._from_interface_listing),
            ("target descriptor", self._from_descriptor),
            ("interface lookup", self._from_interface_reference),
            ("ipv4 scan", self._from_ipv4_scan),
        ]

    async def resolve(self, target, kinds=None) -> AddressPair:
        """Resolve addresses of *target* (a DeploymentTarget or an id).

        Args:
            kinds: AddressKinds to look for; both by default. Resolution stops
                once all of them are found.

        Returns:
            AddressPair with whatever could be found. Missing addresses are None.
        """
        if isinstance(target, DeploymentTarget):
            lookup = _Lookup(target.id, set(kinds or AddressKind), descriptor=target.raw or None)
        else:
            lookup = _Lookup(target, set(kinds or AddressKind))

        for label, tier in self.tiers:
            if not lookup.missing():
                break
            try:
                await tier(lookup)
            except ProviderError as e:
                logger.info(f"Address lookup via {label} failed for {lookup.target_id}: {e}")

        for kind in sorted(lookup.kinds, key=lambda k: k.value):
            value = lookup.addresses.for_kind(kind)
            if value:
                logger.info(f"Resolved {kind.value} address of {lookup.target_id}: {value}")
            else:
                logger.warning(f"Could not resolve {kind.value} address of {lookup.target_id}")
        return lookup.addresses

    async def _descriptor(self, lookup):
        if lookup.descriptor is None:
            lookup.descriptor = unwrap_data(await self.provider.get_target(lookup.target_id)) or {}
            lookup.payloads.append(lookup.descriptor)
        return lookup.descriptor

    # ── Tiers ─────────────────────────────────────────────────────

    async def _from_interface_listing(self, lookup):
        interfaces = normalize_items(await self.provider.list_network_interfaces(lookup.target_id))
        lookup.payloads.append(interfaces)
        if interfaces and isinstance(interfaces[0], dict):
            first = interfaces[0]
            lookup.offer(_address(first, PRIVATE_KEYS), _address(first, PUBLIC_KEYS), "interface listing")

    async def _from_descriptor(self, lookup):
        descriptor = await self._descriptor(lookup)
        for interface in _descriptor_interfaces(descriptor):
            lookup.offer(_address(interface, PRIVATE_KEYS[:2]), _address(interface, PUBLIC_KEYS[:2]), "target descriptor")

    async def _from_interface_reference(self, lookup):
        descriptor = await self._descriptor(lookup)
        interface_id = None
        for interface in _descriptor_interfaces(descriptor):
            interface_id = first_field(interface, *INTERFACE_ID_KEYS)
            if interface_id:
                break
        if not interface_id:
            logger.info(f"No interface id on descriptor of {lookup.target_id}; skipping interface lookup")
            return
        logger.info(f"Resolving addresses via network interface {interface_id}")
        interface = unwrap_data(await self.provider.get_network_interface(interface_id)) or {}
        lookup.payloads.append(interface)
        lookup.offer(_address(interface, PRIVATE_KEYS), _address(interface, PUBLIC_KEYS), "interface lookup")

    async def _from_ipv4_scan(self, lookup):
        if lookup.descriptor is None:
            try:
                await self._descriptor(lookup)
            except ProviderError as e:
                logger.debug(f"Scanning without descriptor of {lookup.target_id}: {e}")
        private_hits, public_hits, anonymous = [], [], []
        for payload in lookup.payloads:
            for key, value in _walk(payload):
                if not is_usable_address(value):
                    continue
                value = value.strip()
                if key in PUBLIC_KEYS:
                    public_hits.append(value)
                elif key in PRIVATE_KEYS:
                    private_hits.append(value)
                else:
                    anonymous.append(value)
        # Any stray IPv4 is a better guess for the private side than nothing
        private = next(iter(private_hits + anonymous), None)
        public = next(iter(public_hits), None)
        lookup.offer(private, public, "ipv4 scan")
