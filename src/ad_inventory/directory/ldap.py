"""
Live directory source.

Talks LDAP to a domain controller with ldap3 and maps entries into the raw
attribute sets the collectors consume. Read-only; nothing is ever written.
DNS service state and DHCP scope data are not reachable over LDAP, so those
query kinds fail with DataSourceError and surface as record or section
failures in the report.
"""
from __future__ import annotations

import socket
import struct
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ldap3 import ALL, ANONYMOUS, BASE, NTLM, SIMPLE, SUBTREE, Connection, Server
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from ..logging import get_logger
from ..util.errors import DataSourceError, DirectoryUnavailableError, map_ldap_error
from .source import RawRecord, check_query

LOG = get_logger(__name__)

UAC_ACCOUNTDISABLE = 0x2
UAC_SERVER_TRUST_ACCOUNT = 0x2000
UAC_PARTIAL_SECRETS_ACCOUNT = 0x4000000
NTDSDSA_OPT_IS_GC = 0x1
CROSSREF_DOMAIN = 0x2

RESULT_SUCCESS = 0
RESULT_NO_SUCH_OBJECT = 32

# DSPROPERTY_ZONE_ALLOW_UPDATE values
ZONE_DYNAMIC_UPDATE = {0: "None", 1: "NonsecureAndSecure", 2: "Secure"}
_ZONE_ALLOW_UPDATE_ID = 0x02
_SKIPPED_ZONES = ("RootDNSServers", "..TrustAnchors")

AUTH_METHODS = {"ntlm": NTLM, "simple": SIMPLE, "anonymous": ANONYMOUS}


def _first(attrs: Dict[str, Any], name: str, default: Any = None) -> Any:
    value = attrs.get(name)
    if isinstance(value, (list, tuple)):
        return value[0] if value else default
    return default if value is None else value


def _all(attrs: Dict[str, Any], name: str) -> List[Any]:
    value = attrs.get(name)
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _rdn_value(dn: str, index: int = 0) -> str:
    parts = [p for p in str(dn or "").split(",") if p]
    if index >= len(parts):
        return ""
    _, _, value = parts[index].partition("=")
    return value


def _parent_dn(dn: str) -> str:
    _, _, parent = str(dn or "").partition(",")
    return parent


def _dn_to_fqdn(dn: str) -> str:
    labels = [p.split("=", 1)[1] for p in str(dn or "").split(",") if p.upper().startswith("DC=")]
    return ".".join(labels)


def parse_repl_neighbor(xml_text: str) -> RawRecord:
    """Parse one msDS-NCReplInboundNeighbors value (DS_REPL_NEIGHBOR XML)."""
    try:
        root = ET.fromstring(xml_text.strip().rstrip("\x00"))
    except ET.ParseError as e:
        raise DataSourceError(f"Malformed replication metadata: {e}") from e

    def text(tag: str) -> Optional[str]:
        node = root.find(tag)
        return node.text if node is not None else None

    source_dsa = text("pszSourceDsaDN") or ""
    return {
        # CN=NTDS Settings,CN=<server>,...
        "partner": _rdn_value(source_dsa, 1) or source_dsa,
        "namingContext": text("pszNamingContext") or "",
        "lastSuccess": text("ftimeLastSyncSuccess"),
        "lastAttempt": text("ftimeLastSyncAttempt"),
        "consecutiveFailures": text("cNumConsecutiveSyncFailures"),
    }


def parse_zone_dynamic_update(properties: Sequence[Any]) -> str:
    for value in properties:
        if not isinstance(value, (bytes, bytearray)) or len(value) < 20:
            continue
        data_len, _name_len, _flag, _version, prop_id = struct.unpack("<IIIII", bytes(value[:20]))
        if prop_id != _ZONE_ALLOW_UPDATE_ID or data_len < 1:
            continue
        code = value[20]
        return ZONE_DYNAMIC_UPDATE.get(code, str(code))
    return "Unknown"


class LdapDirectorySource:
    def __init__(
        self,
        server: str,
        *,
        domain: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        auth: str = "ntlm",
        use_ssl: bool = False,
        port: Optional[int] = None,
        timeout: int = 10,
        page_size: int = 500,
    ) -> None:
        if auth not in AUTH_METHODS:
            raise ValueError(f"auth must be one of: {', '.join(sorted(AUTH_METHODS))}")
        self.server = server
        self.domain = domain
        self.username = username
        self.password = password
        self.auth = auth
        self.use_ssl = use_ssl
        self.port = port or (636 if use_ssl else 389)
        self.timeout = timeout
        self.page_size = page_size
        self.label = f"ldap{'s' if use_ssl else ''}://{server}:{self.port}"

        self._connections: Dict[str, Connection] = {}
        self.default_nc = ""
        self.config_nc = ""
        self.schema_nc = ""
        self.root_nc = ""
        self._forest_level: Any = None
        self._domain_level: Any = None

    # -----------
    # Connections
    # -----------
    def _bind_user(self) -> Optional[str]:
        if self.auth == "anonymous" or not self.username:
            return None
        user = self.username
        if self.auth == "ntlm" and "\\" not in user and "@" not in user and self.domain:
            user = f"{self.domain.split('.')[0].upper()}\\{user}"
        return user

    def _connect(self, host: str) -> Connection:
        conn = self._connections.get(host)
        if conn is not None and conn.bound:
            return conn
        server = Server(host, port=self.port, use_ssl=self.use_ssl, get_info=ALL, connect_timeout=self.timeout)
        user = self._bind_user()
        conn = Connection(
            server,
            user=user,
            password=self.password if user else None,
            authentication=AUTH_METHODS[self.auth] if user else ANONYMOUS,
            auto_bind=True,
            read_only=True,
            receive_timeout=self.timeout,
        )
        self._connections[host] = conn
        return conn

    def close(self) -> None:
        for conn in self._connections.values():
            try:
                conn.unbind()
            except LDAPException as e:
                LOG.debug("LDAP unbind failed", extra={"error": str(e)})
        self._connections.clear()

    def probe(self) -> None:
        try:
            conn = self._connect(self.server)
        except LDAPException as e:
            raise DirectoryUnavailableError(f"Cannot bind to {self.label}: {e}") from e
        info = conn.server.info
        other = getattr(info, "other", None) or {}

        def dse(name: str) -> str:
            values = other.get(name) or []
            return str(values[0]) if values else ""

        self.default_nc = dse("defaultNamingContext")
        self.config_nc = dse("configurationNamingContext")
        self.schema_nc = dse("schemaNamingContext")
        self.root_nc = dse("rootDomainNamingContext") or self.default_nc
        self._forest_level = dse("forestFunctionality")
        self._domain_level = dse("domainFunctionality")
        if not self.default_nc or not self.config_nc:
            raise DirectoryUnavailableError(f"{self.label} did not publish naming contexts in its root DSE")
        LOG.info(
            "Directory reachable",
            extra={"step": "probe", "phase": "complete", "source": self.label, "base_dn": self.default_nc},
        )

    def _search(
        self,
        base: str,
        search_filter: str,
        attributes: Sequence[str],
        *,
        scope: Any = SUBTREE,
        host: Optional[str] = None,
    ) -> List[Tuple[str, Dict[str, Any]]]:
        if not self.default_nc:
            self.probe()
        try:
            conn = self._connect(host or self.server)
            response = conn.extend.standard.paged_search(
                search_base=base,
                search_filter=search_filter,
                search_scope=scope,
                attributes=list(attributes),
                paged_size=self.page_size,
                generator=False,
            )
        except LDAPException as e:
            mapped = map_ldap_error(e, f"LDAP search failed under {base}")
            raise (mapped or DataSourceError(str(e))) from e
        code = (conn.result or {}).get("result", RESULT_SUCCESS)
        if code == RESULT_NO_SUCH_OBJECT:
            return []
        if code != RESULT_SUCCESS:
            raise DataSourceError(
                f"LDAP search under {base} returned {conn.result.get('description')}: {conn.result.get('message')}"
            )
        out: List[Tuple[str, Dict[str, Any]]] = []
        for item in response or []:
            if item.get("type") != "searchResEntry":
                continue
            out.append((str(item.get("dn") or ""), dict(item.get("attributes") or {})))
        return out

    def _read(self, dn: str, attributes: Sequence[str], *, host: Optional[str] = None) -> Optional[Dict[str, Any]]:
        entries = self._search(dn, "(objectClass=*)", attributes, scope=BASE, host=host)
        return entries[0][1] if entries else None

    def _server_host(self, server_dn: str) -> str:
        attrs = self._read(server_dn, ["dNSHostName", "name"])
        if not attrs:
            return _rdn_value(server_dn)
        return str(_first(attrs, "dNSHostName") or _first(attrs, "name") or _rdn_value(server_dn))

    # -------
    # Queries
    # -------
    def fetch(self, kind: str, **params: Any) -> List[RawRecord]:
        check_query(kind, params)
        handler = getattr(self, f"_fetch_{kind}")
        return handler(**params)

    def _fetch_forest(self) -> List[RawRecord]:
        partitions = f"CN=Partitions,{self.config_nc}"
        domains = [
            str(_first(attrs, "dnsRoot") or "")
            for _, attrs in self._search(
                partitions,
                f"(&(objectClass=crossRef)(systemFlags:1.2.840.113556.1.4.803:={CROSSREF_DOMAIN}))",
                ["dnsRoot"],
            )
        ]
        global_catalogs = [
            self._server_host(_parent_dn(dn))
            for dn, _ in self._search(
                f"CN=Sites,{self.config_nc}",
                f"(&(objectCategory=nTDSDSA)(options:1.2.840.113556.1.4.803:={NTDSDSA_OPT_IS_GC}))",
                ["distinguishedName"],
            )
        ]
        sites = self._search(f"CN=Sites,{self.config_nc}", "(objectClass=site)", ["name"])
        root = _dn_to_fqdn(self.root_nc)
        return [
            {
                "name": root,
                "rootDomain": root,
                "forestMode": self._forest_level,
                "domainMode": self._domain_level,
                "domains": sorted(d for d in domains if d),
                "globalCatalogs": sorted(global_catalogs),
                "siteCount": len(sites),
            }
        ]

    def _fetch_fsmo(self) -> List[RawRecord]:
        holders = (
            ("Schema Master", self.schema_nc),
            ("Domain Naming Master", f"CN=Partitions,{self.config_nc}"),
            ("PDC Emulator", self.default_nc),
            ("RID Master", f"CN=RID Manager$,CN=System,{self.default_nc}"),
            ("Infrastructure Master", f"CN=Infrastructure,{self.default_nc}"),
        )
        out: List[RawRecord] = []
        for role, dn in holders:
            attrs = self._read(dn, ["fSMORoleOwner"])
            owner = str(_first(attrs or {}, "fSMORoleOwner") or "")
            if not owner:
                raise DataSourceError(f"fSMORoleOwner not readable for {role}")
            out.append({"role": role, "owner": self._server_host(_parent_dn(owner))})
        return out

    def _fetch_domain_controllers(self) -> List[RawRecord]:
        entries = self._search(
            self.default_nc,
            "(&(objectCategory=computer)(|"
            f"(userAccountControl:1.2.840.113556.1.4.803:={UAC_SERVER_TRUST_ACCOUNT})"
            f"(userAccountControl:1.2.840.113556.1.4.803:={UAC_PARTIAL_SECRETS_ACCOUNT})))",
            ["name", "dNSHostName", "operatingSystem", "operatingSystemVersion", "userAccountControl", "serverReferenceBL"],
        )
        out: List[RawRecord] = []
        for _, attrs in entries:
            host = str(_first(attrs, "dNSHostName") or _first(attrs, "name") or "")
            uac = _as_int(_first(attrs, "userAccountControl"))
            server_dn = str(_first(attrs, "serverReferenceBL") or "")
            is_gc = False
            if server_dn:
                dsa = self._read(f"CN=NTDS Settings,{server_dn}", ["options"])
                is_gc = bool(_as_int(_first(dsa or {}, "options")) & NTDSDSA_OPT_IS_GC)
            try:
                ip = socket.gethostbyname(host) if host else ""
            except OSError:
                ip = "Unknown"
            os_name = str(_first(attrs, "operatingSystem") or "")
            os_version = str(_first(attrs, "operatingSystemVersion") or "")
            out.append(
                {
                    "hostName": host,
                    # CN=<dc>,CN=Servers,CN=<site>,CN=Sites,...
                    "site": _rdn_value(server_dn, 2),
                    "ipv4Address": ip,
                    "operatingSystem": f"{os_name} {os_version}".strip(),
                    "isGlobalCatalog": is_gc,
                    "isReadOnly": bool(uac & UAC_PARTIAL_SECRETS_ACCOUNT),
                }
            )
        return out

    def _fetch_dns_service(self, server: str) -> List[RawRecord]:
        raise DataSourceError(f"DNS service state for {server} is not exposed over LDAP")

    def _fetch_replication(self, server: str) -> List[RawRecord]:
        attrs = self._read(self.default_nc, ["msDS-NCReplInboundNeighbors"], host=server)
        if attrs is None:
            raise DataSourceError(f"Replication metadata unavailable from {server}")
        return [parse_repl_neighbor(str(v)) for v in _all(attrs, "msDS-NCReplInboundNeighbors")]

    def _fetch_sites(self) -> List[RawRecord]:
        sites_dn = f"CN=Sites,{self.config_nc}"
        subnets: Dict[str, List[str]] = {}
        for _, attrs in self._search(f"CN=Subnets,{sites_dn}", "(objectClass=subnet)", ["name", "siteObject"]):
            site_dn = str(_first(attrs, "siteObject") or "")
            subnets.setdefault(site_dn.lower(), []).append(str(_first(attrs, "name") or ""))
        servers: Dict[str, List[str]] = {}
        for dn, attrs in self._search(sites_dn, "(objectClass=server)", ["dNSHostName", "name"]):
            site_name = _rdn_value(dn, 2)
            servers.setdefault(site_name.lower(), []).append(
                str(_first(attrs, "dNSHostName") or _first(attrs, "name") or "")
            )
        out: List[RawRecord] = []
        for dn, attrs in self._search(sites_dn, "(objectClass=site)", ["name", "location", "description"]):
            name = str(_first(attrs, "name") or "")
            out.append(
                {
                    "name": name,
                    "location": str(_first(attrs, "location") or _first(attrs, "description") or ""),
                    "subnets": sorted(subnets.get(dn.lower(), [])),
                    "servers": sorted(servers.get(name.lower(), [])),
                }
            )
        return out

    def _fetch_dns_zones(self, server: str) -> List[RawRecord]:
        bases = (
            f"DC=DomainDnsZones,{self.default_nc}",
            f"DC=ForestDnsZones,{self.root_nc}",
            f"CN=MicrosoftDNS,CN=System,{self.default_nc}",
        )
        out: List[RawRecord] = []
        seen = set()
        for base in bases:
            for _, attrs in self._search(base, "(objectClass=dnsZone)", ["name", "dNSProperty"], host=server):
                name = str(_first(attrs, "name") or "")
                if not name or name.startswith(_SKIPPED_ZONES) or name.lower() in seen:
                    continue
                seen.add(name.lower())
                lowered = name.lower()
                out.append(
                    {
                        "zoneName": name,
                        "zoneType": "Primary",
                        "isDsIntegrated": True,
                        "isReverseLookupZone": lowered.endswith(".in-addr.arpa") or lowered.endswith(".ip6.arpa"),
                        "dynamicUpdate": parse_zone_dynamic_update(_all(attrs, "dNSProperty")),
                    }
                )
        return out

    def _fetch_dhcp_servers(self) -> List[RawRecord]:
        entries = self._search(
            f"CN=NetServices,CN=Services,{self.config_nc}",
            "(objectClass=dHCPClass)",
            ["name", "dhcpServers"],
        )
        return [
            {"name": str(_first(attrs, "name") or "")}
            for _, attrs in entries
            if str(_first(attrs, "name") or "").lower() != "dhcproot"
        ]

    def _fetch_dhcp_scopes(self, server: str) -> List[RawRecord]:
        raise DataSourceError(f"DHCP scopes on {server} are not exposed over LDAP")

    def _fetch_group(self, name: str) -> List[RawRecord]:
        safe = escape_filter_chars(name)
        entries = self._search(
            self.default_nc,
            f"(&(objectCategory=group)(|(cn={safe})(sAMAccountName={safe})))",
            ["name", "distinguishedName", "objectClass"],
        )
        return [{"distinguishedName": dn, "name": str(_first(attrs, "name") or name)} for dn, attrs in entries[:1]]

    def _fetch_group_members(self, dn: str) -> List[RawRecord]:
        attrs = self._read(dn, ["member"])
        if attrs is None:
            raise DataSourceError(f"Group {dn} could not be read")
        out: List[RawRecord] = []
        for member_dn in _all(attrs, "member"):
            member = self._read(str(member_dn), ["name", "sAMAccountName", "objectClass"]) or {}
            classes = [str(c) for c in _all(member, "objectClass")]
            out.append(
                {
                    "distinguishedName": str(member_dn),
                    "name": str(_first(member, "sAMAccountName") or _first(member, "name") or _rdn_value(member_dn)),
                    # most specific class is listed last
                    "objectClass": classes[-1] if classes else "unknown",
                }
            )
        return out

    def _fetch_user(self, dn: str) -> List[RawRecord]:
        attrs = self._read(dn, ["sAMAccountName", "userAccountControl", "lastLogonTimestamp", "pwdLastSet"])
        if attrs is None:
            return []
        return [
            {
                "sAMAccountName": _first(attrs, "sAMAccountName"),
                "enabled": not (_as_int(_first(attrs, "userAccountControl")) & UAC_ACCOUNTDISABLE),
                "lastLogonTimestamp": _first(attrs, "lastLogonTimestamp"),
                "pwdLastSet": _first(attrs, "pwdLastSet"),
            }
        ]

    def _fetch_service_accounts(self) -> List[RawRecord]:
        entries = self._search(
            self.default_nc,
            "(|"
            "(&(objectCategory=person)(objectClass=user)(servicePrincipalName=*)(!(sAMAccountName=krbtgt)))"
            "(objectClass=msDS-ManagedServiceAccount)"
            "(objectClass=msDS-GroupManagedServiceAccount))",
            [
                "name",
                "sAMAccountName",
                "objectClass",
                "userAccountControl",
                "servicePrincipalName",
                "pwdLastSet",
                "lastLogonTimestamp",
                "description",
            ],
        )
        out: List[RawRecord] = []
        for _, attrs in entries:
            classes = [str(c) for c in _all(attrs, "objectClass")]
            out.append(
                {
                    "name": _first(attrs, "name"),
                    "sAMAccountName": _first(attrs, "sAMAccountName"),
                    "objectClass": classes[-1] if classes else "user",
                    "enabled": not (_as_int(_first(attrs, "userAccountControl")) & UAC_ACCOUNTDISABLE),
                    "servicePrincipalName": [str(s) for s in _all(attrs, "servicePrincipalName")],
                    "pwdLastSet": _first(attrs, "pwdLastSet"),
                    "lastLogonTimestamp": _first(attrs, "lastLogonTimestamp"),
                    "description": _first(attrs, "description") or "",
                }
            )
        return out

    def _fetch_mail_servers(self) -> List[RawRecord]:
        entries = self._search(
            f"CN=Microsoft Exchange,CN=Services,{self.config_nc}",
            "(objectCategory=msExchExchangeServer)",
            ["name", "networkAddress", "serialNumber", "msExchCurrentServerRoles", "msExchServerSite"],
        )
        out: List[RawRecord] = []
        for _, attrs in entries:
            fqdn = ""
            for address in _all(attrs, "networkAddress"):
                prefix, _, value = str(address).partition(":")
                if prefix.lower() == "ncacn_ip_tcp":
                    fqdn = value
                    break
            out.append(
                {
                    "name": _first(attrs, "name"),
                    "fqdn": fqdn,
                    "serialNumber": _first(attrs, "serialNumber"),
                    "msExchCurrentServerRoles": _first(attrs, "msExchCurrentServerRoles"),
                    "site": _rdn_value(str(_first(attrs, "msExchServerSite") or "")),
                }
            )
        return out

    def _fetch_policy_objects(self) -> List[RawRecord]:
        entries = self._search(
            f"CN=Policies,CN=System,{self.default_nc}",
            "(objectClass=groupPolicyContainer)",
            ["displayName", "name", "flags", "whenCreated", "whenChanged"],
        )
        return [
            {
                "displayName": _first(attrs, "displayName"),
                "name": _first(attrs, "name"),
                "flags": _first(attrs, "flags", 0),
                "whenCreated": _first(attrs, "whenCreated"),
                "whenChanged": _first(attrs, "whenChanged"),
            }
            for _, attrs in entries
        ]
