"""Tests for per-class fixups."""
import pytest

from mcp_device_onboarding.config.catalog import load_catalog
from mcp_device_onboarding.config_engine.fixups import (
    FixupContext,
    Phase,
    apply_fixup,
    gtm_monitor_list,
    is_enabled_gtm_object,
    normalize_allow_service,
    parse_sshd_include,
)


def context(schema_class: str, index: int = 0, translate: bool = False, name=None) -> FixupContext:
    return FixupContext(load_catalog().for_class(schema_class)[index], translate, name)


class TestHelpers:
    """Tests for fixup helpers."""

    @pytest.mark.parametrize("value,expected", [
        (None, "none"),
        ("", "none"),
        (["default"], "default"),
        (["tcp:22", "udp:53"], ["tcp:22", "udp:53"]),
        ("all", "all"),
    ])
    def test_normalize_allow_service(self, value, expected):
        """allowService is normalized to the declaration's spellings."""
        assert normalize_allow_service(value) == expected

    @pytest.mark.parametrize("value", ["none", "default", "all", ["default", "other"], None, ["default"]])
    def test_normalize_allow_service_idempotent(self, value):
        """Normalizing an already normalized value changes nothing."""
        once = normalize_allow_service(value)
        assert normalize_allow_service(once) == once

    def test_gtm_monitor_list(self):
        """Monitor rules split on ' and '."""
        assert gtm_monitor_list("/Common/http and /Common/https") == ["/Common/http", "/Common/https"]
        assert gtm_monitor_list("") == []
        assert gtm_monitor_list(["/Common/http"]) == ["/Common/http"]

    @pytest.mark.parametrize("obj,expected", [
        ({"enabled": True}, True),
        ({"disabled": True}, False),
        ({"enabled": "false"}, False),
        ({"disabled": "false"}, True),
        ({}, True),
    ])
    def test_is_enabled_gtm_object(self, obj, expected):
        """Enabled state is read from any of its encodings."""
        assert is_enabled_gtm_object(obj) is expected

    def test_parse_sshd_include(self):
        """Known sshd options are picked from include text."""
        parsed = parse_sshd_include(
            "Ciphers aes128-ctr,aes256-ctr\nMACs hmac-sha1\nLoginGraceTime 60\n"
            "MaxAuthTries 3\nMaxStartups 5\nProtocol 2\nBogus\n"
        )
        assert parsed == {
            "ciphers": ["aes128-ctr", "aes256-ctr"],
            "MACS": ["hmac-sha1"],
            "loginGraceTime": 60,
            "maxAuthTries": 3,
            "maxStartups": "5",
            "protocol": 2,
        }


class TestItemFixups:
    """Tests for collection item fixups."""

    def test_self_ip_allow_service_none(self):
        """A missing allowService means none."""
        patched = apply_fixup("SelfIp", Phase.ITEM, {"address": "10.0.0.1/24"}, context("SelfIp"))
        assert patched["allowService"] == "none"

    def test_self_ip_allow_service_default(self):
        """The single-element default list collapses to default."""
        patched = apply_fixup("SelfIp", Phase.ITEM, {"allowService": ["default"]}, context("SelfIp"))
        assert patched["allowService"] == "default"

    def test_mac_masquerade_traffic_group(self):
        """The traffic group is the item's own name."""
        patched = apply_fixup(
            "MAC_Masquerade", Phase.ITEM, {"mac": "02:00:00:00:00:01"},
            context("MAC_Masquerade", name="traffic-group-1"),
        )
        assert patched["trafficGroup"] == "traffic-group-1"

    def test_gslb_server(self):
        """GSLB servers get a monitor list and a boolean enabled."""
        patched = apply_fixup(
            "GSLBServer", Phase.ITEM,
            {"monitors": "/Common/http and /Common/https", "disabled": True},
            context("GSLBServer", translate=True),
        )
        assert patched["monitors"] == ["/Common/http", "/Common/https"]
        assert patched["enabled"] is False
        assert "disabled" not in patched

    def test_waf_setting_keyed_by_name(self):
        """WAF settings are keyed by their name."""
        patched = apply_fixup(
            "SecurityWaf", Phase.ITEM, {"name": "long_request_buffer_size", "value": "10000000"},
            context("SecurityWaf", name="long_request_buffer_size"),
        )
        assert patched == {"long_request_buffer_size": {"value": "10000000"}}

    def test_radius_servers(self):
        """RADIUS servers become primary/secondary."""
        ctx = context("Authentication", index=3)
        assert ctx.descriptor.path == "/tm/auth/radius-server"

        primary = apply_fixup(
            "Authentication", Phase.ITEM,
            {"name": "system_auth_name1", "server": "10.0.0.5", "port": 1812},
            ctx,
        )
        secondary = apply_fixup("Authentication", Phase.ITEM, {"name": "system_auth_name2", "server": "x"}, ctx)
        assert primary == {"primary": {"server": "10.0.0.5", "port": 1812}}
        assert secondary == {"secondary": {"server": "x"}}
        assert apply_fixup("Authentication", Phase.ITEM, {"name": "system_auth_name9"}, ctx) is None

    def test_no_fixup_registered(self):
        """Classes without a fixup are returned unchanged."""
        item = {"tag": 100}
        assert apply_fixup("VLAN", Phase.ITEM, item, context("VLAN")) is item


class TestRawFixups:
    """Tests for raw item fixups."""

    def test_route_local_only(self):
        """Routes in LOCAL_ONLY are flagged."""
        item = apply_fixup("Route", Phase.RAW, {"name": "r1", "partition": "LOCAL_ONLY"}, context("Route"))
        assert item["localOnly"] is True

    def test_gslb_monitor_type(self):
        """Monitor type comes from the kind."""
        item = apply_fixup(
            "GSLBMonitor", Phase.RAW, {"kind": "tm:gtm:monitor:https:httpsstate"}, context("GSLBMonitor"),
        )
        assert item["monitorType"] == "https"


class TestObjectFixups:
    """Tests for single-object fixups."""

    def test_authentication_source_type(self):
        """The auth source type becomes enabledSourceType."""
        patched = apply_fixup(
            "Authentication", Phase.OBJECT, {"type": "active-directory", "fallback": "false"},
            context("Authentication"),
        )
        assert patched == {"enabledSourceType": "activeDirectory", "fallback": "false"}

    def test_disk_application_data(self):
        """Captured disk sizes are integers."""
        patched = apply_fixup(
            "Disk", Phase.OBJECT, {"apiRawValues": {"applicationData": "50"}}, context("Disk"),
        )
        assert patched == {"applicationData": 50}

    def test_sshd_include(self):
        """sshd include text is expanded into options."""
        patched = apply_fixup(
            "SSHD", Phase.OBJECT, {"banner": "hi", "include": "MaxAuthTries 3"}, context("SSHD", translate=True),
        )
        assert patched == {"banner": "hi", "maxAuthTries": 3}

    def test_httpd(self):
        """HTTPD ciphers split and allow is normalized."""
        patched = apply_fixup(
            "HTTPD", Phase.OBJECT, {"sslCiphersuite": "A:B", "allow": ["All"]}, context("HTTPD"),
        )
        assert patched == {"sslCiphersuite": ["A", "B"], "allow": ["all"]}
        assert apply_fixup("HTTPD", Phase.OBJECT, {}, context("HTTPD"))["allow"] == "none"

    def test_syslog_servers_keyed_by_name(self):
        """Syslog remote servers become a name-keyed dict."""
        patched = apply_fixup(
            "SyslogRemoteServer", Phase.OBJECT,
            {"remoteServers": [{"name": "/Common/remotesyslog1", "host": "10.0.0.9", "remotePort": 514}]},
            context("SyslogRemoteServer"),
        )
        assert patched == {"remotesyslog1": {"name": "remotesyslog1", "host": "10.0.0.9", "remotePort": 514}}


class TestFinalizeFixups:
    """Tests for whole-class fixups."""

    def test_gslb_virtual_servers(self):
        """Virtual server destinations split into address and port."""
        servers = {
            "s1": {"virtualServers": [
                {"destination": "10.0.0.1:80", "monitors": "/Common/http", "enabled": True,
                 "addressTranslation": "none"},
                {"destination": "2001:db8::1.443", "monitors": "", "disabled": True},
            ]},
        }
        apply_fixup("GSLBServer", Phase.FINALIZE, servers, context("GSLBServer", translate=True))
        first, second = servers["s1"]["virtualServers"]
        assert first == {"address": "10.0.0.1", "port": 80, "monitors": ["/Common/http"], "enabled": True}
        assert second == {"address": "2001:db8::1", "port": 443, "monitors": [], "enabled": False}

    def test_prober_pool_members_sorted(self):
        """Prober pool members are ordered and get a boolean enabled."""
        pools = {"p1": {"members": [
            {"server": "b", "order": 1, "enabled": True},
            {"server": "a", "order": 0, "disabled": True},
        ]}}
        apply_fixup("GSLBProberPool", Phase.FINALIZE, pools, context("GSLBProberPool", translate=True))
        assert [m["server"] for m in pools["p1"]["members"]] == ["a", "b"]
        assert pools["p1"]["members"][0]["enabled"] is False

    def test_bgp_neighbors(self):
        """BGP neighbors and peer groups are renamed to their plural keys."""
        routers = {"r1": {"neighbor": [{"name": "10.0.0.2"}, {"name": "10.0.0.1"}], "peerGroup": None}}
        apply_fixup("RoutingBGP", Phase.FINALIZE, routers, context("RoutingBGP"))
        assert routers["r1"] == {
            "neighbors": [{"name": "10.0.0.1"}, {"name": "10.0.0.2"}],
            "peerGroups": [],
        }

    def test_firewall_rule_source(self):
        """Rule sources keep only their VLANs."""
        policies = {"p1": {"rules": [
            {"name": "r1", "source": {"vlans": ["/Common/v1"], "addresses": []}},
            {"name": "r2", "source": {"addresses": []}},
        ]}}
        apply_fixup("FirewallPolicy", Phase.FINALIZE, policies, context("FirewallPolicy"))
        assert policies["p1"]["rules"][0]["source"] == {"vlans": ["/Common/v1"]}
        assert policies["p1"]["rules"][1]["source"] == {}
