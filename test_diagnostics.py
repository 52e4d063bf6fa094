"""End-to-end orchestration with fake tools, reporting, configuration and CLI."""

import json

import pytest
from click.testing import CliRunner
from conftest import (
    OK_VERDICT,
    FakeConnector,
    FakeFetcher,
    FakeRunner,
    FakeValidator,
    make_cert,
    to_pem,
)

from radius_diagnostics import RADIUSDiagnostics
from radius_diagnostics.analyzers.probe_driver import CONFIG_FILE, calling_station_mac
from radius_diagnostics.cli.main import cli
from radius_diagnostics.core.config import DiagnosticsConfig, ProfileView, load_config, load_profile
from radius_diagnostics.core.eap_types import EAPType
from radius_diagnostics.core.models import (
    CertProblem,
    ConfigurationError,
    NameMatch,
    ProbeTarget,
    ReturnCode,
    ToolingError,
    TrustVerdict,
)
from radius_diagnostics.core.tools import TLSConnectOutput


def radius_line(code, name):
    return f"RADIUS message: code={code} ({name}) identifier=0 length=90"


REQUEST = radius_line(1, "Access-Request")
CHALLENGE = radius_line(11, "Access-Challenge")

OK_TRACE = [REQUEST, CHALLENGE, REQUEST, CHALLENGE, REQUEST, radius_line(2, "Access-Accept"), "SUCCESS"]
REJECT_WITHOUT_METHOD = [
    REQUEST, CHALLENGE,
    "CTRL-EVENT-EAP-PROPOSED-METHOD vendor=0 method=25 -> NAK",
    REQUEST, radius_line(3, "Access-Reject"),
]

REJECT_AFTER_METHOD = [
    REQUEST, CHALLENGE,
    "CTRL-EVENT-EAP-PROPOSED-METHOD vendor=0 method=25",
    REQUEST, CHALLENGE, REQUEST, radius_line(3, "Access-Reject"),
]


@pytest.fixture
def config():
    return DiagnosticsConfig(udp_hosts=[
        ProbeTarget("192.0.2.1", "testing123", index=0),
        ProbeTarget("192.0.2.2", "testing456", index=1),
    ])


@pytest.fixture
def profile(pki):
    return ProfileView(
        realm="example.org",
        ca_certificates=[to_pem(pki['root'])],
        server_names=["radius.example.org"],
    )


def diagnostics_for(config, runner, profile=None, validator=None, connector=None):
    return RADIUSDiagnostics(
        "example.org",
        config=config,
        profile=profile,
        runner=runner,
        validator=validator or FakeValidator({}),
        connector=connector or FakeConnector([]),
        crl_fetcher=FakeFetcher(),
    )


def test_unconfigured_probe(config):
    runner = FakeRunner(OK_TRACE)
    result = diagnostics_for(config, runner).udp_login(7, EAPType.PEAP_MSCHAPV2, "alice@example.org", "pw")
    assert result.return_code is ReturnCode.NOT_CONFIGURED
    assert runner.calls == []


def test_no_derivable_outer_realm(config):
    runner = FakeRunner(OK_TRACE)
    result = diagnostics_for(config, runner).udp_login(0, EAPType.PEAP_MSCHAPV2, "alice", "pw")
    assert result.return_code is ReturnCode.INCOMPLETE_DATA
    assert runner.calls == []


def test_tls_without_client_certificate(config):
    runner = FakeRunner(OK_TRACE)
    result = diagnostics_for(config, runner).udp_login(0, EAPType.TLS, "alice@example.org", "pw")
    assert result.return_code is ReturnCode.NOT_CONFIGURED


def test_sim_cannot_be_probed(config):
    runner = FakeRunner(OK_TRACE)
    result = diagnostics_for(config, runner).udp_login(0, EAPType.SIM, "alice@example.org", "pw")
    assert result.return_code is ReturnCode.NOT_CONFIGURED
    assert runner.calls == []


def test_successful_login_with_profile(config, profile, pki):
    chain = to_pem(pki['server']) + to_pem(pki['intermediate'])
    runner = FakeRunner(OK_TRACE, chain_pem=chain)
    validator = FakeValidator({'root-ca-allcerts': OK_VERDICT, 'root-ca-eaponly': OK_VERDICT})
    diagnostics = diagnostics_for(config, runner, profile=profile, validator=validator)

    result = diagnostics.udp_login(1, EAPType.PEAP_MSCHAPV2, "alice@example.org", "s3cret",
                                   outer_user="@example.org")

    assert result.return_code is ReturnCode.OK
    assert result.probe_index == 1
    assert result.packetflow == [1, 11, 1, 11, 1, 2]
    assert result.packetflow_sane is True
    assert result.trust_verdict is TrustVerdict.PASSED
    assert result.name_match is NameMatch.TOTAL
    assert result.incoming_server_names == ["radius.example.org"]
    assert [c.role.value for c in result.certificates] == ["server", "intermediate"]
    assert CertProblem.SERVER_NAME_MISMATCH not in result.oddities
    assert CertProblem.TRUST_ROOT_NOT_REACHED not in result.oddities

    call = runner.calls[0]
    assert call['target'].ip == "192.0.2.2"
    assert call['mac'] == calling_station_mac(1) == "22:44:66:CA:20:01"
    assert len(call['attributes']) == 7
    assert call['files'] == [CONFIG_FILE]
    assert 'anonymous_identity="alice@example.org"' in call['config']
    assert 'password="s3cret"' in call['config']
    assert [c['store'] for c in validator.calls] == ['root-ca-allcerts', 'root-ca-eaponly']
    assert diagnostics.udp_results[1] is result


def test_reject_after_acknowledged_method_still_analyzes_certificates(config, profile, pki):
    chain = to_pem(pki['server']) + to_pem(pki['intermediate'])
    validator = FakeValidator({'root-ca-allcerts': OK_VERDICT, 'root-ca-eaponly': OK_VERDICT})
    diagnostics = diagnostics_for(config, FakeRunner(REJECT_AFTER_METHOD, chain_pem=chain),
                                  profile=profile, validator=validator)

    result = diagnostics.udp_login(0, EAPType.PEAP_MSCHAPV2, "alice@example.org", "wrong")

    assert result.return_code is ReturnCode.CONVERSATION_REJECT
    assert result.eap_method_acknowledged is True
    assert len(result.certificates) == 2
    assert result.trust_verdict is TrustVerdict.PASSED
    assert result.name_match is NameMatch.TOTAL
    assert CertProblem.NO_COMMON_EAP_METHOD not in result.oddities


def test_calling_station_mac_stays_a_valid_mac():
    assert calling_station_mac(0) == "22:44:66:CA:20:00"
    assert calling_station_mac(10) == "22:44:66:CA:20:0A"
    assert calling_station_mac(255) == "22:44:66:CA:20:FF"
    assert calling_station_mac(300) == "22:44:66:CA:20:2C"


def test_reachability_uses_throwaway_credentials(config, tmp_path):
    cert_file = tmp_path / "reach.p12"
    cert_file.write_bytes(b"pkcs12 blob")
    config.reachability_client_cert = str(cert_file)
    runner = FakeRunner(REJECT_WITHOUT_METHOD)
    diagnostics = diagnostics_for(config, runner)

    result = diagnostics.udp_reachability(0, operator_name=False, fragment=False)

    call = runner.calls[0]
    assert call['attributes'] == []
    assert call['files'] == ["client.p12", CONFIG_FILE]
    assert 'identity="cat-connectivity-test@example.org"' in call['config']
    assert "eap=PEAP TTLS TLS" in call['config']
    assert result.return_code is ReturnCode.CONVERSATION_REJECT
    assert result.eap_method_acknowledged is False
    assert CertProblem.NO_COMMON_EAP_METHOD in result.oddities
    assert result.certificates == []


def test_pwd_skips_certificate_analysis(config, pki):
    runner = FakeRunner(OK_TRACE, chain_pem=to_pem(pki['server']))
    result = diagnostics_for(config, runner).udp_login(0, EAPType.PWD, "alice@example.org", "pw")
    assert result.return_code is ReturnCode.OK
    assert result.certificates == []
    assert len(result.oddities) == 0


def test_without_profile_only_chain_oddities_are_reported(config, keys):
    server = make_cert("radius.example.org", keys[0], issuer=make_cert("CA", keys[1], ca=True),
                       issuer_key=keys[1], server_auth=False)
    runner = FakeRunner(OK_TRACE, chain_pem=to_pem(server))
    result = diagnostics_for(config, runner).udp_login(0, EAPType.TTLS_PAP, "alice@example.org", "pw")
    assert CertProblem.NO_TLS_WEBSERVER_OID in result.oddities
    assert result.trust_verdict is TrustVerdict.NOT_RUN
    assert result.name_match is None


def test_empty_trace_is_a_tooling_fault(config):
    diagnostics = diagnostics_for(config, FakeRunner([]))
    with pytest.raises(ToolingError):
        diagnostics.udp_login(0, EAPType.PEAP_MSCHAPV2, "alice@example.org", "pw")


def test_reachability_batch_logs_tooling_faults(config, tmp_path):
    cert_file = tmp_path / "reach.p12"
    cert_file.write_bytes(b"blob")
    config.reachability_client_cert = str(cert_file)

    ok = diagnostics_for(config, FakeRunner(OK_TRACE)).run_reachability_batch(max_workers=2)
    assert sorted(ok) == [0, 1]
    assert all(r.return_code is ReturnCode.OK for r in ok.values())

    failed = diagnostics_for(config, FakeRunner([])).run_reachability_batch([0])
    assert failed == {}


def test_reports_in_all_formats(config, tmp_path):
    connector = FakeConnector([TLSConnectOutput(["connect: Connection refused"], 1, 3.0)])
    diagnostics = diagnostics_for(config, FakeRunner(REJECT_WITHOUT_METHOD), connector=connector)
    diagnostics.udp_login(0, EAPType.PEAP_MSCHAPV2, "alice@example.org", "pw")
    diagnostics.ca_path_check("192.0.2.9:2083")

    data = json.loads(diagnostics.generate_report('json'))
    assert data['realm'] == "example.org"
    assert data['udp']['0']['return_code'] == "CONVERSATION_REJECT"
    assert data['udp']['0']['cert_oddities'][0]['code'] == "NO_COMMON_EAP_METHOD"
    assert data['tls_ca']['192.0.2.9:2083']['status'] == "CONNECTION_REFUSED"

    markdown = diagnostics.generate_report('markdown')
    assert "### Probe 0: CONVERSATION_REJECT" in markdown
    assert "| critical | NO_COMMON_EAP_METHOD |" in markdown

    text = diagnostics.generate_report('text')
    assert "EAP login probes" in text
    assert "CRITICAL: NO_COMMON_EAP_METHOD" in text

    errors = diagnostics.list_errors()
    assert errors[0]['code'] == "NO_COMMON_EAP_METHOD"
    assert errors[0]['probe_index'] == 0


def test_tls_client_checks_are_recorded(config):
    diagnostics = diagnostics_for(config, FakeRunner([]))
    result = diagnostics.tls_clients_side_check("192.0.2.9:2083")
    assert result.return_code is ReturnCode.SKIPPED
    assert diagnostics.collect_results()['tls_clients']["192.0.2.9:2083"]['return_code'] == "SKIPPED"


def test_load_config_from_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "eapol_test_path: /opt/eapol_test\n"
        "udp_hosts:\n"
        "  - {ip: 192.0.2.1, secret: testing123}\n"
        "  - {ip: 192.0.2.2, secret: other, timeout: 5}\n"
        "tls_client_certs:\n"
        "  - name: eduroam\n"
        "    status: ACCREDITED\n"
        "    certificates:\n"
        "      - {status: CORRECT, expected: PASS, public: c.pem, private: c.key}\n"
    )
    config = load_config(str(path))
    assert config.eapol_test_path == "/opt/eapol_test"
    assert config.get_target(1) == ProbeTarget("192.0.2.2", "other", timeout=5, index=1)
    assert config.get_target(2) is None
    assert config.tls_client_certs[0].certificates[0].expected == "PASS"


def test_malformed_config_is_rejected(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({'udp_hosts': [{'ip': "192.0.2.1"}]}))
    with pytest.raises(ConfigurationError):
        load_config(str(path))

    path.write_text("[1, 2]")
    with pytest.raises(ConfigurationError):
        load_config(str(path))


def test_load_profile_reads_ca_files(tmp_path, pki):
    (tmp_path / "root.pem").write_text(to_pem(pki['root']))
    path = tmp_path / "profile.yaml"
    path.write_text("realm: example.org\nca_files: [root.pem]\nserver_names: [radius.example.org]\n")
    profile = load_profile(str(path))
    assert profile.realm == "example.org"
    assert profile.ca_certificates == [to_pem(pki['root'])]


def test_cli_lists_eap_types():
    result = CliRunner().invoke(cli, ['list-eap-types'])
    assert result.exit_code == 0
    assert "PEAP-MSCHAPv2" in result.output


def test_cli_rejects_unknown_eap_type():
    result = CliRunner().invoke(cli, ['login', '0', '--eap-type', 'EAP-FOO', '--user', 'a@b.org',
                                      '--password', 'x'])
    assert result.exit_code != 0
    assert "Unknown EAP type" in result.output
