"""Direct TLS CA-path and client-certificate checks."""

from conftest import FakeConnector, make_cert, to_pem

from radius_diagnostics.analyzers.tls_reachability import TLSReachabilityChecker
from radius_diagnostics.core.config import DiagnosticsConfig, TLSClientCertificate, TLSClientCertSet
from radius_diagnostics.core.models import CertProblem, ReturnCode
from radius_diagnostics.core.tools import TLSConnectOutput

HOST = "192.0.2.10:2083"
POLICY_OID = "1.3.6.1.4.1.25178.3.1.1"


def output(text, returncode=0):
    return TLSConnectOutput(lines=text.splitlines(), returncode=returncode, time_millisec=12.0)


def client_config(*sets):
    return DiagnosticsConfig(tls_client_cert_dir="/etc/certs", tls_client_certs=list(sets))


def cert(status, expected):
    return TLSClientCertificate(status=status, expected=expected,
                                public=f"{status.lower()}.pem", private=f"{status.lower()}.key")


def test_ca_path_verified_connection_extracts_certificate(keys):
    server = make_cert("radsec.example.org", keys[0], issuer=make_cert("CA", keys[1], ca=True),
                       issuer_key=keys[1], san_dns=["radsec.example.org"],
                       cdp=["http://crl.example.org/ca.crl"], policies=[POLICY_OID])
    babble = ("CONNECTED(00000003)\ndepth=1 CN = CA\nverify return:1\n"
              "depth=0 CN = radsec.example.org\nverify return:1\n---\nServer certificate\n"
              + to_pem(server) + "subject=CN = radsec.example.org\n")
    config = DiagnosticsConfig(tls_acceptable_oids={'eduroam IdP': POLICY_OID})
    result = TLSReachabilityChecker(FakeConnector([output(babble)]), config).ca_path_check(HOST)

    assert result.return_code is ReturnCode.OK
    assert result.status is ReturnCode.OK
    assert result.oddity is None
    assert result.certificate.subject == "CN=radsec.example.org"
    assert result.certificate.subject_alt_name == "DNS:radsec.example.org"
    assert result.certificate.policy_oids == [f"{POLICY_OID} (eduroam IdP)"]
    assert result.certificate.crl_distribution_points == ["URI:http://crl.example.org/ca.crl"]


def test_ca_path_connection_refused():
    connector = FakeConnector([output("140:error:connect: Connection refused\nconnect:errno=111", 1)])
    result = TLSReachabilityChecker(connector, DiagnosticsConfig()).ca_path_check(HOST)
    assert result.return_code is ReturnCode.INVALID
    assert result.status is ReturnCode.CONNECTION_REFUSED


def test_ca_path_unknown_ca():
    babble = "depth=0 CN = radsec.example.org\nverify error:num=19:self-signed certificate in certificate chain\n"
    result = TLSReachabilityChecker(FakeConnector([output(babble, 1)]), DiagnosticsConfig()).ca_path_check(HOST)
    assert result.return_code is ReturnCode.INVALID
    assert result.oddity is CertProblem.UNKNOWN_CA


def test_client_checks_skipped_or_invalid():
    checker = TLSReachabilityChecker(FakeConnector([]), DiagnosticsConfig())
    assert checker.client_side_check(HOST).return_code is ReturnCode.SKIPPED

    checker = TLSReachabilityChecker(FakeConnector([]), client_config(
        TLSClientCertSet("eduroam", "ACCREDITED", certificates=[cert("CORRECT", "PASS")])))
    assert checker.client_side_check("[2001:db8::1]:2083").return_code is ReturnCode.INVALID


def test_client_certificates_match_expectations():
    cert_set = TLSClientCertSet("eduroam", "ACCREDITED", "eduroam CA", certificates=[
        cert("CORRECT", "PASS"),
        cert("EXPIRED", "FAIL"),
        cert("REVOKED", "FAIL"),
    ])
    connector = FakeConnector([
        output("CONNECTED\nverify return:1", 0),
        output("SSL routines:ssl3_read_bytes:sslv3 alert certificate expired", 1),
        output("CONNECTED\nverify return:1", 0),
    ])
    result = TLSReachabilityChecker(connector, client_config(cert_set)).client_side_check(HOST)

    assert result.return_code is ReturnCode.OK
    correct, expired, revoked = result.sets[0].certificates
    assert correct.connected and correct.oddity is None
    assert not expired.connected and expired.comment == "certificate expired"
    assert expired.oddity is None
    assert revoked.connected and revoked.oddity is CertProblem.WRONGLY_ACCEPTED
    assert connector.calls[0] == (HOST, ("-cert", "/etc/certs/correct.pem", "-key", "/etc/certs/correct.key"))


def test_rejected_accredited_correct_certificate_stops_the_set():
    cert_set = TLSClientCertSet("eduroam", "ACCREDITED", certificates=[
        cert("CORRECT", "PASS"),
        cert("EXPIRED", "FAIL"),
    ])
    connector = FakeConnector([output("SSL alert number 46", 1)])
    result = TLSReachabilityChecker(connector, client_config(cert_set)).client_side_check(HOST)

    outcomes = result.sets[0].certificates
    assert len(outcomes) == 1
    assert outcomes[0].oddity is CertProblem.NOT_ACCEPTED
    assert outcomes[0].final_error
    assert outcomes[0].comment == "bad policy"


def test_unknown_ca_on_correct_certificate_expected_to_fail_is_final():
    other_ca = TLSClientCertSet("other", "NONACCREDITED", certificates=[cert("WRONGPOLICY", "FAIL")])
    accredited = TLSClientCertSet("eduroam", "ACCREDITED", certificates=[
        cert("CORRECT", "FAIL"),
        cert("REVOKED", "FAIL"),
    ])
    connector = FakeConnector([
        output("tlsv1 alert unknown ca", 1),
        output("tlsv1 alert unknown ca", 1),
    ])
    result = TLSReachabilityChecker(connector, client_config(other_ca, accredited)).client_side_check(HOST)

    first, second = result.sets
    assert first.certificates[0].reason is CertProblem.UNKNOWN_CA
    assert not first.certificates[0].final_error
    assert len(second.certificates) == 1
    assert second.certificates[0].final_error
    assert second.certificates[0].comment == "unknown authority"


def test_connection_refused_for_client_certificate():
    cert_set = TLSClientCertSet("eduroam", "NONACCREDITED", certificates=[cert("CORRECT", "PASS")])
    connector = FakeConnector([output("connect: Connection refused", 1)])
    outcome = TLSReachabilityChecker(connector, client_config(cert_set)).client_side_check(HOST).sets[0].certificates[0]
    assert outcome.return_code is ReturnCode.CONNECTION_REFUSED
    assert outcome.oddity is CertProblem.NOT_ACCEPTED
    assert not outcome.final_error
