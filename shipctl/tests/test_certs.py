import ipaddress

import pytest
from cryptography import x509

from shipctl.errors import ConfigurationError, CryptoError
from shipctl.modules.certs import (
    APISERVER_CERT,
    SA_KEY,
    apiserver_sans,
    ca_cert_hash,
    cert_is_valid,
    ensure_certs,
    generate_ca,
    issue_cert,
    load_cert,
)


def test_second_pass_issues_nothing(issued_record):
    before = dict(issued_record.credential.certs_data)
    issued = ensure_certs(issued_record)
    assert not any(issued.values())
    assert issued_record.credential.certs_data == before


def test_force_reissues_everything(issued_record):
    old_ca = issued_record.credential.ca_cert
    issued = ensure_certs(issued_record, force=True)
    assert all(issued.values())
    assert issued_record.credential.ca_cert != old_ca


def test_new_address_reissues_apiserver_cert(issued_record):
    issued_record.spec.public_alternative_names = ["api.demo.example.com"]
    issued = ensure_certs(issued_record)
    assert issued[APISERVER_CERT]
    assert not issued["ca.crt"]
    assert not issued[SA_KEY]
    cert = load_cert(issued_record.credential.certs_data[APISERVER_CERT])
    san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    assert "api.demo.example.com" in san.get_values_for_type(x509.DNSName)


def test_apiserver_sans_cover_service_ip_and_machines(completed_record):
    dns, ips = apiserver_sans(completed_record)
    assert "kubernetes.default.svc" in dns
    assert "kube-apiserver.demo-ns" in dns
    assert ips[0] == "10.0.240.1"
    assert {"10.0.0.11", "10.0.0.12", "10.0.0.13"} <= set(ips)


def test_apiserver_sans_need_completed_record(record):
    with pytest.raises(ConfigurationError):
        apiserver_sans(record)


def test_cert_from_other_ca_is_invalid():
    ca_cert, ca_key = generate_ca("one")
    other_cert, _ = generate_ca("two")
    leaf, _ = issue_cert(ca_cert, ca_key, "leaf", ip_addresses=["10.0.0.1"])
    assert cert_is_valid(leaf, ca_cert, ip_addresses=["10.0.0.1"])
    assert not cert_is_valid(leaf, other_cert)
    assert not cert_is_valid(leaf, ca_cert, ip_addresses=["10.0.0.2"])
    assert not cert_is_valid(None)


def test_issued_cert_carries_groups_and_ips():
    ca_cert, ca_key = generate_ca("kubernetes")
    leaf, _ = issue_cert(ca_cert, ca_key, "kubernetes-admin", organizations=["system:masters"],
                         ip_addresses=["10.0.0.1"])
    cert = load_cert(leaf)
    assert cert.subject.get_attributes_for_oid(x509.NameOID.ORGANIZATION_NAME)[0].value == "system:masters"
    san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    assert san.get_values_for_type(x509.IPAddress) == [ipaddress.ip_address("10.0.0.1")]


def test_ca_cert_hash_format(issued_record):
    digest = ca_cert_hash(issued_record.credential.ca_cert)
    assert digest.startswith("sha256:")
    assert len(digest) == len("sha256:") + 64


def test_garbage_pem():
    with pytest.raises(CryptoError):
        load_cert("not a certificate")
