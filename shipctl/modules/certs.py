"""PKI for hosted control planes.

All material is PEM text stored on the cluster credential. Existing
certificates are kept as long as they load, chain to the current CA, cover
the required names and do not expire within ``RENEW_BEFORE``.
"""
import datetime
import hashlib
import ipaddress
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from shipctl.errors import ConfigurationError, CryptoError
from shipctl.models import ClusterRecord
from shipctl.utils.network import get_indexed_ip

logger = logging.getLogger("shipctl.certs")

KEY_SIZE = 2048
CA_VALIDITY = datetime.timedelta(days=3650)
CERT_VALIDITY = datetime.timedelta(days=365)
RENEW_BEFORE = datetime.timedelta(days=30)

APISERVER_CERT = "apiserver.crt"
APISERVER_KEY = "apiserver.key"
KUBELET_CLIENT_CERT = "apiserver-kubelet-client.crt"
KUBELET_CLIENT_KEY = "apiserver-kubelet-client.key"
FRONT_PROXY_CA_CERT = "front-proxy-ca.crt"
FRONT_PROXY_CA_KEY = "front-proxy-ca.key"
FRONT_PROXY_CLIENT_CERT = "front-proxy-client.crt"
FRONT_PROXY_CLIENT_KEY = "front-proxy-client.key"
SA_KEY = "sa.key"
SA_PUB = "sa.pub"


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _new_key() -> rsa.RSAPrivateKey:
    try:
        return rsa.generate_private_key(public_exponent=65537, key_size=KEY_SIZE)
    except (ValueError, OSError) as e:
        raise CryptoError(f"failed to generate RSA key: {e}") from e


def _key_pem(key) -> str:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


def _cert_pem(cert: x509.Certificate) -> str:
    return cert.public_bytes(serialization.Encoding.PEM).decode()


def load_cert(pem: str) -> x509.Certificate:
    try:
        return x509.load_pem_x509_certificate(pem.encode())
    except ValueError as e:
        raise CryptoError(f"invalid certificate PEM: {e}") from e


def load_key(pem: str):
    try:
        return serialization.load_pem_private_key(pem.encode(), password=None)
    except (ValueError, TypeError) as e:
        raise CryptoError(f"invalid private key PEM: {e}") from e


def _name(common_name: str, organizations: Iterable[str] = ()) -> x509.Name:
    attrs = [x509.NameAttribute(NameOID.ORGANIZATION_NAME, org) for org in organizations]
    attrs.append(x509.NameAttribute(NameOID.COMMON_NAME, common_name))
    return x509.Name(attrs)


def generate_ca(common_name: str) -> Tuple[str, str]:
    """Create a self-signed CA.

    Returns:
        (certificate PEM, private key PEM)
    """
    key = _new_key()
    now = _now()
    subject = _name(common_name)
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + CA_VALIDITY)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True, content_commitment=False, key_encipherment=True,
                data_encipherment=False, key_agreement=False, key_cert_sign=True,
                crl_sign=False, encipher_only=False, decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .sign(key, hashes.SHA256())
    )
    return _cert_pem(cert), _key_pem(key)


def issue_cert(ca_cert_pem: str, ca_key_pem: str, common_name: str,
               organizations: Iterable[str] = (), dns_names: Iterable[str] = (),
               ip_addresses: Iterable[str] = (), server: bool = False,
               client: bool = True) -> Tuple[str, str]:
    """Issue a leaf certificate signed by the given CA.

    Args:
        ca_cert_pem: Issuing CA certificate
        ca_key_pem: Issuing CA key
        common_name: Subject CN (the user name for client certificates)
        organizations: Subject O entries (the groups for client certificates)
        dns_names: DNS subject alternative names
        ip_addresses: IP subject alternative names
        server: Add serverAuth usage
        client: Add clientAuth usage

    Returns:
        (certificate PEM, private key PEM)
    """
    ca_cert = load_cert(ca_cert_pem)
    ca_key = load_key(ca_key_pem)
    key = _new_key()
    now = _now()

    usages = []
    if server:
        usages.append(ExtendedKeyUsageOID.SERVER_AUTH)
    if client:
        usages.append(ExtendedKeyUsageOID.CLIENT_AUTH)

    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(common_name, organizations))
        .issuer_name(ca_cert.subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + CERT_VALIDITY)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True, content_commitment=False, key_encipherment=True,
                data_encipherment=False, key_agreement=False, key_cert_sign=False,
                crl_sign=False, encipher_only=False, decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.ExtendedKeyUsage(usages), critical=False)
    )
    sans: List[x509.GeneralName] = [x509.DNSName(n) for n in dns_names]
    sans += [x509.IPAddress(ipaddress.ip_address(ip)) for ip in ip_addresses]
    if sans:
        builder = builder.add_extension(x509.SubjectAlternativeName(sans), critical=False)
    cert = builder.sign(ca_key, hashes.SHA256())
    return _cert_pem(cert), _key_pem(key)


def generate_sa_keypair() -> Tuple[str, str]:
    """Service account signing key pair as (private PEM, public PEM)."""
    key = _new_key()
    public = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return _key_pem(key), public


def ca_cert_hash(ca_cert_pem: str) -> str:
    """``sha256:<hex>`` pin of the CA public key, as used for discovery on join."""
    cert = load_cert(ca_cert_pem)
    spki = cert.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return "sha256:" + hashlib.sha256(spki).hexdigest()


def cert_is_valid(cert_pem: Optional[str], ca_cert_pem: Optional[str] = None,
                  dns_names: Iterable[str] = (), ip_addresses: Iterable[str] = ()) -> bool:
    """Whether an existing certificate can be kept."""
    if not cert_pem:
        return False
    try:
        cert = load_cert(cert_pem)
        if cert.not_valid_after_utc - _now() < RENEW_BEFORE:
            return False
        if ca_cert_pem:
            ca = load_cert(ca_cert_pem)
            if cert.issuer != ca.subject:
                return False
            ca.public_key().verify(
                cert.signature, cert.tbs_certificate_bytes,
                padding.PKCS1v15(), cert.signature_hash_algorithm,
            )
        wanted_dns = set(dns_names)
        wanted_ips = {ipaddress.ip_address(ip) for ip in ip_addresses}
        if wanted_dns or wanted_ips:
            san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
            if not wanted_dns <= set(san.get_values_for_type(x509.DNSName)):
                return False
            if not wanted_ips <= set(san.get_values_for_type(x509.IPAddress)):
                return False
    except (CryptoError, InvalidSignature, x509.ExtensionNotFound):
        return False
    return True


def apiserver_sans(record: ClusterRecord) -> Tuple[List[str], List[str]]:
    """DNS names and IPs the API server certificate must cover."""
    if not record.status.service_cidr:
        raise ConfigurationError(f"cluster {record.name} has no service CIDR; complete it first")
    dns = [
        "kubernetes",
        "kubernetes.default",
        "kubernetes.default.svc",
        "kubernetes.default.svc.cluster.local",
        "kube-apiserver",
        f"kube-apiserver.{record.namespace}",
        f"kube-apiserver.{record.namespace}.svc",
        "localhost",
    ]
    ips = [get_indexed_ip(record.status.service_cidr, 1), "127.0.0.1"]
    hosts = [a.host for a in record.status.addresses] + list(record.spec.public_alternative_names)
    for host in hosts:
        try:
            ipaddress.ip_address(host)
        except ValueError:
            bucket = dns
        else:
            bucket = ips
        if host not in bucket:
            bucket.append(host)
    return dns, ips


def ensure_certs(record: ClusterRecord, force: bool = False) -> Dict[str, bool]:
    """Issue missing or stale control plane certificates on ``record``.

    Args:
        record: Completed cluster record
        force: Reissue everything, including the CA

    Returns:
        Map of certificate name to whether it was (re)issued
    """
    credential = record.credential
    issued: Dict[str, bool] = {}

    ca_ok = not force and bool(credential.ca_key) and cert_is_valid(credential.ca_cert)
    if not ca_ok:
        credential.ca_cert, credential.ca_key = generate_ca("kubernetes")
        logger.info(f"🔐 Issued cluster CA for {record.name}")
    issued["ca.crt"] = not ca_ok
    ca_cert, ca_key = credential.ca_cert, credential.ca_key
    data = credential.certs_data

    def ensure_leaf(cert_name, key_name, ca_pair, **kwargs):
        dns = kwargs.get("dns_names", ())
        ips = kwargs.get("ip_addresses", ())
        keep = (not force and ca_ok and key_name in data
                and cert_is_valid(data.get(cert_name), ca_pair[0], dns, ips))
        if not keep:
            data[cert_name], data[key_name] = issue_cert(ca_pair[0], ca_pair[1], **kwargs)
            logger.debug(f"Issued {cert_name} for {record.name}")
        issued[cert_name] = not keep

    dns, ips = apiserver_sans(record)
    ensure_leaf(APISERVER_CERT, APISERVER_KEY, (ca_cert, ca_key), common_name="kube-apiserver",
                dns_names=dns, ip_addresses=ips, server=True, client=False)
    ensure_leaf(KUBELET_CLIENT_CERT, KUBELET_CLIENT_KEY, (ca_cert, ca_key),
                common_name="kube-apiserver-kubelet-client", organizations=["system:masters"])

    proxy_ok = (not force and FRONT_PROXY_CA_KEY in data
                and cert_is_valid(data.get(FRONT_PROXY_CA_CERT)))
    if not proxy_ok:
        data[FRONT_PROXY_CA_CERT], data[FRONT_PROXY_CA_KEY] = generate_ca("front-proxy-ca")
    issued[FRONT_PROXY_CA_CERT] = not proxy_ok
    proxy_pair = (data[FRONT_PROXY_CA_CERT], data[FRONT_PROXY_CA_KEY])
    keep_client = proxy_ok and cert_is_valid(data.get(FRONT_PROXY_CLIENT_CERT), proxy_pair[0])
    if not keep_client:
        data[FRONT_PROXY_CLIENT_CERT], data[FRONT_PROXY_CLIENT_KEY] = issue_cert(
            proxy_pair[0], proxy_pair[1], common_name="front-proxy-client")
    issued[FRONT_PROXY_CLIENT_CERT] = not keep_client

    sa_ok = not force and SA_KEY in data and SA_PUB in data
    if not sa_ok:
        data[SA_KEY], data[SA_PUB] = generate_sa_keypair()
    issued[SA_KEY] = not sa_ok

    reissued = [name for name, fresh in issued.items() if fresh]
    if reissued:
        logger.info(f"🔐 Certificates issued for {record.name}: {', '.join(reissued)}")
    return issued
