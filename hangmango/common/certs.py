'''
Credential bootstrap for both roles.

The server keeps a small private authority on disk: a self-signed root, a leaf
certificate for the loopback address signed by that root, the leaf's signing
key and a separate RSA key used for the asymmetric phase of the handshake.
Anything missing is generated and persisted on first start.

The client ships with a copy of the leaf certificate. Its public key is the
only thing the client trusts to vouch for the server before a session key exists.
'''
import datetime, ipaddress, logging, os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from hangmango.common.config import (CA_CERT_FILE, CA_KEY_FILE, ENCRYPTION_KEY_FILE,
                                     LEAF_CERT_FILE, LEAF_KEY_FILE)
from hangmango.common.crypto import rsa_generate, rsa_load_private_pem, rsa_private_pem
from hangmango.common.errors import TrustBootstrapFailure

logger = logging.getLogger(__name__)

VALIDITY = datetime.timedelta(days=3650)
LOOPBACK = (ipaddress.ip_address("127.0.0.1"), ipaddress.ip_address("::1"))


@dataclass(frozen=True)
class Credentials:
    '''
    Process-wide key material, read-only after startup.
        - private_key: our RSA key for the asymmetric phase (its public half is sent to the peer)
        - signing_key: leaf key used to sign handshake envelopes (server only)
        - chain: leaf certificate first, then the authority (server), or just the pinned leaf (client)
        - peer_verify_key: key that must have signed every pre-session envelope (client only)
    '''
    private_key: rsa.RSAPrivateKey
    signing_key: Optional[rsa.RSAPrivateKey] = None
    chain: Tuple[x509.Certificate, ...] = ()
    peer_verify_key: Optional[rsa.RSAPublicKey] = None

    @property
    def public_key(self) -> rsa.RSAPublicKey:
        return self.private_key.public_key()


def fingerprint(cert: x509.Certificate) -> str:
    '''Hex SHA-256 over the DER encoding of the certificate.'''
    return cert.fingerprint(hashes.SHA256()).hex()

def _normalise_fingerprint(value: str) -> str:
    return value.replace(":", "").strip().lower()

def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)

def _name(common_name: str) -> x509.Name:
    return x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "AU"),
        x509.NameAttribute(NameOID.STATE_OR_PROVINCE_NAME, "ACT"),
        x509.NameAttribute(NameOID.LOCALITY_NAME, "Canberra"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Hangmango"),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])

def _read(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise TrustBootstrapFailure(f"cannot read {path}: {exc}") from exc

def _write(path: Path, data: bytes, private: bool = False) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        if private:
            os.chmod(path, 0o600)
    except OSError as exc:
        raise TrustBootstrapFailure(f"cannot write {path}: {exc}") from exc

def _load_key(path: Path) -> rsa.RSAPrivateKey:
    try:
        return rsa_load_private_pem(_read(path))
    except (ValueError, TypeError) as exc:
        raise TrustBootstrapFailure(f"{path} is not an unencrypted RSA private key: {exc}") from exc

def _load_cert(path: Path) -> x509.Certificate:
    try:
        return x509.load_pem_x509_certificate(_read(path))
    except ValueError as exc:
        raise TrustBootstrapFailure(f"{path} is not a PEM certificate: {exc}") from exc

def _cert_pem(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)

def _existing_pair(cert_path: Path, key_path: Path) -> bool:
    '''True if both files exist, False if neither does; a half-written pair is an error.'''
    have_cert, have_key = cert_path.is_file(), key_path.is_file()
    if have_cert != have_key:
        missing = key_path if have_cert else cert_path
        raise TrustBootstrapFailure(f"{missing} is missing but its counterpart exists; "
                                    "remove both to regenerate")
    return have_cert


def create_authority() -> Tuple[x509.Certificate, rsa.RSAPrivateKey]:
    '''Self-signed root, valid for ten years, allowed to sign certificates.'''
    key, pub = rsa_generate()
    name = _name("Hangmango Root Authority")
    now = _now()
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(pub)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + VALIDITY)
        .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
        .add_extension(x509.KeyUsage(digital_signature=True, content_commitment=False,
                                     key_encipherment=False, data_encipherment=False,
                                     key_agreement=False, key_cert_sign=True, crl_sign=True,
                                     encipher_only=False, decipher_only=False), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(pub), critical=False)
        .sign(key, hashes.SHA256())
    )
    return cert, key

def create_leaf(ca_cert: x509.Certificate,
                ca_key: rsa.RSAPrivateKey) -> Tuple[x509.Certificate, rsa.RSAPrivateKey]:
    '''Leaf for the loopback addresses, signed by the authority; this is what clients pin.'''
    key, pub = rsa_generate()
    now = _now()
    san = [x509.IPAddress(ip) for ip in LOOPBACK] + [x509.DNSName("localhost")]
    cert = (
        x509.CertificateBuilder()
        .subject_name(_name("127.0.0.1"))
        .issuer_name(ca_cert.subject)
        .public_key(pub)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + VALIDITY)
        .add_extension(x509.SubjectAlternativeName(san), critical=False)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(x509.KeyUsage(digital_signature=True, content_commitment=False,
                                     key_encipherment=False, data_encipherment=False,
                                     key_agreement=False, key_cert_sign=False, crl_sign=False,
                                     encipher_only=False, decipher_only=False), critical=True)
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH,
                                              ExtendedKeyUsageOID.CLIENT_AUTH]), critical=False)
        .add_extension(x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()),
                       critical=False)
        .sign(ca_key, hashes.SHA256())
    )
    return cert, key


def load_or_create_authority(cert_dir: Path) -> Tuple[x509.Certificate, rsa.RSAPrivateKey]:
    cert_path, key_path = cert_dir / CA_CERT_FILE, cert_dir / CA_KEY_FILE
    if _existing_pair(cert_path, key_path):
        logger.debug("Loading root authority from %s", cert_path)
        return _load_cert(cert_path), _load_key(key_path)
    logger.info("No root authority in %s, generating one", cert_dir)
    cert, key = create_authority()
    _write(key_path, rsa_private_pem(key), private=True)
    _write(cert_path, _cert_pem(cert))
    return cert, key

def load_or_create_leaf(cert_dir: Path, ca_cert: x509.Certificate,
                        ca_key: rsa.RSAPrivateKey) -> Tuple[x509.Certificate, rsa.RSAPrivateKey]:
    '''
    Load the leaf certificate and its signing key, generating both if absent.
    A leaf on disk must still chain to the authority on disk.
    '''
    cert_path, key_path = cert_dir / LEAF_CERT_FILE, cert_dir / LEAF_KEY_FILE
    if _existing_pair(cert_path, key_path):
        cert, key = _load_cert(cert_path), _load_key(key_path)
        try:
            cert.verify_directly_issued_by(ca_cert)
        except (ValueError, TypeError, InvalidSignature) as exc:
            raise TrustBootstrapFailure(f"{cert_path} was not issued by {cert_dir / CA_CERT_FILE}") from exc
        if cert.public_key().public_numbers() != key.public_key().public_numbers():
            raise TrustBootstrapFailure(f"{key_path} does not match {cert_path}")
        logger.debug("Loaded leaf certificate %s", fingerprint(cert))
        return cert, key
    logger.info("No leaf certificate in %s, generating one", cert_dir)
    cert, key = create_leaf(ca_cert, ca_key)
    _write(key_path, rsa_private_pem(key), private=True)
    _write(cert_path, _cert_pem(cert))
    logger.info("Leaf certificate written to %s (fingerprint %s); distribute it to clients",
                cert_path, fingerprint(cert))
    return cert, key

def load_or_create_keypair(path: Path) -> rsa.RSAPrivateKey:
    if path.is_file():
        return _load_key(path)
    logger.info("No encryption key at %s, generating one", path)
    key, _ = rsa_generate()
    _write(path, rsa_private_pem(key), private=True)
    return key

def load_server_credentials(cert_dir: Path) -> Credentials:
    ''' Everything the server needs, generated on first run. Raises TrustBootstrapFailure. '''
    ca_cert, ca_key = load_or_create_authority(cert_dir)
    leaf_cert, leaf_key = load_or_create_leaf(cert_dir, ca_cert, ca_key)
    return Credentials(private_key=load_or_create_keypair(cert_dir / ENCRYPTION_KEY_FILE),
                       signing_key=leaf_key,
                       chain=(leaf_cert, ca_cert))


def matches_hostname(cert: x509.Certificate, hostname: str) -> bool:
    '''True if the certificate's subjectAltName covers hostname (IP literal or DNS name).'''
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return False
    try:
        ip = ipaddress.ip_address(hostname)
    except ValueError:
        ip = None
    if ip is not None:
        return ip in san.get_values_for_type(x509.IPAddress)
    hostname = hostname.lower().rstrip(".")
    for pattern in san.get_values_for_type(x509.DNSName):
        pattern = pattern.lower().rstrip(".")
        if pattern == hostname:
            return True
        if pattern.startswith("*.") and hostname.count(".") == pattern.count(".") \
                and hostname.endswith(pattern[1:]):
            return True
    return False

def load_client_credentials(cert_path: Path, hostname: str,
                            expected_fingerprint: Optional[str] = None) -> Credentials:
    '''
    Load the pre-distributed leaf certificate and create this process's keypair.
    Input:
        - cert_path: the leaf certificate shipped with the client
        - hostname: the host we are about to connect to
        - expected_fingerprint: optional hex SHA-256 pin of the certificate
    Output: Credentials whose peer_verify_key is the leaf's public key
    Raises TrustBootstrapFailure if the certificate is absent, malformed,
    not RSA, or does not match the pin. A hostname mismatch only logs a warning.
    '''
    if not cert_path.is_file():
        raise TrustBootstrapFailure(f"no certificate at {cert_path}; copy the server's "
                                    f"{LEAF_CERT_FILE} there and try again")
    cert = _load_cert(cert_path)
    verify_key = cert.public_key()
    if not isinstance(verify_key, rsa.RSAPublicKey):
        raise TrustBootstrapFailure(f"{cert_path} does not carry an RSA public key")

    actual = fingerprint(cert)
    if expected_fingerprint and _normalise_fingerprint(expected_fingerprint) != actual:
        raise TrustBootstrapFailure(f"certificate fingerprint {actual} does not match the pinned value")

    if not matches_hostname(cert, hostname):
        logger.warning("Certificate %s does not name host %s", cert_path, hostname)
    now = _now()
    if not cert.not_valid_before_utc <= now <= cert.not_valid_after_utc:
        logger.warning("Certificate %s is outside its validity period", cert_path)

    private_key, _ = rsa_generate()
    return Credentials(private_key=private_key, chain=(cert,), peer_verify_key=verify_key)
