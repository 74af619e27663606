"""Self-signed certificate generation for the platform and Gateway5.

The platform serves HTTPS with a ``localhost`` server certificate; the
gateway manager authenticates Gateway5 with a client certificate that is
also registered with the platform. Both pairs are generated locally with
``cryptography`` and only regenerated when missing or invalid.
"""

from __future__ import annotations

import datetime
import ipaddress
import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from dev_stack_manager.core.exceptions import CertificateError

if TYPE_CHECKING:
    from dev_stack_manager.core.config.models import StackConfig

logger = structlog.get_logger()

DEFAULT_KEY_SIZE = 4096
VALIDITY_DAYS = 1825
PEM_FILE_MODE = 0o644

PLATFORM_UID_GID = (1001, 1001)
GATEWAY5_UID_GID = (100, 101)


@dataclass(frozen=True)
class CertificateProfile:
    """Subject, extensions and location of one certificate pair."""

    name: str
    common_name: str
    dns_names: tuple[str, ...]
    ip_addresses: tuple[str, ...]
    extended_key_usages: tuple[x509.ObjectIdentifier, ...]
    cert_file: Path
    key_file: Path
    owner: tuple[int, int]

    @property
    def directory(self) -> Path:
        """Directory holding the pair."""
        return self.cert_file.parent


def platform_profile(config: StackConfig) -> CertificateProfile:
    """Server certificate for the platform's HTTPS listener."""
    return CertificateProfile(
        name="platform",
        common_name="localhost",
        dns_names=("localhost", "platform"),
        ip_addresses=("127.0.0.1",),
        extended_key_usages=(ExtendedKeyUsageOID.SERVER_AUTH,),
        cert_file=config.platform_ssl_dir / "cert.pem",
        key_file=config.platform_ssl_dir / "key.pem",
        owner=PLATFORM_UID_GID,
    )


def gateway5_profile(config: StackConfig) -> CertificateProfile:
    """Client/server certificate used between the gateway manager and Gateway5."""
    return CertificateProfile(
        name="gateway5",
        common_name="gateway5",
        dns_names=("gateway5", "localhost"),
        ip_addresses=("127.0.0.1",),
        extended_key_usages=(ExtendedKeyUsageOID.CLIENT_AUTH, ExtendedKeyUsageOID.SERVER_AUTH),
        cert_file=config.gateway5_cert_file,
        key_file=config.gateway5_key_file,
        owner=GATEWAY5_UID_GID,
    )


def pem_file_valid(path: Path) -> bool:
    """Check that a file exists, is non-empty and contains a PEM marker."""
    if not path.is_file() or path.stat().st_size == 0:
        return False
    return "BEGIN" in path.read_text(errors="ignore")


def needs_generation(profile: CertificateProfile, force: bool = False) -> bool:
    """Decide whether a pair must be (re)generated."""
    if force:
        return True
    return not (pem_file_valid(profile.cert_file) and pem_file_valid(profile.key_file))


def generate_self_signed(
    profile: CertificateProfile,
    key_size: int = DEFAULT_KEY_SIZE,
    days: int = VALIDITY_DAYS,
) -> tuple[bytes, bytes]:
    """Generate a self-signed certificate for a profile.

    Returns:
        Tuple of (certificate_pem, private_key_pem).
    """
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    subject = issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, profile.common_name)])

    alt_names: list[x509.GeneralName] = [x509.DNSName(name) for name in profile.dns_names]
    alt_names.extend(x509.IPAddress(ipaddress.ip_address(ip)) for ip in profile.ip_addresses)

    now = datetime.datetime.now(datetime.UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=days))
        .add_extension(x509.SubjectAlternativeName(alt_names), critical=False)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                key_encipherment=True,
                content_commitment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.ExtendedKeyUsage(list(profile.extended_key_usages)), critical=False)
        .sign(private_key, hashes.SHA256())
    )

    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    key_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return cert_pem, key_pem


@dataclass
class CertificateResult:
    """Outcome of ensuring one certificate pair."""

    profile: CertificateProfile
    generated: bool
    ownership_set: bool


def _is_root() -> bool:
    return os.geteuid() == 0


class CertificateManager:
    """Ensure the stack's certificate pairs exist with the right permissions.

    Args:
        config: Stack configuration (locates the volume directories).
        key_size: RSA key size in bits.
        is_root: Returns True when ownership can be changed.
    """

    def __init__(
        self,
        config: StackConfig,
        key_size: int = DEFAULT_KEY_SIZE,
        is_root: Callable[[], bool] = _is_root,
    ) -> None:
        self._config = config
        self._key_size = key_size
        self._is_root = is_root

    def profiles(self) -> list[CertificateProfile]:
        """All certificate pairs the stack needs."""
        return [platform_profile(self._config), gateway5_profile(self._config)]

    def _write_pair(self, profile: CertificateProfile) -> None:
        cert_pem, key_pem = generate_self_signed(profile, key_size=self._key_size)
        try:
            profile.directory.mkdir(parents=True, exist_ok=True)
            profile.key_file.write_bytes(key_pem)
            profile.cert_file.write_bytes(cert_pem)
        except OSError as e:
            raise CertificateError(
                f"Failed to write {profile.name} certificates",
                details=str(e),
            ) from e

    def _set_permissions(self, profile: CertificateProfile) -> bool:
        """Make PEM files world-readable and hand them to the container user.

        Returns:
            True if ownership was changed.
        """
        for pem in profile.directory.glob("*.pem"):
            pem.chmod(PEM_FILE_MODE)

        if not self._is_root():
            logger.warning(
                "skipping_certificate_ownership",
                certificate=profile.name,
                reason="requires root",
            )
            return False

        uid, gid = profile.owner
        try:
            os.chown(profile.directory, uid, gid)
            for path in profile.directory.rglob("*"):
                os.chown(path, uid, gid)
        except OSError as e:
            raise CertificateError(
                f"Failed to set ownership of {profile.directory}",
                details=str(e),
            ) from e
        logger.info("certificate_ownership_set", certificate=profile.name, uid=uid, gid=gid)
        return True

    def ensure(self, profile: CertificateProfile, force: bool = False) -> CertificateResult:
        """Generate one pair when needed and fix its permissions.

        Raises:
            CertificateError: If files cannot be written or chowned.
        """
        log = logger.bind(certificate=profile.name)
        profile.directory.mkdir(parents=True, exist_ok=True)

        generated = needs_generation(profile, force)
        if generated:
            log.info("generating_certificates", directory=str(profile.directory))
            self._write_pair(profile)
            log.info("certificates_generated")
        else:
            log.info("certificates_exist", hint="use --force to regenerate")

        ownership_set = self._set_permissions(profile)
        return CertificateResult(profile=profile, generated=generated, ownership_set=ownership_set)

    def ensure_all(self, force: bool = False) -> list[CertificateResult]:
        """Ensure every certificate pair."""
        return [self.ensure(profile, force=force) for profile in self.profiles()]
