"""Self-signed localhost certificate for an HTTPS loopback redirect."""
import datetime
import logging
import subprocess
from pathlib import Path
from typing import Tuple

from cryptography import x509
from cryptography.x509.oid import NameOID
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa

logger = logging.getLogger(__name__)


def ensure_self_signed(cert_path: str | Path, key_path: str | Path, host: str = "localhost") -> Tuple[str, str]:
    """Ensure a self-signed certificate for `host` exists at the given paths.

    Existing files are left untouched. Falls back to invoking openssl when
    key generation through `cryptography` fails.

    Raises:
        RuntimeError: If neither method produced a certificate
    """
    cert_path = Path(cert_path)
    key_path = Path(key_path)
    if cert_path.exists() and key_path.exists():
        return str(cert_path), str(key_path)
    cert_path.parent.mkdir(parents=True, exist_ok=True)
    key_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        _generate_with_cryptography(cert_path, key_path, host)
    except ValueError as e:
        logger.warning(f"cryptography could not generate certificate ({e}); trying openssl")
        _generate_with_openssl(cert_path, key_path, host)
    return str(cert_path), str(key_path)


def _generate_with_cryptography(cert_path: Path, key_path: Path, host: str) -> None:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    subject = issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, host)])
    now = datetime.datetime.now(datetime.timezone.utc)
    names = [x509.DNSName("localhost")]
    if host != "localhost":
        names.append(x509.DNSName(host))
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=365))
        .add_extension(x509.SubjectAlternativeName(names), critical=False)
        .sign(key, hashes.SHA256())
    )
    key_path.write_bytes(key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ))
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))


def _generate_with_openssl(cert_path: Path, key_path: Path, host: str) -> None:
    try:
        subprocess.run(
            ['openssl', 'req', '-x509', '-newkey', 'rsa:2048', '-nodes', '-keyout', str(key_path),
             '-out', str(cert_path), '-days', '365', '-subj', f'/CN={host}'],
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except subprocess.CalledProcessError as e:  # pragma: no cover
        err = (e.stderr or '').strip()
        raise RuntimeError(f"Failed to generate certificate via openssl (exit {e.returncode}). Stderr: {err}") from e
    except FileNotFoundError as e:  # pragma: no cover
        raise RuntimeError("OpenSSL not found on PATH; provide cert/key files manually.") from e


__all__ = ["ensure_self_signed"]
