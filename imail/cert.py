"""Generating a self-signed X.509 certificate for a TLS server."""

from __future__ import annotations

import argparse
import ipaddress
import os
import re
import secrets
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Optional, Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

PrivateKey = Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey]

_CURVES = {
    "P224": (ec.SECP224R1, hashes.SHA256),
    "P256": (ec.SECP256R1, hashes.SHA256),
    "P384": (ec.SECP384R1, hashes.SHA384),
    "P521": (ec.SECP521R1, hashes.SHA512),
}
_MONTHS = {
    name: i
    for i, name in enumerate(
        ("jan", "feb", "mar", "apr", "may", "jun",
         "jul", "aug", "sep", "oct", "nov", "dec"),
        start=1,
    )
}
_START_DATE = re.compile(r"([A-Za-z]{3}) (\d{1,2}) (\d{1,2}):(\d{2}):(\d{2}) (\d{4})")
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": timedelta(microseconds=0.001),
    "us": timedelta(microseconds=1),
    "µs": timedelta(microseconds=1),
    "μs": timedelta(microseconds=1),
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
}
DEFAULT_DURATION = timedelta(days=365)


@dataclass(frozen=True)
class CertificateBundle:
    """A certificate together with the private key that signed it."""

    certificate: x509.Certificate
    private_key: PrivateKey

    @property
    def certificate_pem(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.PEM)

    @property
    def private_key_pem(self) -> bytes:
        # RSA keys come out as "RSA PRIVATE KEY", EC keys as "EC PRIVATE KEY".
        return self.private_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        )


def parse_start_date(text: str) -> datetime:
    """Parse a date such as ``Jan 1 15:04:05 2011`` as UTC."""
    match = _START_DATE.fullmatch(text)
    if match is None or match.group(1).lower() not in _MONTHS:
        raise ValueError(f"Failed to parse creation date: {text!r}")
    month, day, hour, minute, second, year = match.groups()
    try:
        return datetime(
            int(year), _MONTHS[month.lower()], int(day),
            int(hour), int(minute), int(second), tzinfo=timezone.utc,
        )
    except ValueError as exc:
        raise ValueError(f"Failed to parse creation date: {exc}") from exc


def _parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``8760h`` or ``1h30m``."""
    sign = -1 if text.startswith("-") else 1
    body = text.lstrip("+-")
    if body == "0":
        return timedelta(0)
    pos = 0
    total = timedelta(0)
    for match in _DURATION_PART.finditer(body):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if not body or pos != len(body):
        raise ValueError(f"invalid duration {text!r}")
    return sign * total


def generate_private_key(ecdsa_curve: str = "", rsa_bits: int = 2048) -> PrivateKey:
    """Make an RSA key, or an ECDSA key on P224, P256, P384 or P521."""
    if ecdsa_curve == "":
        return rsa.generate_private_key(public_exponent=65537, key_size=rsa_bits)
    try:
        curve, _ = _CURVES[ecdsa_curve]
    except KeyError:
        raise ValueError(f"Unrecognized elliptic curve: {ecdsa_curve!r}") from None
    return ec.generate_private_key(curve())


def _signature_hash(key: PrivateKey) -> hashes.HashAlgorithm:
    if isinstance(key, ec.EllipticCurvePrivateKey):
        for curve, digest in _CURVES.values():
            if key.curve.name == curve.name:
                return digest()
    return hashes.SHA256()


def _alt_names(hosts: Iterable[str]) -> list[x509.GeneralName]:
    names: list[x509.GeneralName] = []
    for host in hosts:
        try:
            names.append(x509.IPAddress(ipaddress.ip_address(host)))
        except ValueError:
            names.append(x509.DNSName(host))
    return names


def generate_certificate(
    hosts: Union[str, Iterable[str]],
    ecdsa_curve: str = "",
    rsa_bits: int = 2048,
    start_date: Union[str, datetime, None] = None,
    duration: timedelta = DEFAULT_DURATION,
    is_ca: bool = False,
) -> CertificateBundle:
    """Build a self-signed server certificate for the given hostnames and IPs."""
    host_list = hosts.split(",") if isinstance(hosts, str) else list(hosts)
    if not host_list or host_list == [""]:
        raise ValueError("Missing required --host parameter")

    key = generate_private_key(ecdsa_curve, rsa_bits)

    if start_date is None or start_date == "":
        not_before = datetime.now(timezone.utc)
    elif isinstance(start_date, str):
        not_before = parse_start_date(start_date)
    else:
        not_before = start_date
    not_after = not_before + duration

    name = x509.Name(
        [
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Acme Co"),
            x509.NameAttribute(NameOID.COMMON_NAME, "Gogs"),
        ]
    )
    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(secrets.randbelow((1 << 128) - 1) + 1)
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=is_ca,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False
        )
        .add_extension(x509.BasicConstraints(ca=is_ca, path_length=None), critical=True)
        .add_extension(x509.SubjectAlternativeName(_alt_names(host_list)), critical=False)
    )
    if is_ca:
        builder = builder.add_extension(
            x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False
        )
    certificate = builder.sign(key, _signature_hash(key))
    return CertificateBundle(certificate, key)


def write_certificate(
    bundle: CertificateBundle, directory: Union[str, os.PathLike] = "."
) -> tuple[Path, Path]:
    """Write ``cert.pem`` and ``key.pem`` (mode 0600), overwriting existing files."""
    base = Path(directory)
    cert_path = base / "cert.pem"
    key_path = base / "key.pem"
    cert_path.write_bytes(bundle.certificate_pem)
    fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as out:
        out.write(bundle.private_key_pem)
    return cert_path, key_path


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cert",
        description=(
            "Generate a self-signed X.509 certificate for a TLS server. "
            "Outputs to 'cert.pem' and 'key.pem' and will overwrite existing files."
        ),
    )
    parser.add_argument("--host", default="",
                        help="Comma-separated hostnames and IPs to generate a certificate for")
    parser.add_argument("--ecdsa-curve", default="",
                        help="ECDSA curve to use to generate a key. "
                             "Valid values are P224, P256, P384, P521")
    parser.add_argument("--rsa-bits", type=int, default=2048,
                        help="Size of RSA key to generate. Ignored if --ecdsa-curve is set")
    parser.add_argument("--start-date", default="",
                        help="Creation date formatted as Jan 1 15:04:05 2011")
    parser.add_argument("--duration", type=_parse_duration, default=DEFAULT_DURATION,
                        help="Duration that certificate is valid for")
    parser.add_argument("--ca", action="store_true",
                        help="whether this cert should be its own Certificate Authority")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Generate cert.pem and key.pem in the current directory."""
    args = _build_parser().parse_args(argv)
    try:
        bundle = generate_certificate(
            args.host,
            ecdsa_curve=args.ecdsa_curve,
            rsa_bits=args.rsa_bits,
            start_date=args.start_date or None,
            duration=args.duration,
            is_ca=args.ca,
        )
        write_certificate(bundle)
    except (ValueError, OSError) as exc:
        print(exc, file=sys.stderr)
        return 1
    print("Written cert.pem", file=sys.stderr)
    print("Written key.pem", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())