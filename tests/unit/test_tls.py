"""Tests for certificate inspection and certbot helpers."""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from cloudman import tls
from cloudman.tls import TLSError, certbot_command, read_certificate


def self_signed(domain, days=30, san=True):
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domain)])
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(start)
        .not_valid_after(start + timedelta(days=days))
    )
    if san:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(domain), x509.DNSName(f"www.{domain}")]),
            critical=False,
        )
    return builder.sign(key, hashes.SHA256()).public_bytes(serialization.Encoding.PEM)


class TestCertificates:
    def test_read_certificate(self):
        info = read_certificate(self_signed("cloud.example.com"))

        assert info.subject == "CN=cloud.example.com"
        assert info.names == ["cloud.example.com", "www.cloud.example.com"]
        assert info.not_after - info.not_before == timedelta(days=30)

    def test_days_left_and_summary(self):
        info = read_certificate(self_signed("cloud.example.com", days=90))
        now = datetime(2024, 2, 1, tzinfo=timezone.utc)

        assert info.days_left(now) == 59
        assert "59 days left" in info.summary(now)

    def test_certificate_without_san(self):
        assert read_certificate(self_signed("cloud.example.com", san=False)).names == []

    def test_garbage_is_rejected(self):
        with pytest.raises(TLSError):
            read_certificate(b"-----BEGIN CERTIFICATE-----\nnope\n-----END CERTIFICATE-----\n")

    def test_certificate_info_missing_file(self, tmp_path):
        with patch.object(tls, "LETSENCRYPT_LIVE", tmp_path):
            with pytest.raises(TLSError) as info:
                tls.certificate_info("cloud.example.com")

        assert info.value.domain == "cloud.example.com"


class TestDhParams:
    def test_existing_file_is_kept(self, tmp_path):
        path = tmp_path / "dhparam.pem"
        path.write_text("keep me", encoding="utf-8")

        assert tls.write_dhparams(path) is False
        assert path.read_text(encoding="utf-8") == "keep me"

    def test_write_dhparams(self, tmp_path):
        path = tmp_path / "dhparam.pem"
        with patch.object(tls, "generate_dhparams", return_value=b"-----BEGIN DH PARAMETERS-----\n"):
            assert tls.write_dhparams(path) is True

        assert path.read_bytes().startswith(b"-----BEGIN DH PARAMETERS-----")


class TestCertbot:
    def test_certbot_command(self):
        cmd = certbot_command("cloud.example.com", "admin@example.com")

        assert cmd[:3] == ["sudo", "certbot", "certonly"]
        assert cmd[cmd.index("-d") + 1] == "cloud.example.com"
        assert "--dry-run" not in cmd

    def test_certbot_dry_run(self):
        assert certbot_command("a.example.com", "x@example.com", dry_run=True)[-1] == "--dry-run"

    def test_failed_certbot_raises(self):
        with patch("cloudman.tls.run_interactive", return_value=1):
            with pytest.raises(TLSError):
                tls.generate_certificate("cloud.example.com", "admin@example.com")

    def test_closed_port(self):
        with patch("cloudman.tls.socket.create_connection", side_effect=OSError("refused")):
            assert tls.check_ports("cloud.example.com") == {80: False, 443: False}


class TestBadHostNames:
    def test_over_long_label_is_closed(self):
        domain = "a" * 64 + ".example.com"
        assert tls.check_ports(domain) == {80: False, 443: False}

    def test_empty_label_is_closed(self):
        assert tls.is_port_open("cloud..example.com", 443) is False

    def test_over_long_label_is_unreachable(self):
        assert tls.is_reachable("a" * 64 + ".example.com") is False
