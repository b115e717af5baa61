"""Tests for otpauth:// provisioning URI parsing and generation."""

import pytest

from citadel_otp.core.exceptions import ValidationError
from citadel_otp.otp.uri import ParsedCredential, generate_uri, parse_uri
from citadel_otp.vault.models import Account


class TestParseUri:

    def test_full_uri(self):
        cred = parse_uri(
            "otpauth://totp/GitHub:me@x.com?secret=JBSWY3DPEHPK3PXP"
            "&issuer=GitHub&algorithm=SHA256&digits=8&period=60"
        )
        assert cred == ParsedCredential(
            type="totp",
            issuer="GitHub",
            account="me@x.com",
            secret="JBSWY3DPEHPK3PXP",
            algorithm="SHA256",
            digits=8,
            period=60,
        )

    def test_defaults(self):
        cred = parse_uri("otpauth://totp/Acme:alice?secret=JBSWY3DPEHPK3PXP")
        assert cred.algorithm == "SHA1"
        assert cred.digits == 6
        assert cred.period == 30

    def test_percent_encoded_label(self):
        cred = parse_uri("otpauth://totp/ACME%20Co:john.doe%40email.com?secret=JBSWY3DPEHPK3PXP")
        assert cred.issuer == "ACME Co"
        assert cred.account == "john.doe@email.com"

    def test_label_parts_are_trimmed(self):
        cred = parse_uri("otpauth://totp/Acme%3A%20%20bob%20?secret=JBSWY3DPEHPK3PXP")
        assert cred.issuer == "Acme"
        assert cred.account == "bob"

    def test_issuer_param_overrides_label(self):
        cred = parse_uri("otpauth://totp/Old:bob?secret=JBSWY3DPEHPK3PXP&issuer=New")
        assert cred.issuer == "New"

    def test_empty_issuer_param_keeps_label(self):
        cred = parse_uri("otpauth://totp/Label:bob?secret=JBSWY3DPEHPK3PXP&issuer=")
        assert cred.issuer == "Label"

    def test_issuer_falls_back_to_email_domain(self):
        cred = parse_uri("otpauth://totp/bob@example.org?secret=JBSWY3DPEHPK3PXP")
        assert cred.issuer == "example.org"
        assert cred.account == "bob@example.org"

    def test_issuer_falls_back_to_unknown(self):
        cred = parse_uri("otpauth://totp/bob?secret=JBSWY3DPEHPK3PXP")
        assert cred.issuer == "Unknown"

    def test_secret_is_normalized(self):
        cred = parse_uri("otpauth://totp/A:b?secret=jbsw%20y3dp%20ehpk%203pxp")
        assert cred.secret == "JBSWY3DPEHPK3PXP"

    def test_hotp_type_accepted(self):
        assert parse_uri("otpauth://HOTP/A:b?secret=JBSWY3DPEHPK3PXP").type == "hotp"

    def test_lowercase_algorithm_is_uppercased(self):
        assert parse_uri("otpauth://totp/A:b?secret=JBSWY3DPEHPK3PXP&algorithm=sha512").algorithm == "SHA512"

    def test_non_numeric_digits_and_period_fall_back(self):
        cred = parse_uri("otpauth://totp/A:b?secret=JBSWY3DPEHPK3PXP&digits=abc&period=")
        assert cred.digits == 6
        assert cred.period == 30

    def test_first_duplicate_param_wins(self):
        cred = parse_uri("otpauth://totp/A:b?secret=JBSWY3DPEHPK3PXP&secret=GEZDGNBVGY3TQOJQ")
        assert cred.secret == "JBSWY3DPEHPK3PXP"

    @pytest.mark.parametrize("uri", [
        "",
        "https://totp/A:b?secret=JBSWY3DPEHPK3PXP",
        "otpauth://totp/A:b",
        "otpauth://totp/A:b?issuer=A",
        "otpauth://steam/A:b?secret=JBSWY3DPEHPK3PXP",
    ])
    def test_rejects(self, uri):
        with pytest.raises(ValidationError):
            parse_uri(uri)

    def test_unsupported_type_message(self):
        with pytest.raises(ValidationError, match="Unsupported OTP type"):
            parse_uri("otpauth://steam/A:b?secret=JBSWY3DPEHPK3PXP")


class TestGenerateUri:

    def test_format(self):
        uri = generate_uri({
            "issuer": "GitHub",
            "account": "me@x.com",
            "secret": "JBSWY3DPEHPK3PXP",
            "algorithm": "SHA1",
            "digits": 6,
            "period": 30,
        })
        assert uri == (
            "otpauth://totp/GitHub:me%40x.com?secret=JBSWY3DPEHPK3PXP"
            "&issuer=GitHub&algorithm=SHA1&digits=6&period=30"
        )

    def test_spaces_are_percent_encoded_in_label(self):
        uri = generate_uri({"issuer": "ACME Co", "account": "a b", "secret": "JBSWY3DPEHPK3PXP"})
        assert uri.startswith("otpauth://totp/ACME%20Co:a%20b?")

    @pytest.mark.parametrize("issuer, account", [
        ("GitHub", "me@x.com"),
        ("ACME Co", "john doe"),
        ("Ünïcode", "名前@例え.jp"),
        ("A&B", "x?y=z"),
    ])
    def test_round_trip(self, issuer, account):
        source = Account(
            id="acc-1",
            issuer=issuer,
            account=account,
            secret="JBSWY3DPEHPK3PXP",
            algorithm="SHA512",
            digits=8,
            period=60,
        )
        cred = parse_uri(generate_uri(source))
        assert (cred.issuer, cred.account, cred.secret) == (issuer, account, source.secret)
        assert (cred.algorithm, cred.digits, cred.period) == ("SHA512", 8, 60)
