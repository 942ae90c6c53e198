"""Tests for signed recipient access links."""

from __future__ import annotations

from datetime import timedelta

import pytest
from conftest import FIXED_NOW

from claimpacket.models.timeline import RecipientType
from claimpacket.reports.errors import ValidationError
from claimpacket.services.delivery.links import AccessLinkSigner


def _signer(secret: str = "link-secret", offset_seconds: int = 0) -> AccessLinkSigner:
    return AccessLinkSigner(
        secret,
        "https://reports.example.com/",
        custom_ttl_seconds=600,
        clock=lambda: FIXED_NOW + timedelta(seconds=offset_seconds),
    )


class TestLinkFormat:
    def test_adjuster_link_has_no_expiry(self) -> None:
        link = _signer().link_for("art-1", RecipientType.ADJUSTER)

        assert link.startswith("https://reports.example.com/share/reports/art-1?r=adjuster&sig=")
        assert "exp=" not in link

    def test_custom_link_carries_expiry(self) -> None:
        link = _signer().link_for("art-1", RecipientType.CUSTOM)

        expected_exp = int((FIXED_NOW + timedelta(seconds=600)).timestamp())
        assert f"exp={expected_exp}" in link

    def test_links_are_stable(self) -> None:
        signer = _signer()

        assert signer.link_for("art-1", RecipientType.HOMEOWNER) == signer.link_for(
            "art-1", RecipientType.HOMEOWNER
        )


class TestVerify:
    def test_roundtrip(self) -> None:
        signer = _signer()

        grant = signer.verify(signer.link_for("art-1", RecipientType.HOMEOWNER))

        assert grant.artifact_id == "art-1"
        assert grant.recipient_type == RecipientType.HOMEOWNER
        assert grant.expires_at is None

    def test_custom_link_valid_before_expiry(self) -> None:
        link = _signer().link_for("art-1", RecipientType.CUSTOM)

        grant = _signer(offset_seconds=599).verify(link)

        assert grant.expires_at == FIXED_NOW + timedelta(seconds=600)

    def test_custom_link_expires(self) -> None:
        link = _signer().link_for("art-1", RecipientType.CUSTOM)

        with pytest.raises(ValidationError, match="expired"):
            _signer(offset_seconds=601).verify(link)

    @pytest.mark.parametrize(
        ("original", "tampered"),
        [
            ("/art-1?", "/art-2?"),
            ("r=adjuster", "r=homeowner"),
        ],
    )
    def test_tampering_detected(self, original: str, tampered: str) -> None:
        link = _signer().link_for("art-1", RecipientType.ADJUSTER)

        with pytest.raises(ValidationError, match="signature"):
            _signer().verify(link.replace(original, tampered))

    def test_other_secret_rejected(self) -> None:
        link = _signer().link_for("art-1", RecipientType.ADJUSTER)

        with pytest.raises(ValidationError):
            _signer(secret="another-secret").verify(link)

    def test_stripped_expiry_rejected(self) -> None:
        link = _signer().link_for("art-1", RecipientType.CUSTOM)
        exp = int((FIXED_NOW + timedelta(seconds=600)).timestamp())

        with pytest.raises(ValidationError):
            _signer().verify(link.replace(f"exp={exp}&", ""))

    def test_not_a_share_link(self) -> None:
        with pytest.raises(ValidationError):
            _signer().verify("https://reports.example.com/other/art-1?r=adjuster&sig=x")

    def test_empty_secret_rejected(self) -> None:
        with pytest.raises(ValueError):
            AccessLinkSigner("", "https://reports.example.com", custom_ttl_seconds=60)
