"""Artifact Store: persisted reports and their binaries."""

from claimpacket.services.artifacts.service import ArtifactContent, ArtifactStore

__all__ = ["ArtifactContent", "ArtifactStore"]
