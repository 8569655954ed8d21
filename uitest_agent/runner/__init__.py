from .artifact_runner import ArtifactStore, LocalArtifactStore, PytestArtifactRunner, Verifier, parse_pytest_output

__all__ = ["ArtifactStore", "LocalArtifactStore", "PytestArtifactRunner", "Verifier", "parse_pytest_output"]
