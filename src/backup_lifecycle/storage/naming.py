"""
Artifact naming conventions.

Artifacts follow ``{type}-backup-*`` names; sidecars append a suffix to
the full artifact name (``name.sha256``, ``name.metadata``,
``name.metadata.sha256``).
"""

from dataclasses import dataclass
from fnmatch import fnmatchcase

from backup_lifecycle.core.models import ArtifactKind

COMPRESSION_EXTENSIONS = {
    "zstd": "zst",
    "xz": "xz",
    "gzip": "gz",
    "pigz": "gz",
    "bzip2": "bz2",
    "lzma": "lzma",
}

SIDECAR_SUFFIXES = (".sha256", ".metadata", ".metadata.sha256")


def sidecar_names(name: str) -> list[str]:
    """Names of the sidecars that belong to an artifact."""
    return [f"{name}{suffix}" for suffix in SIDECAR_SUFFIXES]


@dataclass(frozen=True)
class NamingScheme:
    """Include and exclude globs for one artifact kind."""

    kind: ArtifactKind
    include: tuple[str, ...]
    exclude: tuple[str, ...]

    @classmethod
    def for_kind(
        cls,
        kind: ArtifactKind,
        system_type: str | None = None,
        compression: str | None = None,
    ) -> "NamingScheme":
        prefix = f"{system_type or '*'}-backup-*"

        if kind is ArtifactKind.LOG:
            return cls(kind=kind, include=(f"{prefix}.log",), exclude=("*.log.*",))

        ext = COMPRESSION_EXTENSIONS.get((compression or "").lower())
        if ext:
            include = (f"{prefix}.tar.{ext}",)
        else:
            exts = sorted(set(COMPRESSION_EXTENSIONS.values()))
            include = tuple(f"{prefix}.tar.{e}" for e in exts)
        return cls(kind=kind, include=include, exclude=("*.sha256", "*.metadata"))

    def matches(self, name: str) -> bool:
        """True when the name is a qualifying artifact (not a sidecar)."""
        if not any(fnmatchcase(name, pattern) for pattern in self.include):
            return False
        return not any(fnmatchcase(name, pattern) for pattern in self.exclude)

    def stem(self, name: str) -> str:
        """Base name with the archive or log suffix removed."""
        if self.kind is ArtifactKind.LOG:
            return name[: -len(".log")] if name.endswith(".log") else name
        marker = name.rfind(".tar.")
        return name[:marker] if marker > 0 else name

    def is_related(self, name: str, candidate: str) -> bool:
        """True when candidate shares the artifact's base name but is not the artifact."""
        if candidate == name:
            return False
        return candidate.startswith(f"{name}.") or candidate.startswith(f"{self.stem(name)}.")
