"""Catalog Assembler — the aggregate archive the reconciler pulls.

Layout of the gzip'd tar::

    manifests/<namespace>-<name>.yaml     one per live resource
    manifests/kustomization.yaml          lists every file above

Output is byte-reproducible: keys are emitted in sorted order and every
tar header and the gzip header carry fixed metadata.
"""

from __future__ import annotations

import gzip
import io
import tarfile
from collections.abc import Iterable, Mapping

MANIFEST_DIR = "manifests"
KUSTOMIZATION_FILE = "kustomization.yaml"
_KUSTOMIZATION_HEADER = (
    "apiVersion: kustomize.config.k8s.io/v1beta1\n"
    "kind: Kustomization\n"
    "resources:\n"
)


def entry_filename(key: str) -> str:
    """``"ns/name"`` -> ``"ns-name.yaml"``."""
    return key.replace("/", "-") + ".yaml"


def colliding_key(keys: Iterable[str], key: str) -> str | None:
    """Another key in ``keys`` whose entry file name equals ``key``'s, if any.

    ``team-a/web`` and ``team/a-web`` both map to ``team-a-web.yaml``.
    """
    filename = entry_filename(key)
    for other in keys:
        if other != key and entry_filename(other) == filename:
            return other
    return None


def build_kustomization(filenames: list[str]) -> bytes:
    """Kustomization listing ``filenames``; ``[]`` marks an empty list."""
    lines = [_KUSTOMIZATION_HEADER]
    lines.extend(f"  - {f}\n" for f in filenames)
    if not filenames:
        lines.append("  []\n")
    return "".join(lines).encode("utf-8")


def _add_file(tar: tarfile.TarFile, name: str, data: bytes) -> None:
    info = tarfile.TarInfo(name=f"{MANIFEST_DIR}/{name}")
    info.size = len(data)
    info.mode = 0o644
    info.mtime = 0
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    tar.addfile(info, io.BytesIO(data))


def assemble(entries: Mapping[str, bytes]) -> bytes:
    """Build the catalog archive from an index snapshot.

    Raises ``ValueError`` when two keys map to the same entry file.
    """
    filenames: list[str] = []
    owners: dict[str, str] = {}
    raw = io.BytesIO()
    with tarfile.open(fileobj=raw, mode="w", format=tarfile.PAX_FORMAT) as tar:
        for key in sorted(entries):
            filename = entry_filename(key)
            if filename in owners:
                raise ValueError(
                    f"catalog entries {owners[filename]!r} and {key!r} both map to {filename}"
                )
            owners[filename] = key
            filenames.append(filename)
            _add_file(tar, filename, entries[key])
        _add_file(tar, KUSTOMIZATION_FILE, build_kustomization(filenames))

    out = io.BytesIO()
    with gzip.GzipFile(fileobj=out, mode="wb", mtime=0) as gz:
        gz.write(raw.getvalue())
    return out.getvalue()


def read_catalog(archive: bytes) -> dict[str, bytes]:
    """Unpack a catalog archive into ``{filename: bytes}`` (directory stripped)."""
    files: dict[str, bytes] = {}
    with tarfile.open(fileobj=io.BytesIO(archive), mode="r:gz") as tar:
        for member in tar.getmembers():
            if not member.isfile():
                continue
            handle = tar.extractfile(member)
            if handle is None:
                continue
            files[member.name.rsplit("/", 1)[-1]] = handle.read()
    return files


def kustomization_resources(archive: bytes) -> list[str]:
    """Filenames listed in the archive's kustomization, in file order."""
    text = read_catalog(archive)[KUSTOMIZATION_FILE].decode("utf-8")
    return [
        line.strip()[2:]
        for line in text.splitlines()
        if line.strip().startswith("- ")
    ]
