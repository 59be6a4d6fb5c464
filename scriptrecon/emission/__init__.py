"""
Emission Layer

RESPONSIBILITY: Choose a collision-free identifier and hand artifact bytes
to a sink
ALLOWED INPUTS: Artifact text from the core layer
OUTPUTS: EmitResult (identifier written, or a SINK_WRITE_FAILURE error)

WHAT THIS LAYER MUST NOT DO:
============================
- Alter artifact text
- Overwrite an existing identifier
- Abort a run because one write failed

IDENTIFIERS:
============
base       = "{correlation_id}_{display_name}" (file-name safe)
extension  = executable_extension | text_extension, chosen by the format flag
collisions = base.ext, base_1.ext, base_2.ext, ... first free wins

The search is strictly sequential and goes through the sink's claim() step,
which is atomic per identifier. Given the same sink state and the same
submission order, the same identifiers come out.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple
import json
import os
import re
import threading

from ..contracts.base import Error, ErrorCode, Result
from ..contracts.records import AuditEventType, AuditLogEntry
from ..contracts.artifacts import Artifact, EmitResult
from ..contracts.reports import ArtifactRecord


MANIFEST_FILE = "manifest.jsonl"

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def sanitize_identifier(text: str) -> str:
    """Replace characters that are not valid in file names."""
    cleaned = _UNSAFE_CHARS.sub('_', text).rstrip(' .')
    return cleaned or '_'


def candidate_identifiers(base: str, extension: str) -> Iterator[str]:
    """base.ext, base_1.ext, base_2.ext, ... in that order."""
    yield f"{base}{extension}"
    suffix = 1
    while True:
        yield f"{base}_{suffix}{extension}"
        suffix += 1


# =============================================================================
# SINK INTERFACES (Dependency Inversion)
# =============================================================================

class ArtifactSink:
    """
    Abstract sink interface.

    claim() reserves the first free identifier for (base, extension) and
    must be atomic per identifier: two concurrent claims never return the
    same name. write() stores bytes under a claimed identifier.
    """

    def exists(self, identifier: str) -> bool:
        """Whether the identifier is already taken."""
        raise NotImplementedError

    def claim(self, base: str, extension: str) -> Result:
        """Reserve the first free identifier. Result value is the identifier."""
        raise NotImplementedError

    def write(self, identifier: str, data: bytes, executable_format: bool) -> Result:
        """Store bytes under a claimed identifier."""
        raise NotImplementedError

    def release(self, identifier: str) -> None:
        """Give back a claimed identifier whose write failed."""
        raise NotImplementedError

    def record(self, entry: ArtifactRecord) -> None:
        """Append one entry to the run manifest."""
        raise NotImplementedError

    def manifest(self) -> List[ArtifactRecord]:
        """All manifest entries, in append order."""
        raise NotImplementedError


class InMemorySink(ArtifactSink):
    """
    In-memory sink.

    Suitable for testing and for callers that post-process artifacts
    themselves.
    """

    def __init__(self, existing: Optional[Dict[str, bytes]] = None):
        self._lock = threading.Lock()
        self._claimed: Dict[str, Optional[Tuple[bytes, bool]]] = {
            identifier: (data, True) for identifier, data in (existing or {}).items()
        }
        self._manifest: List[ArtifactRecord] = []

    def exists(self, identifier: str) -> bool:
        with self._lock:
            return identifier in self._claimed

    def claim(self, base: str, extension: str) -> Result:
        with self._lock:
            for identifier in candidate_identifiers(base, extension):
                if identifier not in self._claimed:
                    self._claimed[identifier] = None
                    return Result.success(identifier)

    def write(self, identifier: str, data: bytes, executable_format: bool) -> Result:
        with self._lock:
            self._claimed[identifier] = (data, executable_format)
        return Result.success(identifier)

    def release(self, identifier: str) -> None:
        with self._lock:
            if self._claimed.get(identifier) is None:
                self._claimed.pop(identifier, None)

    def read(self, identifier: str) -> Optional[bytes]:
        with self._lock:
            stored = self._claimed.get(identifier)
        return stored[0] if stored else None

    @property
    def identifiers(self) -> List[str]:
        """Written identifiers in claim order."""
        with self._lock:
            return [i for i, stored in self._claimed.items() if stored is not None]

    def record(self, entry: ArtifactRecord) -> None:
        with self._lock:
            self._manifest.append(entry)

    def manifest(self) -> List[ArtifactRecord]:
        with self._lock:
            return list(self._manifest)


class FileSystemSink(ArtifactSink):
    """
    Directory-backed sink.

    Claims by exclusive file creation (O_CREAT | O_EXCL), so a claim is
    atomic per identifier even across processes sharing the directory. The
    process-local lock additionally keeps each claim's sequential search
    uninterrupted by sibling threads.
    """

    def __init__(self, output_dir: str):
        self._output_dir = output_dir
        self._manifest_file = os.path.join(output_dir, MANIFEST_FILE)
        self._lock = threading.Lock()
        os.makedirs(output_dir, exist_ok=True)

    @property
    def output_dir(self) -> str:
        return self._output_dir

    def path_for(self, identifier: str) -> str:
        return os.path.join(self._output_dir, identifier)

    def exists(self, identifier: str) -> bool:
        return os.path.exists(self.path_for(identifier))

    def claim(self, base: str, extension: str) -> Result:
        with self._lock:
            for identifier in candidate_identifiers(base, extension):
                try:
                    fd = os.open(self.path_for(identifier), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
                except FileExistsError:
                    continue
                except OSError as e:
                    return Result.failure(Error.create(
                        code=ErrorCode.SINK_WRITE_FAILURE,
                        message=f"Failed to claim {identifier}: {e}",
                        context=(("identifier", identifier),)
                    ))
                os.close(fd)
                return Result.success(identifier)

    def write(self, identifier: str, data: bytes, executable_format: bool) -> Result:
        try:
            with open(self.path_for(identifier), 'wb') as f:
                f.write(data)
        except OSError as e:
            return Result.failure(Error.create(
                code=ErrorCode.SINK_WRITE_FAILURE,
                message=f"Failed to write {identifier}: {e}",
                context=(("identifier", identifier),)
            ))
        return Result.success(identifier)

    def release(self, identifier: str) -> None:
        try:
            os.remove(self.path_for(identifier))
        except FileNotFoundError:
            pass

    def record(self, entry: ArtifactRecord) -> None:
        with self._lock:
            with open(self._manifest_file, 'a', encoding='utf-8') as f:
                f.write(json.dumps(entry.to_dict(), sort_keys=True) + '\n')

    def manifest(self) -> List[ArtifactRecord]:
        return read_manifest(self._output_dir)


def read_manifest(output_dir: str) -> List[ArtifactRecord]:
    """Load manifest entries from an output directory (empty if none)."""
    path = os.path.join(output_dir, MANIFEST_FILE)
    entries: List[ArtifactRecord] = []
    if not os.path.exists(path):
        return entries

    with open(path, 'r', encoding='utf-8') as f:
        for line in f:
            if not line.strip():
                continue
            entries.append(ArtifactRecord.from_dict(json.loads(line)))
    return entries


# =============================================================================
# EMITTER
# =============================================================================

@dataclass(frozen=True)
class EmitterConfig:
    """Output format configuration."""
    executable_format: bool = True
    executable_extension: str = ".ps1"
    text_extension: str = ".txt"

    def extension_for(self, executable_format: bool) -> str:
        return self.executable_extension if executable_format else self.text_extension


class ArtifactEmitter:
    """
    Resolves identifiers and writes artifacts through a sink.

    BOUNDARY ENFORCEMENT:
    - Never raises on a write failure; returns it as data
    - Never rewrites an identifier already present in the sink
    """

    def __init__(self, sink: ArtifactSink, config: Optional[EmitterConfig] = None):
        self._sink = sink
        self._config = config or EmitterConfig()
        self._audit_log: List[AuditLogEntry] = []

    @property
    def sink(self) -> ArtifactSink:
        return self._sink

    @staticmethod
    def base_identifier(correlation_id: str, display_name: str) -> str:
        return sanitize_identifier(f"{correlation_id}_{display_name}")

    def emit(
        self,
        correlation_id: str,
        display_name: str,
        body: str,
        executable_format: bool
    ) -> EmitResult:
        """Write one artifact under the first free identifier."""
        base = self.base_identifier(correlation_id, display_name)
        extension = self._config.extension_for(executable_format)

        claimed = self._sink.claim(base, extension)
        if claimed.is_failure:
            return self._failed(correlation_id, claimed.error)

        identifier = claimed.value
        written = self._sink.write(identifier, body.encode('utf-8'), executable_format)
        if written.is_failure:
            self._sink.release(identifier)
            return self._failed(correlation_id, written.error)

        self._log_audit(
            action="artifact_written",
            entity_id=correlation_id,
            metadata=(("identifier", identifier), ("bytes", str(len(body.encode('utf-8')))))
        )
        return EmitResult(correlation_id=correlation_id, identifier=identifier)

    def emit_artifact(self, artifact: Artifact) -> EmitResult:
        return self.emit(
            artifact.correlation_id,
            artifact.display_name,
            artifact.text,
            artifact.executable_format
        )

    def _failed(self, correlation_id: str, error: Error) -> EmitResult:
        error = Error.create(
            code=ErrorCode.SINK_WRITE_FAILURE,
            message=f"{correlation_id}: {error.message}",
            correlation_id=correlation_id,
            context=error.context
        )
        self._log_audit(
            action="artifact_write_failed",
            entity_id=correlation_id,
            metadata=(("error", error.message),)
        )
        return EmitResult(correlation_id=correlation_id, error=error)

    def _log_audit(
        self,
        action: str,
        entity_id: Optional[str] = None,
        metadata: tuple = ()
    ):
        """Add entry to internal audit log."""
        self._audit_log.append(AuditLogEntry.create(
            event_type=AuditEventType.EMISSION,
            layer="emission",
            action=action,
            entity_id=entity_id,
            entity_type="correlation" if entity_id else None,
            metadata=metadata
        ))

    def get_audit_log(self) -> List[AuditLogEntry]:
        """Return copy of audit log entries."""
        return list(self._audit_log)
