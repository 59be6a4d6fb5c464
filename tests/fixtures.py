"""
Shared Test Fixtures

Fixed timestamps, correlation IDs and record builders.
All fixtures are explicit - no random generation.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
import json

from scriptrecon.contracts.base import Timestamp
from scriptrecon.contracts.records import RawRecord


# =============================================================================
# FIXED TIMESTAMPS (deterministic)
# =============================================================================

EPOCH = datetime(2026, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
T1 = datetime(2026, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
T2 = datetime(2026, 1, 1, 10, 5, 0, tzinfo=timezone.utc)
T3 = datetime(2026, 1, 1, 10, 10, 0, tzinfo=timezone.utc)


# =============================================================================
# EVENT IDS AND CORRELATION IDS
# =============================================================================

FRAGMENT_ID = 4104
CONTEXT_ID = 4103
START_ID = 4105
PROCESS_CREATE_ID = 4688  # unrelated event sharing the same log

CID_A = "5f2c1a2e-7b3d-4c1e-9a6f-00000000000a"
CID_B = "5f2c1a2e-7b3d-4c1e-9a6f-00000000000b"
CID_C = "5f2c1a2e-7b3d-4c1e-9a6f-00000000000c"

DEPLOY_PATH = "C:\\Scripts\\deploy.ps1"


# =============================================================================
# RECORD BUILDERS
# =============================================================================

def fragment_record(
    sequence: Any,
    total: Any,
    text: Any,
    correlation_id: Any = CID_A,
    path: Any = None,
    created_at: Optional[datetime] = T1,
    record_number: Optional[int] = None
) -> RawRecord:
    return RawRecord(
        kind=FRAGMENT_ID,
        fields=(sequence, total, text, correlation_id, path),
        created_at=Timestamp(created_at) if created_at else None,
        record_number=record_number
    )


def context_record(correlation_id: Any = CID_A, info: Any = "Host Application = powershell.exe") -> RawRecord:
    return RawRecord(kind=CONTEXT_ID, fields=(correlation_id, info), created_at=Timestamp(T2))


def start_record(correlation_id: Any = CID_A, created_at: Optional[datetime] = T1) -> RawRecord:
    return RawRecord(
        kind=START_ID,
        fields=(correlation_id, "runspace-01"),
        created_at=Timestamp(created_at) if created_at else None
    )


def unrecognized_record() -> RawRecord:
    return RawRecord(kind=PROCESS_CREATE_ID, fields=("powershell.exe", 1234), created_at=Timestamp(T1))


def three_part_script(correlation_id: str = CID_A, path: Optional[str] = DEPLOY_PATH) -> List[RawRecord]:
    """A complete three-fragment script block, in order."""
    return [
        fragment_record(1, 3, "Write-Host 'one'\n", correlation_id, path),
        fragment_record(2, 3, "Write-Host 'two'\n", correlation_id, path),
        fragment_record(3, 3, "Write-Host 'three'\n", correlation_id, path),
    ]


THREE_PART_BODY = "Write-Host 'one'\nWrite-Host 'two'\nWrite-Host 'three'\n"


# =============================================================================
# EXPORT FILE BUILDERS
# =============================================================================

def record_to_dict(record: RawRecord) -> Dict:
    return {
        "event_id": record.kind,
        "fields": list(record.fields),
        "created_at": record.created_at.to_iso() if record.created_at else None,
        "record_number": record.record_number,
    }


def write_jsonl(path, records: Sequence[RawRecord]) -> str:
    with open(path, 'w', encoding='utf-8') as f:
        for record in records:
            f.write(json.dumps(record_to_dict(record)) + '\n')
    return str(path)


def write_json_array(path, records: Sequence[RawRecord]) -> str:
    with open(path, 'w', encoding='utf-8') as f:
        json.dump([record_to_dict(r) for r in records], f, indent=2)
    return str(path)
