"""
Forensic Reconstruction CLI
===========================

Reconstruct script blocks from decoded event-log exports and inspect the
results on disk.

COMMANDS:
- extract: Reconstruct artifacts from record files / directories
- log:     Dump the run manifest
- verify:  Recompute artifact hashes against the manifest

USAGE:
    python -m scriptrecon.forensic [--output-dir DIR] COMMAND [ARGS]
"""
import argparse
from dataclasses import replace
import hashlib
import os
import sys

from .contracts.base import Severity
from .contracts.artifacts import ReconstructionState
from .emission import FileSystemSink, read_manifest
from .engine import PipelineConfig, ReconstructionPipeline
from .ingestion import discover_sources


OUTPUT_DIR_ENV = "SCRIPTRECON_OUTPUT_DIR"
DEFAULT_OUTPUT_DIR = "./data/artifacts"


def default_output_dir() -> str:
    return os.environ.get(OUTPUT_DIR_ENV, DEFAULT_OUTPUT_DIR)


def cmd_extract(args) -> int:
    """Run the pipeline over every input; 1 if any stream was unreadable."""
    try:
        config = PipelineConfig.load(args.config) if args.config else PipelineConfig()
    except (OSError, ValueError) as e:
        print(f"[!] Cannot load config {args.config}: {e}")
        return 2
    if args.text:
        config.emitter = replace(config.emitter, executable_format=False)
    if args.jobs is not None:
        if args.jobs < 1:
            print("[!] --jobs must be at least 1.")
            return 2
        config.max_concurrent_streams = args.jobs

    sources = discover_sources(args.inputs)
    if not sources:
        print("[!] No record files found.")
        return 1

    print(f"[*] Output directory: {args.output_dir}")
    print(f"[*] Processing {len(sources)} stream(s)...")
    pipeline = ReconstructionPipeline(FileSystemSink(args.output_dir), config)
    batch = pipeline.process_batch(sources)

    for report in batch.streams:
        if not report.succeeded:
            print(f"[FAIL] {report.source}: {report.fatal_error.message}")
            continue

        c = report.counters
        print(
            f"[*] {report.source}: {c.records_read} records, "
            f"{c.correlation_ids} correlation id(s), {len(report.emitted)} artifact(s)"
        )
        for entry in report.emitted:
            print(f"    {entry.identifier} [{entry.completeness.value}]")
        for diagnostic in report.diagnostics:
            if diagnostic.severity in (Severity.WARNING, Severity.ERROR):
                tag = "WARN" if diagnostic.severity == Severity.WARNING else "FAIL"
                print(f"[{tag}] {diagnostic.message}")

    print(
        f"[*] Done: {batch.artifact_count} artifact(s), "
        f"{len(batch.failed_streams)} unreadable stream(s)."
    )
    return 0 if batch.succeeded else 1


def cmd_log(args) -> int:
    """Dump the manifest, one line per correlation ID."""
    entries = read_manifest(args.output_dir)
    if not entries:
        print("No manifest.")
        return 0

    print("STATE         | COMPLETENESS | FRAGS   | IDENTIFIER / REASON")
    print("-" * 80)
    for entry in entries:
        completeness = entry.completeness.value if entry.completeness else "-"
        frags = f"{entry.fragment_count}/{entry.total_fragments}"
        if entry.state == ReconstructionState.SKIPPED:
            target = f"{entry.correlation_id} ({entry.skip_reason.value})"
        elif entry.write_error:
            target = f"{entry.correlation_id} (write failed: {entry.write_error})"
        else:
            target = entry.identifier
        print(f"{entry.state.value:<13} | {completeness:<12} | {frags:<7} | {target}")
    return 0


def cmd_verify(args) -> int:
    """Check every emitted artifact still hashes to its manifest value."""
    print(f"[*] Verifying artifacts at: {args.output_dir}")
    entries = [e for e in read_manifest(args.output_dir) if e.identifier]
    if not entries:
        print("[!] No emitted artifacts in manifest.")
        return 0

    errors = 0
    for entry in entries:
        path = os.path.join(args.output_dir, entry.identifier)
        try:
            with open(path, 'rb') as f:
                digest = hashlib.sha256(f.read()).hexdigest()
        except OSError as e:
            print(f"[FAIL] {entry.identifier}: {e}")
            errors += 1
            continue
        if digest != entry.content_hash:
            print(f"[FAIL] {entry.identifier}: hash mismatch")
            errors += 1

    if errors == 0:
        print(f"[PASS] Verified {len(entries)} artifact(s). Integrity intact.")
        return 0
    print(f"[FAIL] Found {errors} error(s).")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Script block reconstruction")
    parser.add_argument(
        "--output-dir", default=default_output_dir(),
        help=f"Artifact directory (default: ${OUTPUT_DIR_ENV} or {DEFAULT_OUTPUT_DIR})"
    )

    subparsers = parser.add_subparsers(dest="command")

    extract_parser = subparsers.add_parser("extract", help="Reconstruct artifacts")
    extract_parser.add_argument("inputs", nargs="+", help="Record files or directories")
    extract_parser.add_argument("--text", action="store_true", help="Write plain-text artifacts")
    extract_parser.add_argument("--config", help="Pipeline configuration JSON")
    extract_parser.add_argument("--jobs", type=int, help="Streams processed concurrently")

    subparsers.add_parser("log", help="Dump manifest")
    subparsers.add_parser("verify", help="Verify artifact hashes")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "extract":
        return cmd_extract(args)
    elif args.command == "log":
        return cmd_log(args)
    elif args.command == "verify":
        return cmd_verify(args)
    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
