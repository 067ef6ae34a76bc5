#!/usr/bin/env python3
"""
Discord Attachment Downloader

Reads the messages export of a Discord data package and downloads every
attachment URL it references into one folder, one file at a time.

Key Behaviour:
- Deterministic names: <message ID>_<ordinal><ext>, stable across runs
- Resumable: files already present in the output folder are skipped
- Paced: a fixed delay follows every network request
- Failure-isolated: a bad URL or failed download is reported and the run continues
- Graceful stop: Ctrl-C finishes the current message, then prints the summary

Run States:
    RUNNING → COMPLETED
       ↓
    CANCELLED

Usage:
    python download_attachments.py --input data/messages.json --output downloads
    python download_attachments.py --config run.json
"""

from __future__ import annotations

import argparse
import json
import os
import signal
import sys
import threading
import time
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Iterator, Optional

import requests
from tqdm import tqdm

from attachment_errors import FatalSetupError, ParseError, TransferError, UrlError
from message_records import (
    DEFAULT_ATTACHMENTS_FIELD,
    DEFAULT_ID_FIELD,
    Record,
    load_messages,
)
from single_download import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_TIMEOUT_SEC,
    DEFAULT_USER_AGENT,
    create_session,
    derive_filename,
    download_single,
)


# =============================================================================
# CONFIGURATION
# =============================================================================

DEFAULT_INPUT = "data/messages.json"
DEFAULT_OUTPUT = "downloads"
DEFAULT_DELAY_SEC = 0.7


@dataclass(frozen=True)
class Config:
    """Main application configuration."""
    input_path: str = DEFAULT_INPUT
    output_folder: str = DEFAULT_OUTPUT
    input_format: Optional[str] = None
    id_field: str = DEFAULT_ID_FIELD
    attachments_field: str = DEFAULT_ATTACHMENTS_FIELD
    delay_sec: float = DEFAULT_DELAY_SEC
    timeout_sec: float = DEFAULT_TIMEOUT_SEC
    chunk_size: int = DEFAULT_CHUNK_SIZE
    user_agent: str = DEFAULT_USER_AGENT
    show_progress: bool = True
    create_overview: bool = True


def parse_args(argv: Optional[list[str]] = None) -> Config:
    """Parse command line arguments or JSON config file."""
    p = argparse.ArgumentParser(
        description="Download all attachments referenced by a Discord messages export",
    )

    p.add_argument("--config", type=str, help="Path to JSON config file")
    p.add_argument("--input", dest="input_path", type=str, default=DEFAULT_INPUT)
    p.add_argument("--input_format", type=str, choices=["json", "csv"], default=None)
    p.add_argument("--output", dest="output_folder", type=str, default=DEFAULT_OUTPUT)
    p.add_argument("--id_field", type=str, default=DEFAULT_ID_FIELD)
    p.add_argument("--attachments_field", type=str, default=DEFAULT_ATTACHMENTS_FIELD)
    p.add_argument("--delay", dest="delay_sec", type=float, default=DEFAULT_DELAY_SEC,
                   help="Seconds to wait after each download attempt")
    p.add_argument("--timeout", dest="timeout_sec", type=float, default=DEFAULT_TIMEOUT_SEC)
    p.add_argument("--chunk_size", type=int, default=DEFAULT_CHUNK_SIZE)
    p.add_argument("--user_agent", type=str, default=DEFAULT_USER_AGENT)
    p.add_argument("--no_progress", action="store_true")
    p.add_argument("--no_overview", action="store_true")

    args = p.parse_args(argv)

    # Load from JSON if provided
    if args.config:
        try:
            with open(args.config) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            p.error(f"Cannot read config file {args.config}: {e}")
        if not isinstance(data, dict):
            p.error(f"Config file {args.config} must contain a JSON object")

        try:
            cfg = Config(
                input_path=data.get("input", args.input_path),
                output_folder=data.get("output", args.output_folder),
                input_format=data.get("input_format", args.input_format),
                id_field=data.get("id_field", args.id_field),
                attachments_field=data.get("attachments_field", args.attachments_field),
                delay_sec=float(data.get("delay", args.delay_sec)),
                timeout_sec=float(data.get("timeout", args.timeout_sec)),
                chunk_size=int(data.get("chunk_size", args.chunk_size)),
                user_agent=data.get("user_agent", args.user_agent),
                show_progress=data.get("progress", not args.no_progress),
                create_overview=data.get("overview", not args.no_overview),
            )
        except (TypeError, ValueError) as e:
            p.error(f"Invalid value in config file {args.config}: {e}")
    else:
        cfg = Config(
            input_path=args.input_path,
            output_folder=args.output_folder,
            input_format=args.input_format,
            id_field=args.id_field,
            attachments_field=args.attachments_field,
            delay_sec=args.delay_sec,
            timeout_sec=args.timeout_sec,
            chunk_size=args.chunk_size,
            user_agent=args.user_agent,
            show_progress=not args.no_progress,
            create_overview=not args.no_overview,
        )

    if cfg.input_format not in (None, "json", "csv"):
        p.error(f"input_format must be 'json' or 'csv', got {cfg.input_format!r}")
    if cfg.delay_sec < 0:
        p.error("delay must be >= 0")
    if cfg.timeout_sec <= 0:
        p.error("timeout must be > 0")
    if cfg.chunk_size <= 0:
        p.error("chunk_size must be > 0")

    return cfg


# =============================================================================
# INPUT VALIDATION AND LOADING
# =============================================================================

def validate_and_load(cfg: Config) -> list[Record]:
    """
    Load the message records and make sure the output folder exists.

    Raises:
        FatalSetupError: Input missing/unreadable or output folder not creatable
        ParseError: Input is not a valid messages export
    """
    in_path = Path(cfg.input_path)
    if not in_path.is_file():
        raise FatalSetupError(
            f"Input file not found: {in_path}. "
            f"Place your messages export at this path or pass --input."
        )

    records = load_messages(
        str(in_path),
        cfg.input_format,
        id_field=cfg.id_field,
        attachments_field=cfg.attachments_field,
    )

    out_dir = Path(cfg.output_folder)
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FatalSetupError(f"Cannot create output folder {out_dir}: {e}") from e

    return records


# =============================================================================
# OUTCOMES
# =============================================================================

class OutcomeStatus(Enum):
    DOWNLOADED = auto()
    SKIPPED_EXISTING = auto()
    FAILED = auto()


class RunState(Enum):
    RUNNING = auto()
    CANCELLED = auto()
    COMPLETED = auto()


@dataclass(frozen=True)
class AttachmentTask:
    """One URL to fetch, tied to its message and position."""
    identifier: str
    ordinal: int
    url: str
    filename: str


@dataclass
class DownloadOutcome:
    """Result of a single attachment."""
    identifier: str
    ordinal: int
    url: str
    status: OutcomeStatus
    file_path: Optional[str] = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    bytes_downloaded: int = 0
    attempted: bool = False  # a request was sent


@dataclass
class RunSummary:
    """Counters for one run."""
    state: RunState = RunState.RUNNING
    records_total: int = 0
    records_processed: int = 0
    downloaded: int = 0
    skipped: int = 0
    failed: int = 0
    bytes_downloaded: int = 0
    elapsed_sec: float = 0.0

    def add(self, outcome: DownloadOutcome) -> None:
        if outcome.status is OutcomeStatus.DOWNLOADED:
            self.downloaded += 1
            self.bytes_downloaded += outcome.bytes_downloaded
        elif outcome.status is OutcomeStatus.SKIPPED_EXISTING:
            self.skipped += 1
        else:
            self.failed += 1


# =============================================================================
# BATCH RUNNER
# =============================================================================

def iter_tasks(record: Record) -> Iterator[tuple[int, str]]:
    """
    Yield (ordinal, url) pairs in attachment field order, ordinals from 1.

    The AttachmentTask is built by process_attachment once the filename has
    been derived, since naming is where a bad URL is rejected.
    """
    return enumerate(record.attachments, 1)


def process_attachment(
    session: requests.Session,
    identifier: str,
    ordinal: int,
    url: str,
    output_folder: str,
    cfg: Config,
) -> DownloadOutcome:
    """Name, skip or download one attachment. Never raises for per-URL problems."""
    try:
        filename = derive_filename(identifier, ordinal, url)
    except UrlError as e:
        return DownloadOutcome(identifier, ordinal, url, OutcomeStatus.FAILED, error=str(e))

    task = AttachmentTask(identifier, ordinal, url, filename)
    file_path = os.path.join(output_folder, task.filename)

    if os.path.exists(file_path):
        return DownloadOutcome(
            identifier, ordinal, url, OutcomeStatus.SKIPPED_EXISTING, file_path=file_path,
        )

    try:
        size = download_single(
            session, task.url, file_path, timeout=cfg.timeout_sec, chunk_size=cfg.chunk_size,
        )
    except TransferError as e:
        return DownloadOutcome(
            identifier, ordinal, url, OutcomeStatus.FAILED,
            error=e.reason, status_code=e.status_code, attempted=True,
        )

    return DownloadOutcome(
        identifier, ordinal, url, OutcomeStatus.DOWNLOADED,
        file_path=file_path, bytes_downloaded=size, attempted=True,
    )


def report_outcome(outcome: DownloadOutcome) -> None:
    """Print one outcome line without breaking the progress bar."""
    if outcome.status is OutcomeStatus.DOWNLOADED:
        tqdm.write(f"[Download] {outcome.file_path} ({outcome.bytes_downloaded} bytes)")
    elif outcome.status is OutcomeStatus.SKIPPED_EXISTING:
        tqdm.write(f"[Skip] Existing file: {outcome.file_path}")
    else:
        tqdm.write(f"[Error] {outcome.url}: {outcome.error}")


def run_batch(
    records: list[Record],
    output_folder: str,
    cfg: Config,
    session: requests.Session,
    cancel: Optional[threading.Event] = None,
) -> RunSummary:
    """
    Download every attachment of every record, strictly in order.

    The cancel event is checked before each record only, so a record that has
    started is always finished.
    """
    summary = RunSummary(records_total=len(records))
    start = time.monotonic()
    total = sum(len(r.attachments) for r in records)

    with tqdm(total=total, desc="Downloading", unit="file", disable=not cfg.show_progress) as pbar:
        for record in records:
            if cancel is not None and cancel.is_set():
                summary.state = RunState.CANCELLED
                break

            summary.records_processed += 1

            for ordinal, url in iter_tasks(record):
                outcome = process_attachment(
                    session, record.identifier, ordinal, url, output_folder, cfg,
                )
                summary.add(outcome)
                report_outcome(outcome)
                pbar.update(1)

                if outcome.attempted and cfg.delay_sec > 0:
                    time.sleep(cfg.delay_sec)

    if summary.state is RunState.RUNNING:
        summary.state = RunState.COMPLETED
    summary.elapsed_sec = time.monotonic() - start
    return summary


# =============================================================================
# REPORTING
# =============================================================================

def print_summary(summary: RunSummary) -> None:
    print("\n" + "=" * 72)
    if summary.state is RunState.CANCELLED:
        print("STOPPED BY USER")
    else:
        print("FINAL SUMMARY")
    print("=" * 72)
    print(f"Messages processed:    {summary.records_processed}/{summary.records_total}")
    print(f"Downloaded:            {summary.downloaded}")
    print(f"Skipped (existing):    {summary.skipped}")
    print(f"Failed:                {summary.failed}")
    print(f"Total downloaded:      {summary.bytes_downloaded / 1e6:.2f} MB")
    print(f"Elapsed time:          {summary.elapsed_sec:.2f}s")
    print("=" * 72)


def write_overview(cfg: Config, summary: RunSummary) -> str:
    """Write JSON overview report next to the output folder."""
    report = {
        "script_inputs": {
            "input": cfg.input_path,
            "output_folder": cfg.output_folder,
            "input_format": cfg.input_format,
            "delay_sec": cfg.delay_sec,
            "timeout_sec": cfg.timeout_sec,
        },
        "summary": {
            "state": summary.state.name.lower(),
            "messages_total": summary.records_total,
            "messages_processed": summary.records_processed,
            "downloaded": summary.downloaded,
            "skipped_existing": summary.skipped,
            "failed": summary.failed,
            "downloaded_mb": round(summary.bytes_downloaded / 1e6, 3),
            "elapsed_sec": round(summary.elapsed_sec, 3),
        },
        "timestamp_local": time.strftime("%Y-%m-%d %H:%M:%S", time.localtime()),
    }

    out = Path(cfg.output_folder).resolve()
    if out.name:
        overview_path = out.with_name(out.name + "_overview.json")
    else:
        # filesystem root has no sibling
        overview_path = out / "overview.json"

    with overview_path.open("w") as f:
        json.dump(report, f, indent=2)

    return str(overview_path.resolve())


# =============================================================================
# SHUTDOWN HANDLING
# =============================================================================

def install_interrupt_handler(cancel: threading.Event) -> None:
    """
    First SIGINT/SIGTERM requests a graceful stop; a second one aborts
    the current transfer with KeyboardInterrupt.
    """
    def _signal_handler(sig, frame):
        if cancel.is_set():
            raise KeyboardInterrupt
        print("\n[Shutdown] Interrupt received. Stopping after the current message...")
        cancel.set()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)


# =============================================================================
# MAIN
# =============================================================================

def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point. Returns the process exit status."""
    cfg = parse_args(argv)

    print("=" * 72)
    print("Discord Attachment Downloader")
    print("=" * 72)

    # Installed before loading so an interrupt during a long load stops cleanly
    cancel = threading.Event()
    install_interrupt_handler(cancel)

    try:
        records = validate_and_load(cfg)
    except (FatalSetupError, ParseError) as e:
        print(f"[Error] {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n[Shutdown] Aborted while loading input.", file=sys.stderr)
        return 130

    attachment_count = sum(len(r.attachments) for r in records)
    print(f"[Load] Messages: {len(records)} | attachments: {attachment_count}")
    print(f"[I/O] Output folder: {cfg.output_folder}")

    session = create_session(cfg.user_agent)
    try:
        summary = run_batch(records, cfg.output_folder, cfg, session, cancel)
    except KeyboardInterrupt:
        print("\n[Shutdown] Aborted.", file=sys.stderr)
        return 130
    finally:
        session.close()

    print_summary(summary)

    if cfg.create_overview:
        try:
            overview = write_overview(cfg, summary)
            print(f"[Report] Overview: {overview}")
        except (OSError, ValueError) as e:
            print(f"[Report] Failed: {e}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
