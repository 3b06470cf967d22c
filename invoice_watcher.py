#!/usr/bin/env python3
"""
Invoice Folder Watcher - Automatic Intake

Watches a folder for new invoice PDFs and sends each one through the
robust processing endpoint, filing it under a project. Processed files
move to the processed folder, failures to the failed folder, and every
outcome is appended to processing_log.json next to the watch folder.

Usage:
    python invoice_watcher.py --project-id 12 --watch-folder ./facturas-entrantes
    python invoice_watcher.py --project-id 12 --action extract
"""

import argparse
import json
import time
from datetime import datetime
from pathlib import Path

import requests
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from invoice_intake.core.config import settings

REQUEST_TIMEOUT = 120


class InvoiceHandler(FileSystemEventHandler):
    """Handles new invoice file events"""

    def __init__(self, watch_folder, processed_folder, failed_folder, project_id: int,
                 api_url: str = None, action: str = None):
        self.watch_folder = Path(watch_folder)
        self.processed_folder = Path(processed_folder)
        self.failed_folder = Path(failed_folder)
        self.project_id = project_id
        self.api_url = (api_url or settings.api_base_url).rstrip("/")
        self.action = action
        self.processed_files = set()

        self.processed_folder.mkdir(parents=True, exist_ok=True)
        self.failed_folder.mkdir(parents=True, exist_ok=True)

    def on_created(self, event):
        """Called when a file is created in the watched folder"""
        if event.is_directory:
            return

        file_path = Path(event.src_path)

        if file_path.suffix.lower() != ".pdf":
            return

        if file_path in self.processed_files:
            return

        # Small delay to ensure file is fully written
        time.sleep(1)

        if not file_path.exists():
            return

        self.processed_files.add(file_path)
        self.process_invoice(file_path)

    def process_invoice(self, file_path: Path) -> bool:
        """Send one PDF to the API; returns True when the invoice was accepted"""
        print("\n" + "=" * 70)
        print(f"📄 NUEVA FACTURA: {file_path.name}")
        print("=" * 70)
        print(f"Hora: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        print(f"Tamaño: {file_path.stat().st_size:,} bytes")
        print(f"Proyecto: {self.project_id}")

        form = {"projectId": str(self.project_id)}
        if self.action:
            form["action"] = self.action

        try:
            with open(file_path, "rb") as f:
                files = {"file": (file_path.name, f, "application/pdf")}
                response = requests.post(
                    f"{self.api_url}/api/invoices/process-robust",
                    files=files,
                    data=form,
                    timeout=REQUEST_TIMEOUT,
                )
        except requests.exceptions.Timeout:
            self.handle_error(file_path, "Timeout")
            return False
        except requests.exceptions.RequestException as e:
            self.handle_error(file_path, str(e))
            return False

        try:
            data = response.json()
        except ValueError:
            data = {"error": response.text}

        if response.status_code == 200 and data.get("success"):
            self.handle_success(file_path, data)
            return True

        error = data.get("error") or f"API returned {response.status_code}"
        print(f"❌ API Error: {response.status_code}")
        self.handle_error(file_path, error, data.get("details"))
        return False

    def handle_success(self, file_path: Path, data: dict):
        # Extract-only responses carry the record under "data" and nothing was saved
        extracted_only = "invoice" not in data
        invoice = data.get("invoice") or data.get("data") or {}

        print()
        print("📊 DATOS EXTRAÍDOS:")
        print(f"   Emisor: {invoice.get('issuer_name')} ({invoice.get('issuer_rut')})")
        print(f"   Factura N°: {invoice.get('invoice_number')}")
        print(f"   Fecha: {invoice.get('issue_date')}")
        print(f"   Total: $ {float(invoice.get('total_amount') or 0):,.0f}")

        if extracted_only:
            print("   ⚠️  Solo extracción: la factura no fue guardada")
            dest_path = self.processed_folder / f"PENDIENTE_{file_path.name}"
            file_path.rename(dest_path)
            print(f"\n📁 Movido a: {dest_path}")
            self.log_processing(
                file_path.name,
                "extracted",
                dest_path,
                invoice=invoice,
                pdf_url=data.get("pdfUrl"),
                verification=data.get("verification"),
            )
            print("=" * 70)
            return

        dest_path = self.processed_folder / f"✅_{file_path.name}"
        file_path.rename(dest_path)
        print(f"\n📁 Movido a: {dest_path}")

        self.log_processing(file_path.name, "processed", dest_path, invoice_id=invoice.get("id"), invoice=invoice)
        print("=" * 70)

    def handle_error(self, file_path: Path, error_msg: str, details=None):
        print(f"\n❌ Error procesando: {error_msg}")

        dest_path = self.failed_folder / f"ERROR_{file_path.name}"
        file_path.rename(dest_path)
        print(f"📁 Movido a: {dest_path}")

        self.log_processing(file_path.name, "failed", dest_path, error=error_msg, details=details)
        print("=" * 70)

    def log_processing(self, filename: str, outcome: str, dest_path: Path, **extra):
        """Append one entry to processing_log.json"""
        log_file = self.watch_folder.parent / "processing_log.json"

        if log_file.exists():
            with open(log_file, "r", encoding="utf-8") as f:
                log_data = json.load(f)
        else:
            log_data = []

        log_data.append({
            "timestamp": datetime.now().isoformat(),
            "filename": filename,
            "project_id": self.project_id,
            "outcome": outcome,
            "destination": str(dest_path),
            **extra,
        })

        with open(log_file, "w", encoding="utf-8") as f:
            json.dump(log_data, f, indent=2, ensure_ascii=False)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Watch a folder for invoice PDFs and send them to the intake API"
    )
    parser.add_argument(
        "--project-id",
        type=int,
        required=True,
        help="Project the invoices belong to",
    )
    parser.add_argument(
        "--watch-folder",
        default="./facturas-entrantes",
        help="Folder to watch for new invoices (default: ./facturas-entrantes)",
    )
    parser.add_argument(
        "--processed-folder",
        default="./facturas-procesadas",
        help="Folder for processed invoices (default: ./facturas-procesadas)",
    )
    parser.add_argument(
        "--failed-folder",
        default="./facturas-fallidas",
        help="Folder for invoices that failed (default: ./facturas-fallidas)",
    )
    parser.add_argument(
        "--api-url",
        default=settings.api_base_url,
        help=f"API base URL (default: {settings.api_base_url})",
    )
    parser.add_argument(
        "--action",
        choices=["extract"],
        default=None,
        help="Use 'extract' to only extract and upload, leaving the invoice unsaved for review",
    )

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    watch_folder = Path(args.watch_folder)
    watch_folder.mkdir(exist_ok=True)

    event_handler = InvoiceHandler(
        args.watch_folder,
        args.processed_folder,
        args.failed_folder,
        project_id=args.project_id,
        api_url=args.api_url,
        action=args.action,
    )
    observer = Observer()
    observer.schedule(event_handler, str(watch_folder), recursive=False)
    observer.start()

    print("=" * 70)
    print("🔍 INVOICE WATCHER - INGRESO AUTOMÁTICO")
    print("=" * 70)
    print(f"Watching: {watch_folder.absolute()}")
    print(f"Procesadas → {Path(args.processed_folder).absolute()}")
    print(f"Fallidas → {Path(args.failed_folder).absolute()}")
    print(f"API: {args.api_url}")
    print(f"Proyecto: {args.project_id}")
    if args.action:
        print(f"Acción: {args.action}")
    print()
    print("💡 Drop PDF invoices into the watch folder to process them")
    print("Press Ctrl+C to stop")
    print("=" * 70)
    print()

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\n\n👋 Stopping watcher...")
        observer.stop()

    observer.join()
    print("✅ Watcher stopped")


if __name__ == "__main__":
    main()
