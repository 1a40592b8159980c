"""
Tkinter GUI for Wayback Archiver

Provides address input (pasted or loaded from file), an optional API key,
Start/Stop controls, progress and ETA, a results table, CSV export and a
per-address history lookup.
"""

import json
import os
import threading
import queue
import tkinter as tk
from tkinter import ttk, filedialog, messagebox

from wayback_archiver.core.controller import ArchiveController, RunConfig
from wayback_archiver.core.logger import initialize_logging, get_logger
from wayback_archiver.core.models import Severity
from wayback_archiver.core.status_resolver import ArchiveStatusResolver
from wayback_archiver.core.status_tracker import format_duration
from wayback_archiver.utils.file_manager import DEFAULT_EXPORT_NAME, STATUS_LABELS, read_url_file, save_results_csv
from wayback_archiver.utils.validators import InvalidInputError, validate_url


def table_rows(report) -> list:
    """(status, url, snapshot) for every row of a finished batch, in report order."""
    rows = [(STATUS_LABELS[r.outcome], r.address, r.snapshot_url or "") for r in report.results]
    for r in report.all_rows()[len(report.results):]:
        rows.append((f"{STATUS_LABELS[r.outcome]} (dup)", r.address, r.snapshot_url or ""))
    return rows


class ArchiverApp(tk.Tk):
    def __init__(self):
        super().__init__()
        self.title("Wayback Archiver - Batch Preservation Tool")
        self.geometry("820x640")
        self.logger = get_logger('gui')

        self._worker = None
        self._queue = queue.Queue()
        self._controller = None
        self._report = None

        self._build_ui()
        self._load_settings()
        self._poll_queue()

    def _build_ui(self):
        frm = ttk.Frame(self, padding=12)
        frm.pack(fill=tk.BOTH, expand=True)

        # Addresses
        ttk.Label(frm, text="URLs to archive (one per line)").grid(row=0, column=0, sticky="w")
        ttk.Button(frm, text="Load file", command=self._load_file).grid(row=0, column=3, sticky="e")
        self.urls_text = tk.Text(frm, height=8, width=90)
        self.urls_text.grid(row=1, column=0, columnspan=4, sticky="nsew", pady=4)

        # API key
        ttk.Label(frm, text="API key (optional)").grid(row=2, column=0, sticky="w")
        self.key_var = tk.StringVar()
        ttk.Entry(frm, textvariable=self.key_var, width=50, show="*").grid(row=2, column=1, columnspan=3,
                                                                         sticky="ew", pady=4)

        # Advanced
        adv_label = ttk.Label(frm, text="Advanced", font=("", 10, "bold"))
        adv_label.grid(row=3, column=0, sticky="w")
        ttk.Label(frm, text="Pacing (s)").grid(row=4, column=0, sticky="w")
        self.pacing_var = tk.DoubleVar(value=1.5)
        ttk.Entry(frm, textvariable=self.pacing_var, width=6).grid(row=4, column=0, sticky="w", padx=(80, 0))
        ttk.Label(frm, text="Propagation (s)").grid(row=4, column=1, sticky="w")
        self.propagation_var = tk.DoubleVar(value=8.0)
        ttk.Entry(frm, textvariable=self.propagation_var, width=6).grid(row=4, column=1, sticky="w", padx=(110, 0))
        ttk.Label(frm, text="Secondary lookup").grid(row=4, column=2, sticky="w")
        self.secondary_var = tk.StringVar(value="availability")
        ttk.Combobox(frm, values=["availability", "cdx"], textvariable=self.secondary_var,
                     width=12, state="readonly").grid(row=4, column=3, sticky="w")

        # Controls
        ctrl_frame = ttk.Frame(frm)
        ctrl_frame.grid(row=5, column=0, columnspan=4, sticky="ew", pady=8)
        self.start_btn = ttk.Button(ctrl_frame, text="Start", command=self._start)
        self.stop_btn = ttk.Button(ctrl_frame, text="Stop", command=self._stop, state=tk.DISABLED)
        self.export_btn = ttk.Button(ctrl_frame, text="Export CSV", command=self._export, state=tk.DISABLED)
        self.history_btn = ttk.Button(ctrl_frame, text="History", command=self._history)
        self.view_log_btn = ttk.Button(ctrl_frame, text="View Log", command=self._view_log)
        self.start_btn.pack(side=tk.LEFT)
        self.stop_btn.pack(side=tk.LEFT, padx=8)
        self.export_btn.pack(side=tk.LEFT, padx=8)
        self.history_btn.pack(side=tk.LEFT, padx=8)
        self.view_log_btn.pack(side=tk.LEFT)

        # Progress
        self.progress = ttk.Progressbar(frm, mode='determinate', maximum=100)
        self.progress.grid(row=6, column=0, columnspan=4, sticky="ew", pady=4)
        counters_frame = ttk.Frame(frm)
        counters_frame.grid(row=7, column=0, columnspan=4, sticky="ew")
        self.status_var = tk.StringVar(value="Idle")
        self.eta_var = tk.StringVar(value="")
        ttk.Label(counters_frame, textvariable=self.status_var).pack(side=tk.LEFT)
        ttk.Label(counters_frame, textvariable=self.eta_var).pack(side=tk.RIGHT)

        # Result table
        self.tree = ttk.Treeview(frm, columns=("status", "url", "snapshot"), show='headings', height=8)
        self.tree.heading("status", text="Status")
        self.tree.heading("url", text="URL")
        self.tree.heading("snapshot", text="Snapshot")
        self.tree.column("status", width=120)
        self.tree.column("snapshot", width=260)
        self.tree.grid(row=8, column=0, columnspan=4, sticky="nsew", pady=6)
        self._rows = {}

        # Log box
        self.log = tk.Text(frm, height=8)
        self.log.grid(row=9, column=0, columnspan=4, sticky="nsew", pady=6)
        frm.rowconfigure(8, weight=1)
        frm.columnconfigure(1, weight=1)

    def _load_file(self):
        path = filedialog.askopenfilename(filetypes=[("URL lists", "*.txt *.csv"), ("All files", "*.*")])
        if not path:
            return
        try:
            urls = read_url_file(path)
        except InvalidInputError as e:
            messagebox.showerror("Load file", str(e))
            return
        if not urls:
            messagebox.showwarning("Load file", "No valid URLs found in the file.")
            return
        self.urls_text.delete("1.0", tk.END)
        self.urls_text.insert("1.0", "\n".join(urls))
        self._log(f"Successfully extracted {len(urls)} URLs from the file.")

    def _start(self):
        raw_text = self.urls_text.get("1.0", tk.END)
        try:
            cfg = RunConfig(
                api_key=self.key_var.get().strip() or None,
                pacing_delay_secs=max(0.0, float(self.pacing_var.get() or 1.5)),
                propagation_delay_secs=max(0.0, float(self.propagation_var.get() or 8.0)),
                secondary_source=self.secondary_var.get() or "availability",
            )
        except (tk.TclError, ValueError):
            messagebox.showerror("Validation", "Pacing and propagation delays must be numbers")
            return
        self._controller = ArchiveController(cfg)
        self._controller.subscribe_status(lambda e: self._queue.put(("status", e)))
        self._controller.subscribe_progress(lambda p: self._queue.put(("progress", p)))
        self._controller.subscribe_eta(lambda e: self._queue.put(("eta", e)))

        # Input errors surface before any worker starts
        try:
            batch = self._controller.processor.prepare_batch(raw_text)
        except InvalidInputError as e:
            messagebox.showerror("Validation", str(e))
            return
        if batch.has_duplicates:
            self._log(f"Found {len(batch.duplicates)} duplicate URLs that will be processed only once.")

        self._reset_results()
        self.start_btn.config(state=tk.DISABLED)
        self.stop_btn.config(state=tk.NORMAL)
        self.export_btn.config(state=tk.DISABLED)

        controller = self._controller

        def run_worker():
            try:
                report = controller.run_batch(raw_text)
                self._queue.put(("done", report))
                report_path = controller.write_error_report()
                if report_path:
                    self._queue.put(("log", f"Error report saved to {report_path}"))
            except Exception as e:
                self.logger.exception("Batch failed")
                self._queue.put(("error", str(e)))
            finally:
                controller.close()

        self._worker = threading.Thread(target=run_worker, daemon=True)
        self._worker.start()
        self._log("Started")
        self._save_settings()

    def _stop(self):
        if self._controller:
            self._controller.stop()

    def _export(self):
        if not self._report:
            messagebox.showinfo("Export", "No results to export.")
            return
        path = filedialog.asksaveasfilename(defaultextension=".csv", initialfile=DEFAULT_EXPORT_NAME,
                                            filetypes=[("CSV", "*.csv")])
        if not path:
            return
        try:
            saved = save_results_csv(self._report.all_rows(), path)
        except OSError as e:
            messagebox.showerror("Export", str(e))
            return
        if saved:
            self._log(f"Exported results to {saved}")

    def _history(self):
        selected = self.tree.selection()
        if not selected:
            messagebox.showerror("History", "Select a row in the results table first")
            return
        url = self.tree.item(selected[0], 'values')[1]
        ok, error = validate_url(url)
        if not ok:
            messagebox.showerror("History", error)
            return
        self._log(f"Fetching archive history for {url}...")

        def worker():
            resolver = ArchiveStatusResolver()
            try:
                captures = resolver.get_archive_history(url)
                self._queue.put(("history", (url, captures)))
            except Exception as e:
                self._queue.put(("error", f"History lookup failed: {e}"))
            finally:
                resolver.close()
        threading.Thread(target=worker, daemon=True).start()

    def _poll_queue(self):
        try:
            while True:
                kind, payload = self._queue.get_nowait()
                if kind == "status":
                    self._handle_status(payload)
                elif kind == "progress":
                    self.progress['value'] = payload.percentage
                    self.status_var.set(f"{payload.processed_count}/{payload.total_count} "
                                        f"({payload.percentage}%)")
                elif kind == "eta":
                    self.eta_var.set(f"ETA: {format_duration(payload.eta_millis)}"
                                     if payload.remaining_count else "")
                elif kind == "history":
                    self._show_history_window(*payload)
                elif kind == "done":
                    self._report = payload
                    self._show_report(payload)
                    self._finish("Stopped" if payload.stopped else "Completed")
                    self._log(f"Completed: {self._controller.tracker.summary() if self._controller else ''}")
                elif kind == "log":
                    self._log(payload)
                elif kind == "error":
                    self._finish("Error")
                    self._log(f"Error: {payload}")
        except queue.Empty:
            pass
        self.after(150, self._poll_queue)

    def _finish(self, status: str):
        self.start_btn.config(state=tk.NORMAL)
        self.stop_btn.config(state=tk.DISABLED)
        self.export_btn.config(state=tk.NORMAL if self._report else tk.DISABLED)
        self.eta_var.set("")
        self._log(status)

    def _handle_status(self, event):
        if event.address:
            self._set_row(event.address, event.message, event.snapshot_url or "")
            self._log(f"[{event.severity.value}] {event.message} - {event.address}")
            if event.details and event.severity != Severity.INFO:
                self._log(f"    {event.details}")
        else:
            self._log(f"[{event.severity.value}] {event.message}")

    def _set_row(self, url: str, status: str, snapshot: str):
        row_id = self._rows.get(url)
        if row_id is None:
            self._rows[url] = self.tree.insert('', tk.END, values=(status, url, snapshot))
        else:
            self.tree.item(row_id, values=(status, url, snapshot))

    def _show_report(self, report):
        """Replace the live rows with one row per result, duplicates included."""
        self._clear_table()
        for values in table_rows(report):
            self.tree.insert('', tk.END, values=values)

    def _clear_table(self):
        self._rows = {}
        for item in self.tree.get_children():
            self.tree.delete(item)

    def _reset_results(self):
        self._report = None
        self._clear_table()
        self.progress['value'] = 0
        self.status_var.set("Starting...")
        self.eta_var.set("")

    def _log(self, msg: str):
        self.log.insert(tk.END, f"{msg}\n")
        self.log.see(tk.END)

    def _show_history_window(self, url: str, captures: list):
        win = tk.Toplevel(self)
        win.title("Archive History")
        win.geometry("700x400")
        ttk.Label(win, text=f"{len(captures)} recent capture(s) of {url}").pack(anchor='w', padx=10, pady=6)
        frame = ttk.Frame(win)
        frame.pack(fill=tk.BOTH, expand=True, padx=10, pady=6)
        listbox = tk.Listbox(frame)
        listbox.pack(side=tk.LEFT, fill=tk.BOTH, expand=True)
        sb = ttk.Scrollbar(frame, orient=tk.VERTICAL, command=listbox.yview)
        sb.pack(side=tk.RIGHT, fill=tk.Y)
        listbox.configure(yscrollcommand=sb.set)
        for rec in captures:
            listbox.insert(tk.END, f"{rec['formatted_date']}  {rec['wayback_url']}")
        ttk.Button(win, text="Close", command=win.destroy).pack(pady=8)

    # Utilities
    def _view_log(self):
        import subprocess, sys
        path = os.path.abspath('logs')
        try:
            if sys.platform.startswith('darwin'):
                subprocess.Popen(['open', path])
            elif os.name == 'nt':
                os.startfile(path)
            else:
                subprocess.Popen(['xdg-open', path])
        except OSError as e:
            messagebox.showerror("View Log", str(e))

    # Settings persistence; the API key is never written
    def _settings_path(self):
        return os.path.join(os.path.abspath('.'), '.wayback_archiver_gui.json')

    def _load_settings(self):
        path = self._settings_path()
        if not os.path.exists(path):
            return
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            self.pacing_var.set(float(data.get('pacing_delay_secs', 1.5)))
            self.propagation_var.set(float(data.get('propagation_delay_secs', 8.0)))
            self.secondary_var.set(data.get('secondary_source', 'availability'))
        except (OSError, ValueError, TypeError) as e:
            self.logger.warning(f"Ignoring unreadable settings file {path}: {e}")

    def _save_settings(self):
        data = {
            'pacing_delay_secs': float(self.pacing_var.get() or 1.5),
            'propagation_delay_secs': float(self.propagation_var.get() or 8.0),
            'secondary_source': self.secondary_var.get() or 'availability',
        }
        try:
            with open(self._settings_path(), 'w', encoding='utf-8') as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
        except OSError as e:
            self.logger.warning(f"Could not save settings: {e}")


def main():
    initialize_logging()
    app = ArchiverApp()
    app.mainloop()


if __name__ == "__main__":
    main()
