from .backends import BaseBackend, DirectoryBackend, DryRunBackend, make_backend
from .exceptions import (
    InvalidJobTransition,
    PrintError,
    PrinterConfigError,
    PrintJobError,
    friendly_message,
    map_exception,
)
from .jobs import PrintJob
from .merge import merge_csv, read_csv
from .orchestrator import PrintJobOrchestrator
from .worker import BatchPrintWorker, WorkerSignals
