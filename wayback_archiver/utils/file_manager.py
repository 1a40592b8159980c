"""
File Management Utilities

Reading address lists from uploaded files and exporting batch results
as CSV.
"""

import csv
import io
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from wayback_archiver.core.models import Outcome, ProcessingResult
from wayback_archiver.core.url_processor import URLProcessor
from .validators import InvalidInputError


MAX_INPUT_FILE_BYTES = 10 * 1024 * 1024  # 10MB
ALLOWED_EXTENSIONS = ('.txt', '.csv')
DEFAULT_EXPORT_NAME = "wayback-archive-results.csv"
CSV_HEADER = ['URL', 'Status', 'Archive URL', 'Archive Date', 'Details']

STATUS_LABELS = {
    Outcome.ALREADY_ARCHIVED: "Already archived",
    Outcome.ARCHIVED: "Archived",
    Outcome.VERIFICATION_FAILED: "Verification failed",
    Outcome.ERROR: "Error",
}

logger = logging.getLogger(__name__)


def validate_input_file(path: str) -> Tuple[bool, str]:
    """
    Check that a file can be used as an address list.

    Returns:
        Tuple of (is_valid, error_message)
    """
    file_path = Path(path)
    if not path or not file_path.is_file():
        return False, "No file selected"
    if file_path.suffix.lower() not in ALLOWED_EXTENSIONS:
        return False, "Invalid file type. Please upload a TXT or CSV file."
    if file_path.stat().st_size > MAX_INPUT_FILE_BYTES:
        return False, "File is too large. Maximum size is 10MB."
    return True, ""


def read_url_file(path: str, processor: Optional[URLProcessor] = None) -> List[str]:
    """
    Extract addresses from a .txt or .csv file.

    Raises:
        InvalidInputError: If the file is missing, too large or of the wrong type
    """
    ok, error = validate_input_file(path)
    if not ok:
        raise InvalidInputError(error)

    content = Path(path).read_text(encoding='utf-8', errors='replace')
    addresses = (processor or URLProcessor()).extract_from_blob(content)
    logger.info(f"Extracted {len(addresses)} URLs from {path}")
    return addresses


def export_results_csv(results: Iterable[ProcessingResult]) -> str:
    """
    Render results as CSV text (header first). Fields containing commas,
    quotes or newlines are quoted with doubled inner quotes.
    """
    results = list(results)
    if not results:
        return ''

    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator='\n')
    writer.writerow(CSV_HEADER)
    for result in results:
        writer.writerow([
            result.address,
            STATUS_LABELS[result.outcome],
            result.snapshot_url or '',
            result.formatted_date or '',
            ' '.join(result.details),
        ])
    return buf.getvalue()


def save_results_csv(results: Iterable[ProcessingResult], output_path: str = DEFAULT_EXPORT_NAME) -> Optional[str]:
    """
    Write results to a CSV file.

    Returns:
        Path to the written file, or None if there was nothing to export
    """
    content = export_results_csv(results)
    if not content:
        logger.warning("No results to export.")
        return None

    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding='utf-8')
    logger.info(f"Exported results to: {path.absolute()}")
    return str(path)
