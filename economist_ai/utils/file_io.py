from __future__ import annotations

import re
import uuid
from pathlib import Path

from economist_ai.exception import ExtractionError, ValidationError
from economist_ai.logger import GLOBAL_LOGGER as log

SUPPORTED_TYPES = {"pdf", "docx", "xlsx", "txt", "csv"}


def safe_file_name(name: str, document_type: str) -> str:
    # only alphanum, dash, underscore; suffix keeps names unique per upload
    stem = re.sub(r"[^a-zA-Z0-9_\-]", "_", Path(name).stem).lower() or "upload"
    return f"{stem}_{uuid.uuid4().hex[:8]}.{document_type}"


def save_uploaded_bytes(
    data: bytes, file_name: str, document_type: str, target_dir: Path
) -> Path:
    """Materialize an uploaded file on disk so path-based loaders can read it."""
    if document_type not in SUPPORTED_TYPES:
        raise ValidationError(
            "Unsupported document type",
            details=f"{document_type} not in {sorted(SUPPORTED_TYPES)}",
        )
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        output_path = target_dir / safe_file_name(file_name, document_type)
        output_path.write_bytes(data)
        log.info(
            "File saved for ingestion | uploaded=%s | saved_as=%s | bytes=%d",
            file_name,
            str(output_path),
            len(data),
        )
        return output_path
    except OSError as e:
        log.error("Failed to save uploaded file | error=%s | dir=%s", str(e), str(target_dir))
        raise ExtractionError("Failed to save uploaded file", details=str(e)) from e


def remove_file(path: Path | None) -> None:
    """Delete a temporary upload; failures are logged, never raised."""
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
        log.debug("Temporary file removed | path=%s", str(path))
    except OSError as e:
        log.warning("Failed to remove temporary file | path=%s | error=%s", str(path), str(e))
