"""
Upload orchestration: sniff, transform, store and record a batch of files.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from gallery.adapters.ledger import JsonLedger
from gallery.config import Settings
from gallery.domain.models import (
    FileOutcome,
    FileStatus,
    UploadRecord,
    UploadResponse,
    format_utc_iso,
)
from gallery.security.uploads import ImageStore, StorageError, is_image_type, sniff_media_type
from gallery.services.image_service import ImageProcessingError, ImageTransformer

logger = logging.getLogger(__name__)

REASON_UNSUPPORTED = "unsupported_media_type"
REASON_PROCESSING = "processing_failed"
REASON_STORAGE = "storage_failed"


@dataclass(frozen=True, slots=True)
class IncomingFile:
    """An uploaded file that already passed the transport-level checks."""

    original_name: str
    data: bytes
    declared_type: Optional[str] = None


@dataclass
class BatchResult:
    """Outcome of one batch: the response body and the records it committed."""

    response: UploadResponse
    records: List[UploadRecord] = field(default_factory=list)


class UploadService:
    """Runs the per-file pipeline and commits the batch to the ledger once."""

    def __init__(self, store: ImageStore, transformer: ImageTransformer, ledger: JsonLedger):
        self.store = store
        self.transformer = transformer
        self.ledger = ledger

    @classmethod
    def from_settings(cls, settings: Settings) -> "UploadService":
        return cls(
            store=ImageStore(settings.upload_dir, settings.thumbs_dir),
            transformer=ImageTransformer(
                max_dimension=settings.max_dimension,
                thumbnail_size=settings.thumbnail_size,
            ),
            ledger=JsonLedger(settings.ledger_path),
        )

    def process_batch(self, files: Sequence[IncomingFile]) -> BatchResult:
        """
        Process every file in order and append accepted records to the ledger.

        Files that are not images, cannot be decoded or cannot be written are
        reported in the result and left out of the ledger; the rest of the
        batch still goes through. Directory and ledger failures propagate.
        """
        # A ledger that cannot be read fails the batch before anything is written.
        self.ledger.load()
        self.store.prepare()

        outcomes: List[FileOutcome] = []
        records: List[UploadRecord] = []
        for index, incoming in enumerate(files):
            outcome, record = self._process_one(index, incoming)
            outcomes.append(outcome)
            if record is not None:
                records.append(record)

        # The last processed file is the newest one.
        newest_first = list(reversed(records))
        self.ledger.append_batch(newest_first)
        logger.info(
            "Upload batch committed received=%d accepted=%d", len(files), len(records)
        )
        return BatchResult(
            response=UploadResponse(ok=True, accepted=len(records), results=outcomes),
            records=newest_first,
        )

    def list_records(self) -> List[UploadRecord]:
        return self.ledger.load()

    def _process_one(
        self, index: int, incoming: IncomingFile
    ) -> Tuple[FileOutcome, Optional[UploadRecord]]:
        media_type = sniff_media_type(incoming.data)
        if not is_image_type(media_type):
            logger.info(
                "Skipping file index=%d declared=%s sniffed=%s",
                index,
                incoming.declared_type,
                media_type,
            )
            return self._rejected(index, incoming, FileStatus.SKIPPED, REASON_UNSUPPORTED), None

        try:
            transformed = self.transformer.transform(incoming.data)
        except ImageProcessingError as exc:
            logger.warning("Image processing failed index=%d mime=%s: %s", index, media_type, exc)
            return self._rejected(index, incoming, FileStatus.FAILED, REASON_PROCESSING), None

        names = self.store.allocate(media_type, transformed.thumbnail_type)
        try:
            stored = self.store.write(names, transformed.full, transformed.thumbnail)
        except StorageError as exc:
            logger.error("Storing image failed index=%d: %s", index, exc)
            return self._rejected(index, incoming, FileStatus.FAILED, REASON_STORAGE), None

        record = UploadRecord(
            id=str(uuid.uuid4()),
            filename=stored.filename,
            thumb=stored.thumb,
            original_name=incoming.original_name,
            mime=media_type,
            size=len(incoming.data),
            width=transformed.width,
            height=transformed.height,
            created_at=format_utc_iso(datetime.now(timezone.utc)),
        )
        logger.info(
            "Accepted file index=%d id=%s mime=%s size=%d resized=%s",
            index,
            record.id,
            media_type,
            record.size,
            transformed.resized,
        )
        outcome = FileOutcome(
            index=index,
            original_name=incoming.original_name,
            status=FileStatus.ACCEPTED,
            id=record.id,
        )
        return outcome, record

    @staticmethod
    def _rejected(
        index: int, incoming: IncomingFile, status: FileStatus, reason: str
    ) -> FileOutcome:
        return FileOutcome(
            index=index,
            original_name=incoming.original_name,
            status=status,
            reason=reason,
        )
