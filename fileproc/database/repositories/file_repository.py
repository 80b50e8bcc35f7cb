from typing import Any

import psycopg
from psycopg.rows import dict_row

from fileproc.database.connection import get_connection
from fileproc.database.exceptions import PersistenceError, StaleStateError
from fileproc.database.models import FilePage, FileRecord, FileStatus
from fileproc.processor.exceptions import FileRecordNotFoundError, FileStateConflictError

_FILE_COLUMNS = """
    id, user_id, original_filename, storage_path, title, description,
    status, extracted_data, uploaded_at, created_at, updated_at
"""

# A file may start processing again after a failed job, never after success.
_STARTABLE_STATUSES = (
    FileStatus.UPLOADED.value,
    FileStatus.PROCESSING.value,
    FileStatus.FAILED.value,
)


def _row_to_file(row: dict[str, Any]) -> FileRecord:
    return FileRecord(
        id=row["id"],
        owner_id=row["user_id"],
        original_filename=row["original_filename"],
        storage_path=row["storage_path"],
        title=row["title"],
        description=row["description"],
        status=FileStatus(row["status"]),
        extracted_data=row["extracted_data"],
        uploaded_at=row["uploaded_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class FileRepository:
    """Database operations for the files table."""

    def create(
        self,
        conn: psycopg.Connection[Any],
        owner_id: int,
        original_filename: str,
        storage_path: str,
        title: str | None = None,
        description: str | None = None,
    ) -> FileRecord:
        """Insert an uploaded file. The title defaults to the original filename."""
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"""
                INSERT INTO files
                (user_id, original_filename, storage_path, title, description, status)
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING {_FILE_COLUMNS}
                """,
                (
                    owner_id,
                    original_filename,
                    storage_path,
                    title or original_filename,
                    description,
                    FileStatus.UPLOADED.value,
                ),
            )
            row = cur.fetchone()
        if row is None:
            raise PersistenceError(f"Insert of file {original_filename!r} returned no row")
        return _row_to_file(row)

    def find_by_id(self, file_id: int) -> FileRecord | None:
        """Find a file by ID."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_FILE_COLUMNS} FROM files WHERE id = %s",
                    (file_id,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return _row_to_file(row)

    def get_for_update(self, conn: psycopg.Connection[Any], file_id: int) -> FileRecord:
        """Lock a file row for the rest of the caller's transaction.

        Raises:
            FileRecordNotFoundError: if no file with this ID exists.
        """
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"SELECT {_FILE_COLUMNS} FROM files WHERE id = %s FOR UPDATE",
                (file_id,),
            )
            row = cur.fetchone()

        if row is None:
            raise FileRecordNotFoundError(f"File {file_id} not found")
        return _row_to_file(row)

    def list_for_owner(self, owner_id: int, page: int = 1, limit: int = 10) -> FilePage:
        """Return one page of the owner's files, newest first."""
        page = max(page, 1)
        limit = max(limit, 1)
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    "SELECT COUNT(*) AS total FROM files WHERE user_id = %s",
                    (owner_id,),
                )
                count_row = cur.fetchone()
                cur.execute(
                    f"""
                    SELECT {_FILE_COLUMNS} FROM files
                    WHERE user_id = %s
                    ORDER BY created_at DESC, id DESC
                    LIMIT %s OFFSET %s
                    """,
                    (owner_id, limit, (page - 1) * limit),
                )
                rows = cur.fetchall()

        total = count_row["total"] if count_row is not None else 0
        return FilePage(
            files=[_row_to_file(row) for row in rows],
            total_items=total,
            current_page=page,
            items_per_page=limit,
        )

    def mark_processing(self, conn: psycopg.Connection[Any], file_id: int) -> FileRecord:
        """Move a file to processing and return the updated row.

        Raises:
            FileRecordNotFoundError: if no file with this ID exists.
            FileStateConflictError: if the file was already processed.
        """
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"""
                UPDATE files
                SET status = %s, updated_at = NOW()
                WHERE id = %s AND status IN (%s, %s, %s)
                RETURNING {_FILE_COLUMNS}
                """,
                (FileStatus.PROCESSING.value, file_id, *_STARTABLE_STATUSES),
            )
            row = cur.fetchone()
            if row is not None:
                return _row_to_file(row)

            cur.execute("SELECT status FROM files WHERE id = %s", (file_id,))
            existing = cur.fetchone()

        if existing is None:
            raise FileRecordNotFoundError(f"File {file_id} not found")
        raise FileStateConflictError(
            f"File {file_id} is already {existing['status']}"
        )

    def mark_processed(
        self, conn: psycopg.Connection[Any], file_id: int, extracted_data: str
    ) -> None:
        """Attach extracted metadata to a processing file."""
        with conn.cursor() as cur:
            cur.execute(
                """
                UPDATE files
                SET status = %s, extracted_data = %s, updated_at = NOW()
                WHERE id = %s AND status = %s
                """,
                (
                    FileStatus.PROCESSED.value,
                    extracted_data,
                    file_id,
                    FileStatus.PROCESSING.value,
                ),
            )
            if cur.rowcount == 0:
                raise StaleStateError(f"File {file_id} is not processing")

    def mark_failed(self, conn: psycopg.Connection[Any], file_id: int) -> bool:
        """Mark a not-yet-processed file as failed. Returns False if no row changed."""
        with conn.cursor() as cur:
            cur.execute(
                """
                UPDATE files
                SET status = %s, extracted_data = NULL, updated_at = NOW()
                WHERE id = %s AND status IN (%s, %s)
                """,
                (
                    FileStatus.FAILED.value,
                    file_id,
                    FileStatus.UPLOADED.value,
                    FileStatus.PROCESSING.value,
                ),
            )
            return cur.rowcount > 0
