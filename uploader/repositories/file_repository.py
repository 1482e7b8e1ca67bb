"""File ledger repository for database operations."""

from datetime import datetime
from typing import List, Optional

from common.logging_config import get_logger
from uploader.database import get_db_connection, use_connection
from uploader.types import FileRecord
from uploader.utils import generate_uuid

logger = get_logger(__name__)


def _row_to_record(row) -> FileRecord:
    return FileRecord(
        file_id=row["file_id"],
        filename=row["filename"],
        cid=row["cid"],
        size=row["size"],
        uploaded_at=datetime.fromisoformat(row["uploaded_at"]),
        origin_ip=row["origin_ip"],
    )


class FileRepository:
    """
    Durable ledger of published trees.

    Records are immutable once written; the only mutation is deletion.
    """

    @staticmethod
    def create_file(
        filename: str,
        cid: str,
        size: int,
        uploaded_at: datetime,
        origin_ip: str,
        conn=None
    ) -> FileRecord:
        owns_connection = conn is None

        with use_connection(conn) as conn:
            file_id = generate_uuid()
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO files (file_id, filename, cid, size, uploaded_at, origin_ip)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (file_id, filename, cid, size, uploaded_at.isoformat(), origin_ip)
            )
            if owns_connection:
                conn.commit()

        logger.debug(f"Ledger record created [file_id={file_id}] [cid={cid}]")
        return FileRecord(
            file_id=file_id,
            filename=filename,
            cid=cid,
            size=size,
            uploaded_at=uploaded_at,
            origin_ip=origin_ip,
        )

    @staticmethod
    def get_by_cid(cid: str) -> Optional[FileRecord]:
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT file_id, filename, cid, size, uploaded_at, origin_ip
                FROM files WHERE cid = ?
                ORDER BY uploaded_at DESC LIMIT 1
                """,
                (cid,)
            )
            row = cursor.fetchone()

            if row is None:
                return None

            return _row_to_record(row)

    @staticmethod
    def list_recent(limit: int) -> List[FileRecord]:
        """
        Most recent records first, at most ``limit`` of them.
        """
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT file_id, filename, cid, size, uploaded_at, origin_ip
                FROM files
                ORDER BY uploaded_at DESC
                LIMIT ?
                """,
                (limit,)
            )
            return [_row_to_record(row) for row in cursor.fetchall()]

    @staticmethod
    def delete_by_cid(cid: str, conn=None) -> List[FileRecord]:
        """
        Atomically remove every record for a CID.

        Returns:
            The records that were removed; empty if the CID was unknown or
            a concurrent delete got there first.
        """
        owns_connection = conn is None

        try:
            with use_connection(conn) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    SELECT file_id, filename, cid, size, uploaded_at, origin_ip
                    FROM files WHERE cid = ?
                    """,
                    (cid,)
                )
                records = [_row_to_record(row) for row in cursor.fetchall()]

                cursor.execute("DELETE FROM files WHERE cid = ?", (cid,))
                deleted = cursor.rowcount
                if owns_connection:
                    conn.commit()
        except Exception as e:
            logger.error(f"Failed to delete ledger records [cid={cid}]: {e}", exc_info=True)
            raise

        if deleted == 0:
            return []

        logger.info(f"Ledger records deleted [cid={cid}] [count={deleted}]")
        return records
