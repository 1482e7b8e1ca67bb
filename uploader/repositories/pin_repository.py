"""Pin index: key/value cache of root CID -> tree descriptor."""

import json
from datetime import datetime
from typing import Optional

from common.logging_config import get_logger
from uploader.database import get_db_connection, use_connection
from uploader.types import PinDescriptor

logger = get_logger(__name__)


class PinRepository:
    """
    Acceleration cache over published trees.

    Not authoritative: the file ledger is the source of truth, so a missing
    entry here never means the tree is unknown.
    """

    @staticmethod
    def set(descriptor: PinDescriptor, conn=None) -> None:
        owns_connection = conn is None
        value = json.dumps({
            "folderName": descriptor.folder_name,
            "rootCid": descriptor.root_cid,
        })

        with use_connection(conn) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO pins (cid, descriptor, updated_at)
                VALUES (?, ?, ?)
                """,
                (descriptor.root_cid, value, datetime.utcnow().isoformat())
            )
            if owns_connection:
                conn.commit()

    @staticmethod
    def get(cid: str) -> Optional[PinDescriptor]:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT descriptor FROM pins WHERE cid = ?",
                (cid,)
            ).fetchone()

        if row is None:
            return None

        try:
            data = json.loads(row["descriptor"])
        except json.JSONDecodeError:
            logger.warning(f"Discarding unreadable pin index entry [cid={cid}]")
            return None

        return PinDescriptor(folder_name=data.get("folderName", ""), root_cid=data.get("rootCid", cid))

    @staticmethod
    def delete(cid: str, conn=None) -> bool:
        owns_connection = conn is None

        with use_connection(conn) as conn:
            cursor = conn.execute("DELETE FROM pins WHERE cid = ?", (cid,))
            if owns_connection:
                conn.commit()
            return cursor.rowcount > 0
