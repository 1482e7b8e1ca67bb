"""Upload, retrieval, listing and deletion orchestration."""

from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple
import asyncio

import httpx

from common.logging_config import get_logger
from uploader import config
from uploader.cluster_client import ClusterClient
from uploader.database import get_db_connection
from uploader.exceptions import NotFoundError
from uploader.publisher import ClusterPublisher
from uploader.repositories.file_repository import FileRepository
from uploader.repositories.pin_repository import PinRepository
from uploader.retriever import ReplicaRetriever
from uploader.tree_assembler import TreeAssembler
from uploader.types import FileRecord, PinDescriptor, RetrievedContent, UploadEntry

logger = get_logger(__name__)

ARCHIVE_SUFFIXES = {"tar": ".tar", "car": ".car"}


class VaultService:
    def __init__(
        self,
        cluster_client: ClusterClient,
        retriever: ReplicaRetriever,
        assembler: Optional[TreeAssembler] = None,
        replication_min: Optional[int] = None,
        replication_max: Optional[int] = None,
    ):
        self.cluster_client = cluster_client
        self.retriever = retriever
        self.assembler = assembler or TreeAssembler()
        self.publisher = ClusterPublisher(cluster_client)
        self.replication_min = replication_min if replication_min is not None else config.REPLICATION_MIN
        self.replication_max = replication_max if replication_max is not None else config.REPLICATION_MAX

    async def upload_folder(
        self,
        entries: Sequence[UploadEntry],
        folder_name: str,
        origin_ip: str,
    ) -> FileRecord:
        """
        Stage, publish and record an uploaded tree.

        The ledger is written only after the root CID has been resolved, and
        the staged tree is removed whatever the outcome.
        """
        try:
            async with self.assembler.stage(entries, folder_name) as tree:
                root_cid = await self.publisher.publish(tree, self.replication_min, self.replication_max)
                total_size = tree.total_size
        except Exception as e:
            logger.error(f"Folder upload error for {folder_name}: {e}")
            raise

        with get_db_connection() as conn:
            try:
                record = FileRepository.create_file(
                    filename=folder_name,
                    cid=root_cid,
                    size=total_size,
                    uploaded_at=datetime.utcnow(),
                    origin_ip=origin_ip,
                    conn=conn,
                )
                PinRepository.set(PinDescriptor(folder_name=folder_name, root_cid=root_cid), conn=conn)
                conn.commit()
            except Exception:
                conn.rollback()
                raise

        logger.info(f"Folder uploaded to IPFS Cluster with CID: {root_cid} [origin={origin_ip}]")
        return record

    def resolve_filename(self, cid: str) -> str:
        """
        Display name for a CID: ledger first, then the pin index, then the CID.
        """
        record = FileRepository.get_by_cid(cid)
        if record is not None:
            return record.filename

        descriptor = PinRepository.get(cid)
        if descriptor is not None and descriptor.folder_name:
            return descriptor.folder_name

        return cid

    async def download(self, cid: str, archive_format: Optional[str] = None) -> RetrievedContent:
        filename = self.resolve_filename(cid)
        if archive_format:
            filename += ARCHIVE_SUFFIXES.get(archive_format, "")

        return await self.retriever.fetch(cid, filename, archive_format=archive_format)

    async def replication_status(self, cid: str) -> Dict:
        """
        Best-effort live pin status from the cluster; never raises.
        """
        try:
            response = await self.cluster_client.pin_status(cid)
        except httpx.HTTPError as e:
            logger.warning(f"Pin status fetch failed for {cid}: {e}")
            return {"error": "Fetch failed"}

        if not response.is_success:
            return {"error": "Cluster info unavailable"}

        try:
            return response.json()
        except ValueError:
            logger.warning(f"Unreadable pin status for {cid}")
            return {"error": "Cluster info unavailable"}

    async def list_files(self, limit: int) -> List[Tuple[FileRecord, Dict]]:
        records = FileRepository.list_recent(limit)
        statuses = await asyncio.gather(*(self.replication_status(r.cid) for r in records))
        return list(zip(records, statuses))

    async def get_file(self, cid: str) -> Tuple[FileRecord, Optional[PinDescriptor], Dict]:
        record = FileRepository.get_by_cid(cid)
        if record is None:
            raise NotFoundError(f"File {cid} not found")

        descriptor = PinRepository.get(cid)
        replication = await self.replication_status(cid)
        return record, descriptor, replication

    async def delete_file(self, cid: str) -> List[FileRecord]:
        """
        Remove a CID from the ledger and pin index, then unpin it.

        The unpin is best-effort: the cluster may keep a pinned copy after
        the ledger forgets it.
        """
        with get_db_connection() as conn:
            try:
                records = FileRepository.delete_by_cid(cid, conn=conn)
                if not records:
                    raise NotFoundError(f"File {cid} not found")
                PinRepository.delete(cid, conn=conn)
                conn.commit()
            except Exception:
                conn.rollback()
                raise

        try:
            await self.cluster_client.unpin(cid)
        except httpx.HTTPError as e:
            logger.warning(f"Failed to unpin {cid}: {e}")

        logger.info(f"Deleted CID: {cid}")
        return records
