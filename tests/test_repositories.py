"""Integration tests for database repositories."""

from datetime import datetime, timedelta
import sqlite3

import pytest

from uploader.database import get_db_connection, use_connection
from uploader.repositories.file_repository import FileRepository
from uploader.repositories.pin_repository import PinRepository
from uploader.types import PinDescriptor

from helpers import LEAF_CID, ROOT_CID


def create(cid=ROOT_CID, filename='photos', minutes=0):
    return FileRepository.create_file(
        filename=filename,
        cid=cid,
        size=120,
        uploaded_at=datetime(2024, 1, 1, 12, 0) + timedelta(minutes=minutes),
        origin_ip='203.0.113.7',
    )


class TestUseConnection:
    """Test connection ownership for repository writes."""

    def test_owned_connection_stays_open_for_the_block(self, test_db):
        with use_connection() as conn:
            conn.execute('SELECT 1 FROM files')
            conn.execute('SELECT 1 FROM pins')

        with pytest.raises(sqlite3.ProgrammingError):
            conn.execute('SELECT 1')

    def test_borrowed_connection_left_open(self, test_db):
        with get_db_connection() as conn:
            with use_connection(conn) as borrowed:
                assert borrowed is conn
            conn.execute('SELECT 1 FROM files')

    def test_standalone_writes_are_committed(self, test_db):
        create()
        PinRepository.set(PinDescriptor(folder_name='photos', root_cid=ROOT_CID))

        with get_db_connection() as conn:
            files = conn.execute('SELECT COUNT(*) FROM files').fetchone()[0]
            pins = conn.execute('SELECT COUNT(*) FROM pins').fetchone()[0]

        assert (files, pins) == (1, 1)


class TestFileRepository:
    """Test ledger operations."""

    def test_create_and_get(self, test_db):
        record = create()

        fetched = FileRepository.get_by_cid(ROOT_CID)
        assert fetched == record
        assert fetched.origin_ip == '203.0.113.7'

    def test_get_unknown(self, test_db):
        assert FileRepository.get_by_cid('bafyunknown') is None

    def test_get_returns_latest_for_shared_cid(self, test_db):
        create(filename='first', minutes=0)
        create(filename='second', minutes=5)

        assert FileRepository.get_by_cid(ROOT_CID).filename == 'second'

    def test_list_recent_order_and_limit(self, test_db):
        create(cid='bafy1', minutes=1)
        create(cid='bafy3', minutes=3)
        create(cid='bafy2', minutes=2)

        assert [r.cid for r in FileRepository.list_recent(20)] == ['bafy3', 'bafy2', 'bafy1']
        assert [r.cid for r in FileRepository.list_recent(2)] == ['bafy3', 'bafy2']

    def test_delete_removes_all_rows_for_cid(self, test_db):
        create(minutes=0)
        create(minutes=1)
        create(cid=LEAF_CID, filename='other')

        removed = FileRepository.delete_by_cid(ROOT_CID)

        assert len(removed) == 2
        assert FileRepository.get_by_cid(ROOT_CID) is None
        assert FileRepository.get_by_cid(LEAF_CID) is not None

    def test_delete_unknown(self, test_db):
        assert FileRepository.delete_by_cid('bafyunknown') == []

    def test_delete_twice(self, test_db):
        create()

        assert len(FileRepository.delete_by_cid(ROOT_CID)) == 1
        assert FileRepository.delete_by_cid(ROOT_CID) == []

    def test_uncommitted_delete_rolls_back(self, test_db):
        create()

        with get_db_connection() as conn:
            FileRepository.delete_by_cid(ROOT_CID, conn=conn)
            conn.rollback()

        assert FileRepository.get_by_cid(ROOT_CID) is not None


class TestPinRepository:
    """Test pin index operations."""

    def test_set_and_get(self, test_db):
        PinRepository.set(PinDescriptor(folder_name='photos', root_cid=ROOT_CID))

        assert PinRepository.get(ROOT_CID) == PinDescriptor(folder_name='photos', root_cid=ROOT_CID)

    def test_set_overwrites(self, test_db):
        PinRepository.set(PinDescriptor(folder_name='photos', root_cid=ROOT_CID))
        PinRepository.set(PinDescriptor(folder_name='renamed', root_cid=ROOT_CID))

        assert PinRepository.get(ROOT_CID).folder_name == 'renamed'

    def test_stored_as_json_document(self, test_db):
        PinRepository.set(PinDescriptor(folder_name='photos', root_cid=ROOT_CID))

        with get_db_connection() as conn:
            row = conn.execute("SELECT descriptor FROM pins WHERE cid = ?", (ROOT_CID,)).fetchone()

        assert row['descriptor'] == '{"folderName": "photos", "rootCid": "%s"}' % ROOT_CID

    def test_unreadable_entry_ignored(self, test_db):
        with get_db_connection() as conn:
            conn.execute(
                "INSERT INTO pins (cid, descriptor, updated_at) VALUES (?, ?, ?)",
                (ROOT_CID, '{broken', datetime.utcnow().isoformat())
            )
            conn.commit()

        assert PinRepository.get(ROOT_CID) is None

    def test_delete(self, test_db):
        PinRepository.set(PinDescriptor(folder_name='photos', root_cid=ROOT_CID))

        assert PinRepository.delete(ROOT_CID) is True
        assert PinRepository.get(ROOT_CID) is None
        assert PinRepository.delete(ROOT_CID) is False
