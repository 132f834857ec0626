"""
Unit tests for src/transaction_session.py: TransactionSession.
"""

import pytest

from exceptions import NoActiveTransactionError
from pos_config import PosConfig, TransactionPolicy
from transaction_session import TransactionSession


@pytest.fixture
def session(fake_api, sync_config):
    return TransactionSession(fake_api, sync_config)


class TestOpen:
    def test_open_sends_terminal_identity(self, session, fake_api):
        assert session.open() is True

        assert session.transaction_id == 7
        assert session.is_open
        header = fake_api.created[0]
        assert header['EMP_CD'] == "EMP01"
        assert header['STORE_CD'] == "30"
        assert header['POS_NO'] == "90"
        assert header['DATETIME']

    def test_open_failure_leaves_id_unset(self, session, fake_api):
        fake_api.fail_create = True
        assert session.open() is False
        assert session.transaction_id is None
        assert not session.is_open

    def test_require_id_without_transaction(self, session):
        with pytest.raises(NoActiveTransactionError):
            session.require_id()

    def test_close(self, session):
        session.open()
        session.close()
        assert session.transaction_id is None


class TestDetailIds:
    def test_ids_start_at_one_and_increase(self, session, fake_api):
        session.open()
        assert session.write_detail(1, "A1", "Tea", 150) == 1
        assert session.write_detail(1, "A1", "Tea", 150) == 2
        assert fake_api.detail_ids(7) == [1, 2]

    def test_ids_restart_for_new_transaction(self, session, fake_api):
        session.open()
        session.next_detail_id()
        session.next_detail_id()
        session.close()
        session.open()
        assert session.transaction_id == 8
        assert session.next_detail_id() == 1

    def test_write_detail_without_transaction(self, session, fake_api):
        with pytest.raises(NoActiveTransactionError):
            session.write_detail(1, "A1", "Tea", 150)
        assert fake_api.detail_calls == []

    def test_write_detail_with_reserved_ids(self, session, fake_api):
        session.open()
        detail_id = session.next_detail_id()

        assert session.write_detail(2, "B2", "Coffee", 200, transaction_id=7, detail_id=detail_id) == 1
        assert fake_api.detail_ids(7) == [1]
        # The reserved id is not handed out twice
        assert session.write_detail(1, "A1", "Tea", 150) == 2


class TestTotalAndPolicy:
    def test_fetch_total(self, session):
        session.open()
        session.write_detail(1, "A1", "Tea", 150)
        session.write_detail(2, "B2", "Coffee", 200)
        assert session.fetch_total() == 350

    def test_default_policy_keeps_transaction(self, session):
        assert session.renews_after_purchase() is False

    def test_per_purchase_policy(self, fake_api):
        config = PosConfig(transaction_policy=TransactionPolicy.PER_PURCHASE)
        assert TransactionSession(fake_api, config).renews_after_purchase() is True
