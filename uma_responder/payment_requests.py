# Copyright ©, 2022-present, Lightspark Group, Inc. - All Rights Reserved

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4

from uma_responder.exceptions import DuplicateNonceException


class PaymentRequestStatus(Enum):
    PENDING = "pending"
    ISSUED = "issued"
    FAILED = "failed"
    PAID = "paid"
    EXPIRED = "expired"


@dataclass(frozen=True)
class PaymentRequestRecord:
    user_id: str
    nonce: str
    amount_msats: int
    currency: Optional[str]
    settlement_layer: str
    asset_identifier: str
    created_at: datetime
    expires_at: datetime
    status: PaymentRequestStatus = PaymentRequestStatus.PENDING
    invoice_or_address: Optional[str] = None
    id: str = ""

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now


class IPaymentRequestStore(ABC):
    @abstractmethod
    def create(self, record: PaymentRequestRecord) -> PaymentRequestRecord:
        """
        Atomically inserts the record unless its nonce is already taken.

        Raises DuplicateNonceException if a record with the same nonce exists. The uniqueness check and
        the insert must be a single operation so that concurrent identical requests cannot both succeed.

        Returns:
            The stored record, with its id assigned.
        """

    @abstractmethod
    def get_by_nonce(self, nonce: str) -> Optional[PaymentRequestRecord]:
        pass

    @abstractmethod
    def list_for_user(
        self, user_id: str, limit: int = 100
    ) -> List[PaymentRequestRecord]:
        """
        Returns the user's most recent payment requests, newest first.
        """

    @abstractmethod
    def update(
        self,
        nonce: str,
        status: PaymentRequestStatus,
        invoice_or_address: Optional[str] = None,
    ) -> Optional[PaymentRequestRecord]:
        pass

    @abstractmethod
    def purge_expired(self, now: datetime) -> int:
        """
        Removes all records that expired before `now` and returns how many were removed.
        """


class InMemoryPaymentRequestStore(IPaymentRequestStore):
    """
    InMemoryPaymentRequestStore is an in-memory implementation of IPaymentRequestStore.
    It is not recommended to use this in production, as it will not persist across restarts. You likely want to
    implement your own store on top of a database table with a unique index on the nonce.
    """

    def __init__(self) -> None:
        self._records: Dict[str, PaymentRequestRecord] = {}
        self._lock = threading.Lock()

    def create(self, record: PaymentRequestRecord) -> PaymentRequestRecord:
        with self._lock:
            if record.nonce in self._records:
                raise DuplicateNonceException(record.nonce)
            stored = replace(record, id=record.id or str(uuid4()))
            self._records[record.nonce] = stored
            return stored

    def get_by_nonce(self, nonce: str) -> Optional[PaymentRequestRecord]:
        return self._records.get(nonce)

    def list_for_user(
        self, user_id: str, limit: int = 100
    ) -> List[PaymentRequestRecord]:
        records = [r for r in self._records.values() if r.user_id == user_id]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records[:limit]

    def update(
        self,
        nonce: str,
        status: PaymentRequestStatus,
        invoice_or_address: Optional[str] = None,
    ) -> Optional[PaymentRequestRecord]:
        with self._lock:
            record = self._records.get(nonce)
            if record is None:
                return None
            updated = replace(
                record,
                status=status,
                invoice_or_address=invoice_or_address or record.invoice_or_address,
            )
            self._records[nonce] = updated
            return updated

    def purge_expired(self, now: datetime) -> int:
        with self._lock:
            expired_nonces = [
                nonce for nonce, record in self._records.items() if record.is_expired(now)
            ]
            for nonce in expired_nonces:
                del self._records[nonce]
            return len(expired_nonces)
