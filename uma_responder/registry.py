# Copyright ©, 2022-present, Lightspark Group, Inc. - All Rights Reserved

import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional
from uuid import uuid4

from uma_responder.currencies import CurrencySettings, default_currency_settings
from uma_responder.errors import ErrorCode
from uma_responder.exceptions import InvalidRequestException
from uma_responder.keys import normalize_spark_public_key
from uma_responder.settlement_catalog import (
    DEFAULT_SETTLEMENT_CATALOG,
    SettlementCatalog,
)

USERNAME_PATTERN = re.compile(r"^[a-z0-9_-]{1,64}$")


@dataclass(frozen=True)
class ChainAddressRecord:
    chain_key: str
    address: str
    is_active: bool = True


@dataclass
class Domain:
    id: str
    domain: str
    display_name: str
    currency_settings: Dict[str, CurrencySettings] = field(
        default_factory=default_currency_settings
    )
    is_active: bool = True

    def active_currency_codes(self) -> List[str]:
        return [
            code for code, settings in self.currency_settings.items() if settings.active
        ]


@dataclass
class UmaUser:
    id: str
    username: str
    domain_id: str
    display_name: str
    spark_public_key: Optional[str] = None
    """
    Public key used to issue Lightning invoices for this user. Without it the user can only be paid on
    blockchain settlement layers.
    """

    addresses_by_chain: Dict[str, ChainAddressRecord] = field(default_factory=dict)
    is_active: bool = True
    is_deleted: bool = False


def normalize_domain_name(domain: str) -> str:
    normalized = domain.strip().lower().rstrip("/")
    return normalized[len("www.") :] if normalized.startswith("www.") else normalized


class IUserRegistry(ABC):
    @abstractmethod
    def get_domain_by_name(self, domain: str) -> Optional[Domain]:
        pass

    @abstractmethod
    def get_user(self, username: str, domain_id: str) -> Optional[UmaUser]:
        """
        Returns the active, non-deleted user with the given username in the domain, or None.
        """

    @abstractmethod
    def get_active_addresses(self, user_id: str) -> List[ChainAddressRecord]:
        """
        Returns the user's active chain addresses in the order they were added.
        """


class InMemoryUserRegistry(IUserRegistry):
    """
    InMemoryUserRegistry keeps domains and users in process memory. It is meant for tests and local
    development; production deployments should back IUserRegistry with their own database.
    """

    def __init__(self, catalog: SettlementCatalog = DEFAULT_SETTLEMENT_CATALOG) -> None:
        self._catalog = catalog
        self._domains: Dict[str, Domain] = {}
        self._users: Dict[str, UmaUser] = {}
        self._lock = threading.Lock()

    def add_domain(self, domain: str, display_name: Optional[str] = None) -> Domain:
        normalized = normalize_domain_name(domain)
        if not normalized:
            raise InvalidRequestException("Domain is required", ErrorCode.INVALID_INPUT)
        with self._lock:
            if self._find_domain(normalized):
                raise InvalidRequestException(
                    f'Domain "{normalized}" already exists', ErrorCode.INVALID_INPUT
                )
            new_domain = Domain(
                id=str(uuid4()),
                domain=normalized,
                display_name=display_name or normalized,
            )
            self._domains[new_domain.id] = new_domain
            return new_domain

    def add_user(
        self,
        username: str,
        domain_id: str,
        display_name: Optional[str] = None,
        addresses: Optional[Dict[str, str]] = None,
        spark_public_key: Optional[str] = None,
    ) -> UmaUser:
        username = username.lower()
        if not USERNAME_PATTERN.match(username):
            raise InvalidRequestException(
                "Invalid username format. Use lowercase letters, numbers, underscores, and hyphens. Length: 1-64 characters.",
                ErrorCode.INVALID_INPUT,
            )
        records = {}
        for chain_key, address in (addresses or {}).items():
            chain_key = chain_key.lower()
            if chain_key not in self._catalog:
                raise InvalidRequestException(
                    f"Invalid chain {chain_key}", ErrorCode.INVALID_INPUT
                )
            if address and address.strip():
                records[chain_key] = ChainAddressRecord(chain_key, address.strip())
        spark_key = (
            normalize_spark_public_key(spark_public_key) if spark_public_key else None
        )

        with self._lock:
            if domain_id not in self._domains:
                raise InvalidRequestException(
                    "Domain not found", ErrorCode.INVALID_INPUT
                )
            if self._find_user(username, domain_id):
                raise InvalidRequestException(
                    f'User "{username}" already exists in this domain',
                    ErrorCode.INVALID_INPUT,
                )
            user = UmaUser(
                id=str(uuid4()),
                username=username,
                domain_id=domain_id,
                display_name=display_name or username,
                spark_public_key=spark_key,
                addresses_by_chain=records,
            )
            self._users[user.id] = user
            return user

    def upsert_address(self, user_id: str, chain_key: str, address: str) -> None:
        chain_key = chain_key.lower()
        if chain_key not in self._catalog:
            raise InvalidRequestException(f"Invalid chain {chain_key}", ErrorCode.INVALID_INPUT)
        with self._lock:
            user = self._require_user(user_id)
            addresses = dict(user.addresses_by_chain)
            addresses[chain_key] = ChainAddressRecord(chain_key, address.strip())
            user.addresses_by_chain = addresses

    def remove_address(self, user_id: str, chain_key: str) -> None:
        with self._lock:
            user = self._require_user(user_id)
            user.addresses_by_chain = {
                key: record
                for key, record in user.addresses_by_chain.items()
                if key != chain_key.lower()
            }

    def delete_user(self, user_id: str) -> None:
        with self._lock:
            self._require_user(user_id).is_deleted = True

    def get_domain_by_name(self, domain: str) -> Optional[Domain]:
        with self._lock:
            return self._find_domain(normalize_domain_name(domain))

    def get_user(self, username: str, domain_id: str) -> Optional[UmaUser]:
        with self._lock:
            user = self._find_user(username.lower(), domain_id)
        # Callers get a snapshot so later registry updates cannot change a request in flight.
        return replace(user) if user and user.is_active else None

    def get_active_addresses(self, user_id: str) -> List[ChainAddressRecord]:
        with self._lock:
            user = self._users.get(user_id)
            if not user or user.is_deleted:
                return []
            return [
                record
                for record in user.addresses_by_chain.values()
                if record.is_active
            ]

    def _find_domain(self, normalized: str) -> Optional[Domain]:
        return next(
            (d for d in self._domains.values() if d.domain == normalized and d.is_active),
            None,
        )

    def _find_user(self, username: str, domain_id: str) -> Optional[UmaUser]:
        return next(
            (
                u
                for u in self._users.values()
                if u.username == username
                and u.domain_id == domain_id
                and not u.is_deleted
            ),
            None,
        )

    def _require_user(self, user_id: str) -> UmaUser:
        user = self._users.get(user_id)
        if not user or user.is_deleted:
            raise InvalidRequestException("User not found", ErrorCode.INVALID_INPUT)
        return user
