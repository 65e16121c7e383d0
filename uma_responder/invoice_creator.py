# Copyright ©, 2022-present, Lightspark Group, Inc. - All Rights Reserved

from abc import ABC, abstractmethod


class ILightningInvoiceCreator(ABC):
    @abstractmethod
    def create_lightning_invoice(
        self,
        amount_msats: int,
        description: str,
        spark_public_key: str,
    ) -> str:
        """
        Creates a single-use Lightning invoice payable to the wallet identified by `spark_public_key`.

        Args:
            amount_msats: Amount of the invoice in millisatoshis.
            description: Description committed to by the invoice, usually the lnurlp metadata.
            spark_public_key: The receiver's Spark public key.

        Returns:
            The encoded BOLT11 invoice.
        """
