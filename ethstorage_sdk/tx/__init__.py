from .build import PreparedTx, TransactionBuilder
from .fees import blob_gas_price, bump, calldata_storage_fee, fake_exponential, with_gas_margin
from .send import Uploader, receipt_cost

__all__ = [
    "PreparedTx",
    "TransactionBuilder",
    "Uploader",
    "receipt_cost",
    "fake_exponential",
    "blob_gas_price",
    "bump",
    "with_gas_margin",
    "calldata_storage_fee",
]
