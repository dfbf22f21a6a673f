from .abi import ETHSTORAGE_FUNCTIONS, FLAT_DIRECTORY_FUNCTIONS, ContractFunction, decode_call
from .ethstorage import EthStorageContract
from .flat_directory import FlatDirectoryContract, name_bytes

__all__ = [
    "ContractFunction",
    "FLAT_DIRECTORY_FUNCTIONS",
    "ETHSTORAGE_FUNCTIONS",
    "decode_call",
    "FlatDirectoryContract",
    "EthStorageContract",
    "name_bytes",
]
