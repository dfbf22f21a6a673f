import pytest
import rlp
from eth_abi import encode
from eth_utils import keccak

from ethstorage_sdk.constants import BLOB_SIZE
from ethstorage_sdk.contracts.abi import (
    ETHSTORAGE_FUNCTIONS,
    FLAT_DIRECTORY_FUNCTIONS,
    decode_call,
)
from ethstorage_sdk.contracts.flat_directory import FlatDirectoryContract
from ethstorage_sdk.errors import ValidationError
from ethstorage_sdk.utils.bytes import from_hex, to_hex
from ethstorage_sdk.wallet import Wallet

# eth-account documentation key
PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"
TO = "0x" + "11" * 20


# ------------------------------------ abi ------------------------------------


def test_selectors_match_known_signatures():
    fns = FLAT_DIRECTORY_FUNCTIONS
    assert fns["writeChunksByBlobs"].signature == "writeChunksByBlobs(bytes,uint256[],uint256[])"
    assert fns["getChunkHashesBatch"].signature == "getChunkHashesBatch((bytes,uint256[])[])"
    assert fns["version"].selector == keccak(text="version()")[:4]
    assert ETHSTORAGE_FUNCTIONS["putBlob"].selector == keccak(text="putBlob(bytes32,uint256,uint256)")[:4]
    assert fns["setDefault"].selector == keccak(text="setDefault(bytes)")[:4]


def test_tx_builders_encode_calls():
    contract = FlatDirectoryContract(eth=None, address=TO)  # type: ignore[arg-type]
    tx = contract.write_chunks_by_blobs("dir/a.txt", [3, 4], [100, 200], value=7)
    assert tx["to"] == TO
    assert tx["value"] == 7
    name, args = decode_call(FLAT_DIRECTORY_FUNCTIONS, tx["data"])
    assert name == "writeChunksByBlobs"
    assert args == (b"dir/a.txt", (3, 4), (100, 200))

    name, args = decode_call(FLAT_DIRECTORY_FUNCTIONS, contract.truncate("k", 2)["data"])
    assert (name, args) == ("truncate", (b"k", 2))


def test_encode_call_checks_arity():
    with pytest.raises(ValidationError):
        FLAT_DIRECTORY_FUNCTIONS["truncate"].encode_call(b"k")
    with pytest.raises(ValidationError):
        decode_call(FLAT_DIRECTORY_FUNCTIONS, b"\xde\xad\xbe\xef")


# ---------------------------------- wallet -----------------------------------


def _tx(**extra):
    tx = {
        "chainId": 11155111,
        "nonce": 5,
        "to": TO,
        "value": 0,
        "data": "0x",
        "gas": 100_000,
        "maxFeePerGas": 2_000_000_000,
        "maxPriorityFeePerGas": 1_000_000_000,
        "type": 2,
    }
    tx.update(extra)
    return tx


def test_wallet_address_and_bad_key():
    assert Wallet(PRIVATE_KEY).address == ADDRESS
    with pytest.raises(ValidationError):
        Wallet("0x1234")


def test_sign_type2():
    signed = Wallet(PRIVATE_KEY).sign(_tx())
    assert signed.nonce == 5
    assert signed.raw[0] == 2
    assert signed.tx_hash == to_hex(keccak(signed.raw))


def test_sign_blob_tx_wraps_sidecar():
    blob = b"\x00" * BLOB_SIZE
    commitment = b"\xc0" + b"\x00" * 47
    proof = b"\xc0" + b"\x00" * 47
    versioned = "0x01" + "ab" * 31
    tx = _tx(type=3, maxFeePerBlobGas=10, blobVersionedHashes=[versioned])

    signed = Wallet(PRIVATE_KEY).sign_blob_tx(tx, [blob], [commitment], [proof])

    assert signed.raw[0] == 3
    body, blobs, commitments, proofs = rlp.decode(signed.raw[1:])
    assert blobs == [blob]
    assert commitments == [commitment]
    assert proofs == [proof]
    # the hash commits to the payload only, not the sidecar
    payload = b"\x03" + rlp.encode(body)
    assert signed.tx_hash == to_hex(keccak(payload))
    assert body[-4] == [from_hex(versioned)]


def test_sign_blob_tx_requires_matching_sidecar():
    tx = _tx(type=3, maxFeePerBlobGas=10, blobVersionedHashes=["0x01" + "00" * 31])
    with pytest.raises(ValidationError):
        Wallet(PRIVATE_KEY).sign_blob_tx(tx, [b"\x00" * BLOB_SIZE], [], [])


def test_hash_batch_output_decodes_to_bytes32_list():
    fn = FLAT_DIRECTORY_FUNCTIONS["getChunkHashesBatch"]
    out = encode(["bytes32[]"], [[b"\x01" * 32, b"\x02" * 32]])
    (hashes,) = fn.decode_output(out)
    assert list(hashes) == [b"\x01" * 32, b"\x02" * 32]
