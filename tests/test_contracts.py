import json

import pytest
from eth_abi import encode
from eth_utils import event_signature_to_log_topic, to_checksum_address
from hexbytes import HexBytes

from ledger_harness.contracts import (
    ContractHandle,
    ContractMethod,
    MethodRegistry,
    canonical_type,
    load_artifact,
    normalize_value,
    split_tuple_type,
)
from ledger_harness.errors import FatalPrecondition, UnknownMethod

from .conftest import REGISTRY_ABI, REGISTRY_BYTECODE

OWNER = "0x1111111111111111111111111111111111111111"
LOWER_ADDRESS = "0xafd79db9b0ea8bd89f6a5e0c7bd8a8a16b8b1ea8"
CHECKSUMMED_OWNER = to_checksum_address(OWNER)


def test_canonical_type_expands_tuples():
    param = {
        "type": "tuple[]",
        "components": [
            {"type": "address"},
            {"type": "tuple", "components": [{"type": "uint256"}, {"type": "bytes"}]},
        ],
    }
    assert canonical_type(param) == "(address,(uint256,bytes))[]"


def test_method_selector_matches_known_value():
    method = ContractMethod("transfer", ("address", "uint256"), ("bool",))
    assert method.signature == "transfer(address,uint256)"
    assert method.selector.hex() == "a9059cbb"


def test_method_encode_checks_arity():
    method = ContractMethod("transfer", ("address", "uint256"))
    with pytest.raises(ValueError, match="expects 2 argument"):
        method.encode([OWNER])

    data = method.encode([OWNER, 7])
    assert data[:4] == method.selector
    assert data[4:] == encode(["address", "uint256"], [OWNER, 7])


def test_decode_output_shapes(registry):
    assert registry.method("setGlobalKey").decode_output(b"") is None

    single = registry.method("getGlobalKey").decode_output(encode(["address"], [OWNER]))
    assert single == CHECKSUMMED_OWNER

    pair = registry.method("counts").decode_output(encode(["uint256", "bool"], [3, True]))
    assert pair == (3, True)


def test_constant_flag_marks_read_only():
    legacy = ContractMethod.from_abi({"name": "owner", "constant": True, "inputs": [], "outputs": []})
    assert legacy.read_only


def test_registry_resolves_by_name_and_signature():
    registry = MethodRegistry.from_abi(
        [
            {"type": "function", "name": "f", "inputs": [{"type": "uint256"}]},
            {"type": "function", "name": "f", "inputs": [{"type": "address"}]},
            {"type": "function", "name": "g", "inputs": []},
        ]
    )
    assert "g" in registry
    assert "f(address)" in registry
    assert registry.resolve("g").signature == "g()"
    assert registry.resolve("f(uint256)").input_types == ("uint256",)
    assert registry.resolve("f( address)").input_types == ("address",)

    with pytest.raises(UnknownMethod, match="overloaded"):
        registry.resolve("f")


def test_unknown_method_is_fatal(registry):
    with pytest.raises(UnknownMethod) as exc_info:
        registry.method("noSuchMethod")
    assert isinstance(exc_info.value, SystemExit)
    assert "Registry has no method noSuchMethod" in str(exc_info.value)


def test_deploy_data_appends_constructor_args(registry):
    data = registry.deploy_data([OWNER])
    assert data == HexBytes(REGISTRY_BYTECODE) + encode(["address"], [OWNER])

    with pytest.raises(ValueError):
        registry.deploy_data([])


def test_deploy_data_without_bytecode_is_fatal():
    handle = ContractHandle("Library", [])
    with pytest.raises(FatalPrecondition):
        handle.deploy_data()


def test_at_returns_a_new_deployed_handle(registry):
    deployed = registry.at("0x000000000000000000000000000000000000dead")
    assert deployed.address == "0x000000000000000000000000000000000000dEaD"
    assert deployed.deployed
    assert not registry.deployed
    assert deployed.bytecode == registry.bytecode


def test_decode_logs(deployed_registry):
    old_key = "0x2222222222222222222222222222222222222222"
    receipt = {
        "logs": [
            {
                "address": deployed_registry.address,
                "topics": [
                    event_signature_to_log_topic("NewGlobalKey(address,address)"),
                    HexBytes(encode(["address"], [old_key])),
                ],
                "data": HexBytes(encode(["address"], [OWNER])),
                "logIndex": 0,
            },
            {
                # emitted by some other contract
                "address": "0x3333333333333333333333333333333333333333",
                "topics": [event_signature_to_log_topic("NewGlobalKey(address,address)")],
                "data": b"",
                "logIndex": 1,
            },
        ]
    }

    events = deployed_registry.decode_logs(receipt)
    assert len(events) == 1
    event = events[0]
    assert event.name == "NewGlobalKey"
    assert event.args["oldKey"] == to_checksum_address(old_key)
    assert event.args["newKey"] == CHECKSUMMED_OWNER
    assert event.log_index == 0


def test_load_foundry_artifact(tmp_path):
    path = tmp_path / "Registry.json"
    path.write_text(json.dumps({"abi": REGISTRY_ABI, "bytecode": {"object": REGISTRY_BYTECODE}}))

    handle = load_artifact(path)
    assert handle.name == "Registry"
    assert handle.bytecode == HexBytes(REGISTRY_BYTECODE)
    assert handle.constructor_types == ("address",)
    assert not handle.deployed


def test_load_truffle_artifact(tmp_path):
    path = tmp_path / "build.json"
    path.write_text(
        json.dumps({"contractName": "KeyRegistry", "abi": REGISTRY_ABI, "bytecode": "0x"})
    )

    handle = load_artifact(path, address=OWNER)
    assert handle.name == "KeyRegistry"
    assert handle.bytecode is None
    assert handle.address.lower() == OWNER


def test_load_artifact_failures(tmp_path):
    with pytest.raises(FatalPrecondition, match="Could not find artifact"):
        load_artifact(tmp_path / "missing.json")

    path = tmp_path / "broken.json"
    path.write_text(json.dumps({"bytecode": "0x00"}))
    with pytest.raises(FatalPrecondition, match="no ABI"):
        load_artifact(path)


def test_split_tuple_type():
    assert split_tuple_type("(address,(uint256,address[]),bool)") == [
        "address",
        "(uint256,address[])",
        "bool",
    ]
    assert split_tuple_type("()") == []


def test_normalize_value_checksums_nested_addresses():
    checksummed = to_checksum_address(LOWER_ADDRESS)
    assert normalize_value("address", LOWER_ADDRESS) == checksummed
    assert normalize_value("address[2]", (LOWER_ADDRESS, LOWER_ADDRESS)) == (checksummed, checksummed)
    assert normalize_value("(uint256,address)[]", ((1, LOWER_ADDRESS),)) == ((1, checksummed),)
    assert normalize_value("(bool,(address,bytes))", (True, (LOWER_ADDRESS, b"\x01"))) == (
        True,
        (checksummed, b"\x01"),
    )
    assert normalize_value("uint256", 7) == 7


def test_decoded_addresses_compare_equal_to_checksummed():
    checksummed = to_checksum_address(LOWER_ADDRESS)
    method = ContractMethod(
        "holders",
        output_types=("address", "address[]", "(address,uint256)"),
        state_mutability="view",
    )
    data = encode(
        ["address", "address[]", "(address,uint256)"],
        [LOWER_ADDRESS, [LOWER_ADDRESS], (LOWER_ADDRESS, 5)],
    )

    single, many, pair = method.decode_output(data)
    assert single == checksummed
    assert many == (checksummed,)
    assert pair == (checksummed, 5)
