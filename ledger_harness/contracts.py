"""Contract handles: ABI-resolved methods, deployment payloads, event decoding."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from eth_abi import decode, encode
from eth_utils import (
    event_signature_to_log_topic,
    function_signature_to_4byte_selector,
    to_checksum_address,
)
from hexbytes import HexBytes

from .errors import FatalPrecondition, UnknownMethod

READ_ONLY_MUTABILITY = ("view", "pure")


def canonical_type(param: Dict[str, Any]) -> str:
    """ABI type string for one input/output entry, expanding tuple components."""
    typ = param["type"]
    if typ.startswith("tuple"):
        inner = ",".join(canonical_type(c) for c in param.get("components", []))
        return f"({inner}){typ[len('tuple'):]}"
    return typ


def is_dynamic_type(typ: str) -> bool:
    return typ in ("string", "bytes") or typ.endswith("]") or typ.startswith("(")


def split_tuple_type(typ: str) -> List[str]:
    """Component types of "(a,(b,c),d)", split at the top level only."""
    inner = typ[1:-1]
    parts, depth, start = [], 0, 0
    for i, c in enumerate(inner):
        if c == "(":
            depth += 1
        elif c == ")":
            depth -= 1
        elif c == "," and depth == 0:
            parts.append(inner[start:i])
            start = i + 1
    if inner:
        parts.append(inner[start:])
    return parts


def normalize_value(typ: str, value: Any) -> Any:
    # eth-abi 6 decodes addresses lowercase
    if typ.endswith("]"):
        base = typ[: typ.rindex("[")]
        return tuple(normalize_value(base, v) for v in value)
    if typ.startswith("("):
        return tuple(normalize_value(t, v) for t, v in zip(split_tuple_type(typ), value))
    if typ == "address":
        return to_checksum_address(value)
    return value


def decode_values(types: Sequence[str], data: bytes) -> Tuple[Any, ...]:
    """ABI-decode `data`, with every address checksummed."""
    values = decode(list(types), bytes(data))
    return tuple(normalize_value(t, v) for t, v in zip(types, values))


@dataclass(frozen=True)
class ContractMethod:
    name: str
    input_types: Tuple[str, ...] = ()
    output_types: Tuple[str, ...] = ()
    state_mutability: str = "nonpayable"

    @classmethod
    def from_abi(cls, entry: Dict[str, Any]) -> "ContractMethod":
        mutability = entry.get("stateMutability")
        if mutability is None:
            mutability = "view" if entry.get("constant") else "nonpayable"
        return cls(
            name=entry["name"],
            input_types=tuple(canonical_type(p) for p in entry.get("inputs", [])),
            output_types=tuple(canonical_type(p) for p in entry.get("outputs", [])),
            state_mutability=mutability,
        )

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.input_types)})"

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)

    @property
    def read_only(self) -> bool:
        return self.state_mutability in READ_ONLY_MUTABILITY

    def encode(self, args: Sequence[Any]) -> HexBytes:
        args = list(args)
        if len(args) != len(self.input_types):
            raise ValueError(
                f"{self.signature} expects {len(self.input_types)} argument(s), got {len(args)}"
            )
        return HexBytes(self.selector + encode(list(self.input_types), args))

    def decode_output(self, data: bytes) -> Any:
        if not self.output_types:
            return None
        values = decode_values(self.output_types, data)
        if len(values) == 1:
            return values[0]
        return tuple(values)


@dataclass(frozen=True)
class ContractEvent:
    name: str
    inputs: Tuple[Tuple[str, str, bool], ...]
    anonymous: bool = False

    @classmethod
    def from_abi(cls, entry: Dict[str, Any]) -> "ContractEvent":
        inputs = tuple(
            (p.get("name", ""), canonical_type(p), bool(p.get("indexed")))
            for p in entry.get("inputs", [])
        )
        return cls(name=entry["name"], inputs=inputs, anonymous=bool(entry.get("anonymous")))

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(typ for _, typ, _ in self.inputs)})"

    @property
    def topic(self) -> HexBytes:
        return HexBytes(event_signature_to_log_topic(self.signature))

    def decode_log(self, log) -> Dict[str, Any]:
        topics = [HexBytes(t) for t in log["topics"]][1:]
        data_types = [typ for _, typ, indexed in self.inputs if not indexed]
        data_values = list(decode_values(data_types, HexBytes(log["data"]))) if data_types else []

        args: Dict[str, Any] = {}
        for position, (name, typ, indexed) in enumerate(self.inputs):
            key = name or f"arg{position}"
            if indexed:
                topic = topics.pop(0)
                # hashed in the topic, cannot be recovered
                args[key] = topic if is_dynamic_type(typ) else decode_values([typ], topic)[0]
            else:
                args[key] = data_values.pop(0)
        return args


@dataclass(frozen=True)
class DecodedEvent:
    name: str
    address: Optional[str]
    args: Dict[str, Any] = field(default_factory=dict)
    log_index: Optional[int] = None


class MethodRegistry:
    """Resolves method names (or full signatures for overloads) to ContractMethods."""

    def __init__(self, methods: Sequence[ContractMethod] = ()):
        self._by_name: Dict[str, List[ContractMethod]] = {}
        self._by_signature: Dict[str, ContractMethod] = {}
        for method in methods:
            self._by_name.setdefault(method.name, []).append(method)
            self._by_signature[method.signature] = method

    @classmethod
    def from_abi(cls, abi: Sequence[Dict[str, Any]]) -> "MethodRegistry":
        return cls([ContractMethod.from_abi(e) for e in abi if e.get("type") == "function"])

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._by_signature or identifier in self._by_name

    def __iter__(self):
        return iter(self._by_signature.values())

    def resolve(self, identifier: str, contract_name: str = "contract") -> ContractMethod:
        if "(" in identifier:
            method = self._by_signature.get(identifier.replace(" ", ""))
            if method is None:
                raise UnknownMethod(f"{contract_name} has no method {identifier}")
            return method

        candidates = self._by_name.get(identifier, [])
        if not candidates:
            raise UnknownMethod(f"{contract_name} has no method {identifier}")
        if len(candidates) > 1:
            options = ", ".join(m.signature for m in candidates)
            raise UnknownMethod(
                f"{contract_name}.{identifier} is overloaded; use one of: {options}"
            )
        return candidates[0]


class ContractHandle:
    """A deployed or not-yet-deployed contract: ABI, bytecode and address."""

    def __init__(
        self,
        name: str,
        abi: Sequence[Dict[str, Any]],
        bytecode: Optional[str] = None,
        address: Optional[str] = None,
        expected_address: Optional[str] = None,
    ):
        self.name = name
        self.abi = list(abi)
        self.bytecode = HexBytes(bytecode) if bytecode else None
        self.address = to_checksum_address(address) if address else None
        self.expected_address = to_checksum_address(expected_address) if expected_address else None
        self.methods = MethodRegistry.from_abi(self.abi)
        self.events = {
            e.topic: e
            for e in (ContractEvent.from_abi(x) for x in self.abi if x.get("type") == "event")
            if not e.anonymous
        }

    def __repr__(self) -> str:
        return f"<ContractHandle {self.name} at {self.address or 'undeployed'}>"

    @property
    def deployed(self) -> bool:
        return self.address is not None

    @property
    def constructor_types(self) -> Tuple[str, ...]:
        for entry in self.abi:
            if entry.get("type") == "constructor":
                return tuple(canonical_type(p) for p in entry.get("inputs", []))
        return ()

    def method(self, identifier: str) -> ContractMethod:
        return self.methods.resolve(identifier, self.name)

    def deploy_data(self, args: Sequence[Any] = ()) -> HexBytes:
        if self.bytecode is None:
            raise FatalPrecondition(f"{self.name} has no deployment bytecode")
        args = list(args)
        types = list(self.constructor_types)
        if len(args) != len(types):
            raise ValueError(
                f"{self.name} constructor expects {len(types)} argument(s), got {len(args)}"
            )
        if not types:
            return self.bytecode
        return HexBytes(bytes(self.bytecode) + encode(types, args))

    def at(self, address: str) -> "ContractHandle":
        return ContractHandle(
            self.name,
            self.abi,
            bytecode=self.bytecode.to_0x_hex() if self.bytecode is not None else None,
            address=address,
            expected_address=self.expected_address,
        )

    def decode_logs(self, receipt) -> List[DecodedEvent]:
        decoded = []
        for log in receipt.get("logs", []) or []:
            address = log.get("address")
            if self.address and address and address.lower() != self.address.lower():
                continue
            topics = log.get("topics") or []
            if not topics:
                continue
            event = self.events.get(HexBytes(topics[0]))
            if event is None:
                continue
            decoded.append(
                DecodedEvent(
                    name=event.name,
                    address=address,
                    args=event.decode_log(log),
                    log_index=log.get("logIndex"),
                )
            )
        return decoded


def load_artifact(
    artifact_path,
    name: Optional[str] = None,
    address: Optional[str] = None,
    expected_address: Optional[str] = None,
) -> ContractHandle:
    """Builds a ContractHandle from a Foundry or Truffle JSON artifact."""
    path = Path(artifact_path)
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise FatalPrecondition(f"ERROR: Could not find artifact at {path}. Please check path and compilation.")

    abi = data.get("abi") or data.get("output", {}).get("abi")
    if not isinstance(abi, list):
        raise FatalPrecondition(f"ERROR: Artifact {path} has no ABI list.")

    bytecode = data.get("bytecode")
    if isinstance(bytecode, dict):
        bytecode = bytecode.get("object")
    if bytecode in ("", "0x"):
        bytecode = None

    return ContractHandle(
        name or data.get("contractName") or path.stem,
        abi,
        bytecode=bytecode,
        address=address,
        expected_address=expected_address,
    )
