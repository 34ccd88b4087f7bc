"""
assetchain/ledger/transaction.py

Programmable transaction builder.

A Transaction is an ordered list of move calls. Arguments are typed pure
values, references to ledger objects, or references to the result of an
earlier call in the same transaction; the ledger applies all calls
atomically.

Every submission builds its own Transaction instance; nothing here is shared
between concurrent submissions.

    tx = Transaction()
    reading = tx.move_call(f"{pkg}::sensor_data::new_reading", [pure_string(sid), ...])
    tx.move_call(f"{pkg}::part::add_sensor_reading", [obj(part_id), reading])
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from assetchain.errors import InvalidParameter
from assetchain.ledger import bcs


@dataclass(frozen=True)
class PureArg:
    type_tag: str  # string | u64 | bool | address | id
    value: object

    def encode(self) -> bytes:
        if self.type_tag == "string":
            return bcs.string(str(self.value))
        if self.type_tag == "u64":
            return bcs.u64(self.value)  # type: ignore[arg-type]
        if self.type_tag == "bool":
            return bcs.boolean(bool(self.value))
        if self.type_tag in ("address", "id"):
            return bcs.address(str(self.value))
        raise InvalidParameter(f"Unsupported pure type {self.type_tag!r}")


@dataclass(frozen=True)
class ObjectArg:
    object_id: str


@dataclass(frozen=True)
class ResultArg:
    """The value returned by call ``index`` of the same transaction."""

    index: int
    nested: Optional[int] = None


Argument = Union[PureArg, ObjectArg, ResultArg]


@dataclass(frozen=True)
class MoveCall:
    package: str
    module: str
    function: str
    arguments: Tuple[Argument, ...]

    @property
    def target(self) -> str:
        return f"{self.package}::{self.module}::{self.function}"


def pure_string(value: str) -> PureArg:
    return PureArg("string", value)


def pure_u64(value: int) -> PureArg:
    bcs.u64(value)
    return PureArg("u64", value)


def pure_bool(value: bool) -> PureArg:
    return PureArg("bool", bool(value))


def pure_address(value: str) -> PureArg:
    return PureArg("address", bcs.normalize_address(value))


def pure_id(value: str) -> PureArg:
    return PureArg("id", bcs.normalize_address(value))


def obj(object_id: str) -> ObjectArg:
    return ObjectArg(bcs.normalize_address(object_id))


def parse_target(target: str) -> Tuple[str, str, str]:
    parts = target.split("::")
    if len(parts) != 3 or not all(parts):
        raise InvalidParameter(f"Move call target must be package::module::function, got {target!r}")
    return parts[0], parts[1], parts[2]


class Transaction:
    """Ordered move calls submitted as one atomic ledger transaction."""

    def __init__(self) -> None:
        self._calls: List[MoveCall] = []

    def move_call(self, target: str, arguments: Sequence[Argument] = ()) -> ResultArg:
        package, module, function = parse_target(target)
        for arg in arguments:
            if isinstance(arg, ResultArg) and arg.index >= len(self._calls):
                raise InvalidParameter(f"Result reference {arg.index} points at a later call")
        self._calls.append(MoveCall(package, module, function, tuple(arguments)))
        return ResultArg(len(self._calls) - 1)

    @property
    def calls(self) -> Tuple[MoveCall, ...]:
        return tuple(self._calls)

    def object_ids(self) -> List[str]:
        """Distinct object ids referenced by the calls, in first-use order."""
        seen: List[str] = []
        for call in self._calls:
            for arg in call.arguments:
                if isinstance(arg, ObjectArg) and arg.object_id not in seen:
                    seen.append(arg.object_id)
        return seen

    def __len__(self) -> int:
        return len(self._calls)


# ---------------------------------------------------------------------------
# BCS serialization (TransactionData::V1 / ProgrammableTransaction)
# ---------------------------------------------------------------------------


def object_ref(object_id: str, version: int, digest: str) -> bytes:
    return bcs.address(object_id) + bcs.u64(int(version)) + bcs.byte_vector(bcs.b58decode(digest))


def owned_object_input(object_id: str, version: int, digest: str) -> bytes:
    # CallArg::Object(ObjectArg::ImmOrOwnedObject)
    return b"\x01\x00" + object_ref(object_id, version, digest)


def shared_object_input(object_id: str, initial_shared_version: int, mutable: bool = True) -> bytes:
    # CallArg::Object(ObjectArg::SharedObject)
    return b"\x01\x01" + bcs.address(object_id) + bcs.u64(int(initial_shared_version)) + bcs.boolean(mutable)


def serialize_transaction(
    tx: Transaction,
    *,
    sender: str,
    object_inputs: Mapping[str, bytes],
    gas_payment: Sequence[bytes],
    gas_price: int,
    gas_budget: int,
) -> bytes:
    """
    Encode ``tx`` as BCS TransactionData ready for signing.

    ``object_inputs`` maps every object id the calls reference to its encoded
    CallArg (see owned_object_input / shared_object_input).
    """
    if not tx.calls:
        raise InvalidParameter("Transaction has no move calls")

    inputs: List[bytes] = []
    object_index: Dict[str, int] = {}
    commands: List[bytes] = []

    for call in tx.calls:
        args: List[bytes] = []
        for arg in call.arguments:
            if isinstance(arg, PureArg):
                inputs.append(b"\x00" + bcs.byte_vector(arg.encode()))
                args.append(b"\x01" + bcs.u16(len(inputs) - 1))
            elif isinstance(arg, ObjectArg):
                idx = object_index.get(arg.object_id)
                if idx is None:
                    try:
                        inputs.append(object_inputs[arg.object_id])
                    except KeyError as exc:
                        raise InvalidParameter(f"No resolved input for object {arg.object_id}") from exc
                    idx = len(inputs) - 1
                    object_index[arg.object_id] = idx
                args.append(b"\x01" + bcs.u16(idx))
            elif arg.nested is None:
                args.append(b"\x02" + bcs.u16(arg.index))
            else:
                args.append(b"\x03" + bcs.u16(arg.index) + bcs.u16(arg.nested))

        commands.append(
            b"\x00"  # Command::MoveCall
            + bcs.address(call.package)
            + bcs.string(call.module)
            + bcs.string(call.function)
            + bcs.vector([])  # type arguments
            + bcs.vector(args)
        )

    kind = b"\x00" + bcs.vector(inputs) + bcs.vector(commands)
    gas_data = bcs.vector(gas_payment) + bcs.address(sender) + bcs.u64(gas_price) + bcs.u64(gas_budget)
    # TransactionData::V1, expiration None
    return b"\x00" + kind + bcs.address(sender) + gas_data + b"\x00"
