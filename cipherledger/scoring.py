"""
Scoring Engine.

Derives an encrypted score from encrypted boolean inputs:

    total = enc_const(base)
    for (name, weight) in table, in order:
        total = enc_add(total, enc_select(inputs[name], enc_const(weight), enc_const(0)))

The engine composes only the three algebra primitives. It never decrypts
and never branches on anything derived from its inputs, so every input
combination performs the same sequence of operations.

The output is a fixed-width unsigned integer. A weight table whose maximum
possible score exceeds that width is rejected when the table is built,
never at scoring time.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple

from .algebra import Ciphertext, EncryptedAlgebra
from .errors import ConfigurationError, MalformedCiphertextError

DEFAULT_OUTPUT_BITS = 8
INPUT_NAME_PATTERN = re.compile(r'^[a-z][a-z0-9_]*$')


@dataclass(frozen=True)
class InputWeight:
    name: str
    weight: int


@dataclass(frozen=True)
class WeightTable:
    """
    Ordered weight configuration.

    Validated on construction:
    - at least one input, unique snake_case names
    - non-negative integer base and weights
    - base + sum(weights) fits in ``output_bits`` unsigned bits
    """
    base: int
    inputs: Tuple[InputWeight, ...]
    output_bits: int = DEFAULT_OUTPUT_BITS

    def __post_init__(self):
        self._validate()

    def _validate(self):
        if isinstance(self.output_bits, bool) or not isinstance(self.output_bits, int) or self.output_bits < 1:
            raise ConfigurationError(f"output_bits must be a positive integer, got {self.output_bits!r}")
        _require_non_negative(self.base, "base")
        if not self.inputs:
            raise ConfigurationError("weight table needs at least one input")

        seen = set()
        for item in self.inputs:
            if not isinstance(item.name, str) or not INPUT_NAME_PATTERN.match(item.name):
                raise ConfigurationError(f"invalid input name {item.name!r}")
            if item.name in seen:
                raise ConfigurationError(f"duplicate input name {item.name!r}")
            seen.add(item.name)
            _require_non_negative(item.weight, f"weight of {item.name}")

        if self.max_score > self.capacity:
            raise ConfigurationError(
                f"base + sum(weights) = {self.max_score} exceeds the "
                f"{self.output_bits}-bit output capacity of {self.capacity}"
            )

    @property
    def capacity(self) -> int:
        return (1 << self.output_bits) - 1

    @property
    def max_score(self) -> int:
        return self.base + sum(item.weight for item in self.inputs)

    @property
    def input_names(self) -> List[str]:
        return [item.name for item in self.inputs]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base": self.base,
            "output_bits": self.output_bits,
            "inputs": [{"name": i.name, "weight": i.weight} for i in self.inputs],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WeightTable':
        """
        Build from ``{"base", "output_bits", "inputs": [{"name", "weight"}]}``.

        ``inputs`` may also be given as an ordered ``{name: weight}`` object.
        """
        if not isinstance(data, dict) or "base" not in data or "inputs" not in data:
            raise ConfigurationError("weight table requires 'base' and 'inputs'")
        raw_inputs = data["inputs"]
        try:
            if isinstance(raw_inputs, dict):
                inputs = tuple(InputWeight(name, weight) for name, weight in raw_inputs.items())
            else:
                inputs = tuple(InputWeight(i["name"], i["weight"]) for i in raw_inputs)
        except (KeyError, TypeError) as e:
            raise ConfigurationError(f"malformed weight table inputs: {e}") from e
        return cls(
            base=data["base"],
            inputs=inputs,
            output_bits=data.get("output_bits", DEFAULT_OUTPUT_BITS),
        )

    @classmethod
    def reference(cls) -> 'WeightTable':
        """The career-guidance table: base 50, career 15, skill 20, education 15."""
        return cls(
            base=50,
            inputs=(
                InputWeight("career", 15),
                InputWeight("skill", 20),
                InputWeight("education", 15),
            ),
        )


def _require_non_negative(value: Any, what: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigurationError(f"{what} must be a non-negative integer, got {value!r}")


@dataclass
class ScoringEngine:
    """Evaluates a ``WeightTable`` over encrypted inputs."""
    algebra: EncryptedAlgebra
    table: WeightTable = field(default_factory=WeightTable.reference)

    def score(self, inputs: Mapping[str, Ciphertext]) -> Ciphertext:
        missing = [name for name in self.table.input_names if name not in inputs]
        if missing:
            raise MalformedCiphertextError(f"missing scoring inputs: {missing}")

        zero = self.algebra.enc_const(0)
        total = self.algebra.enc_const(self.table.base)
        for item in self.table.inputs:
            contribution = self.algebra.enc_select(
                inputs[item.name], self.algebra.enc_const(item.weight), zero
            )
            total = self.algebra.enc_add(total, contribution)
        return total
