from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class HardwareAddress:
    """6-byte MAC-style identifier of an emulated tracker."""

    octets: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.octets, (bytes, bytearray)) or len(self.octets) != 6:
            raise TypeError("HardwareAddress needs exactly 6 bytes")
        object.__setattr__(self, "octets", bytes(self.octets))

    def __str__(self) -> str:
        return ":".join(f"{b:02X}" for b in self.octets)

    @property
    def topic_id(self) -> str:
        return self.octets.hex()

    @classmethod
    def zero(cls) -> "HardwareAddress":
        return cls(bytes(6))

    @classmethod
    def random(cls, rng: np.random.Generator | None = None) -> "HardwareAddress":
        rng = rng if rng is not None else np.random.default_rng()
        return cls(rng.integers(0, 256, size=6, dtype=np.uint8).tobytes())

    @classmethod
    def from_name(cls, name: str) -> "HardwareAddress":
        """Derive a stable address by seeding a PRNG with the name's bytes.

        A leading 0x01 byte keeps names that differ only by leading NULs apart.
        SeedSequence hashing does not depend on PYTHONHASHSEED, so the result
        is the same across restarts.
        """
        seed = int.from_bytes(b"\x01" + name.encode("utf-8"), "big")
        rng = np.random.default_rng(np.random.SeedSequence(seed))
        return cls(rng.integers(0, 256, size=6, dtype=np.uint8).tobytes())


class IdentityAssigner:
    def __init__(self, randomize: bool = False, rng: np.random.Generator | None = None):
        self.randomize = randomize
        self._rng = rng if rng is not None else np.random.default_rng()

    def assign(self, name: str) -> HardwareAddress:
        if self.randomize:
            return HardwareAddress.random(self._rng)
        return HardwareAddress.from_name(name)
