"""APDU framing for the Stellar app on a Ledger device.

Command layout follows the app's COMMANDS.md:
    CLA | INS | P1 | P2 | Lc | data

Every answer carries the response data followed by a 2-byte big-endian
status word; 0x9000 means success.
"""

from dataclasses import dataclass, field

# Transport limits
APDU_MAX_SIZE = 150
HARDENED = 0x80000000

# Command bytes
CLA = 0xE0

INS_GET_PUBLIC_KEY = 0x02
P1_GET_PUBLIC_KEY = 0x00
P2_GET_PUBLIC_KEY_NO_DISPLAY = 0x00
P2_GET_PUBLIC_KEY_DISPLAY = 0x01

INS_SIGN_TX = 0x04
P1_SIGN_TX_FIRST = 0x00
P1_SIGN_TX_NOT_FIRST = 0x80
P2_SIGN_TX_LAST = 0x00
P2_SIGN_TX_MORE = 0x80

INS_GET_APP_CONFIGURATION = 0x06
P1_GET_APP_CONFIGURATION = 0x00
P2_GET_APP_CONFIGURATION = 0x00

INS_SIGN_TX_HASH = 0x08
P1_SIGN_TX_HASH = 0x00
P2_SIGN_TX_HASH = 0x00

# Status words
SW_OK = 0x9000
SW_TX_HASH_SIGNING_DISABLED = 0x6C66
SW_USER_REJECTED = 0x6985

STATUS_MESSAGES = {
    SW_TX_HASH_SIGNING_DISABLED: "hash signing is disabled in the app settings",
    SW_USER_REJECTED: "request rejected on the device",
    0x6D00: "unknown instruction (is the Stellar app open?)",
    0x6E00: "wrong CLA (is the Stellar app open?)",
}


@dataclass
class APDUCommand:
    """Single command frame sent to the device."""
    ins: int
    p1: int
    p2: int
    data: bytes = b""
    cla: int = CLA

    def serialize(self) -> bytes:
        """Encode as CLA INS P1 P2 Lc data."""
        if len(self.data) > 255:
            raise ValueError(f"APDU data too long: {len(self.data)} bytes")
        return bytes([self.cla, self.ins, self.p1, self.p2, len(self.data)]) + bytes(self.data)


@dataclass
class APDUAnswer:
    """Device answer split into payload and status word."""
    data: bytes
    status: int

    @property
    def ok(self) -> bool:
        return self.status == SW_OK

    @classmethod
    def from_bytes(cls, raw: bytes) -> "APDUAnswer":
        """Split a raw answer; the last two bytes are the status word."""
        if len(raw) < 2:
            raise ValueError(f"APDU answer too short: {len(raw)} bytes")
        return cls(data=bytes(raw[:-2]), status=int.from_bytes(raw[-2:], "big"))

    def to_bytes(self) -> bytes:
        return self.data + self.status.to_bytes(2, "big")


@dataclass
class HDPath:
    """Hardened derivation path; m/44'/148'/index' for Stellar accounts."""
    elements: list[int] = field(default_factory=list)

    @classmethod
    def from_index(cls, index: int) -> "HDPath":
        if index < 0 or index >= HARDENED:
            raise ValueError(f"Invalid account index: {index}")
        return cls([44 | HARDENED, 148 | HARDENED, index | HARDENED])

    @property
    def depth(self) -> int:
        return len(self.elements)

    def to_bytes(self) -> bytes:
        """Element count byte followed by each element as 4 big-endian bytes."""
        out = bytes([self.depth])
        for element in self.elements:
            out += element.to_bytes(4, "big")
        return out

    def __str__(self) -> str:
        parts = ["m"]
        for element in self.elements:
            if element & HARDENED:
                parts.append(f"{element & ~HARDENED}'")
            else:
                parts.append(str(element))
        return "/".join(parts)


def chunk_size(path: HDPath) -> int:
    """Bytes of data per frame once the path prefix is accounted for."""
    return APDU_MAX_SIZE - (1 + path.depth * 4)


def frame_count(payload_length: int, path: HDPath) -> int:
    """Number of frames needed to send path + payload."""
    total = len(path.to_bytes()) + payload_length
    size = chunk_size(path)
    return max(1, -(-total // size))


def sign_tx_commands(path: HDPath, payload: bytes) -> list[APDUCommand]:
    """Split path || payload into SIGN_TX frames.

    P1 marks the first frame, P2 marks whether more frames follow.
    """
    data = path.to_bytes() + bytes(payload)
    size = chunk_size(path)
    chunks = [data[i:i + size] for i in range(0, len(data), size)] or [b""]

    commands = []
    last = len(chunks) - 1
    for i, chunk in enumerate(chunks):
        commands.append(
            APDUCommand(
                ins=INS_SIGN_TX,
                p1=P1_SIGN_TX_FIRST if i == 0 else P1_SIGN_TX_NOT_FIRST,
                p2=P2_SIGN_TX_LAST if i == last else P2_SIGN_TX_MORE,
                data=chunk,
            )
        )
    return commands


def get_public_key_command(path: HDPath, display: bool = False) -> APDUCommand:
    return APDUCommand(
        ins=INS_GET_PUBLIC_KEY,
        p1=P1_GET_PUBLIC_KEY,
        p2=P2_GET_PUBLIC_KEY_DISPLAY if display else P2_GET_PUBLIC_KEY_NO_DISPLAY,
        data=path.to_bytes(),
    )


def get_app_configuration_command() -> APDUCommand:
    return APDUCommand(
        ins=INS_GET_APP_CONFIGURATION,
        p1=P1_GET_APP_CONFIGURATION,
        p2=P2_GET_APP_CONFIGURATION,
    )


def sign_tx_hash_command(path: HDPath, tx_hash: bytes) -> APDUCommand:
    if len(tx_hash) != 32:
        raise ValueError(f"Transaction hash must be 32 bytes, got {len(tx_hash)}")
    return APDUCommand(
        ins=INS_SIGN_TX_HASH,
        p1=P1_SIGN_TX_HASH,
        p2=P2_SIGN_TX_HASH,
        data=path.to_bytes() + bytes(tx_hash),
    )


def describe_status(status: int) -> str:
    """Human readable text for a status word."""
    message = STATUS_MESSAGES.get(status)
    if message:
        return f"0x{status:04X} ({message})"
    return f"0x{status:04X}"
