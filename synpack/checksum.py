"""
Internet Checksum (RFC 1071)

Used for both the IPv4 header checksum and the TCP checksum
(pseudo-header + segment).
"""


def ones_complement_sum(data: bytes) -> int:
    """
    Computes the folded 16-bit one's complement sum of a buffer.

    Behavior:
        - Treats data as big-endian 16-bit words
        - Pads odd-length data (last byte becomes the high byte)
        - Folds carry bits until none remain

    Returns:
        Sum in range 0x0000-0xFFFF.
    """

    # If odd length, pad with one zero byte
    if len(data) % 2 != 0:
        data = bytes(data) + b'\x00'

    s = 0

    # Process 16-bit words
    for i in range(0, len(data), 2):
        word = (data[i] << 8) + data[i + 1]
        s += word

    # Fold carry bits into lower 16 bits
    while (s >> 16) > 0:
        s = (s & 0xFFFF) + (s >> 16)

    return s


def checksum(data: bytes) -> int:
    """
    Computes 16-bit one's complement checksum.

    The checksum field inside data must be zeroed by the caller.

    Returns:
        16-bit checksum value.
    """
    return ~ones_complement_sum(data) & 0xFFFF


def verify(data: bytes) -> bool:
    """
    Checks a buffer that already carries its checksum field.

    A correct buffer sums to all ones, so its checksum() is zero.
    """
    return ones_complement_sum(data) == 0xFFFF
