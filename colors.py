def _utf16_units(value: str) -> list[int]:
    encoded = value.encode("utf-16-le", "surrogatepass")
    return [
        int.from_bytes(encoded[idx : idx + 2], "little")
        for idx in range(0, len(encoded), 2)
    ]


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


def name_hash(name: str) -> int:
    """Rolling ``h * 31 + unit`` hash over UTF-16 code units, wrapped to a signed 32-bit int."""
    result = 0
    for unit in _utf16_units(name):
        result = _to_int32((result << 5) - result + unit)
    return result


def category_color(name: str) -> str:
    """
    Deterministic display color for a category name.

    The same name always yields the same ``hsl(h, s%, l%)`` string, so colors can be
    recomputed instead of stored.
    """
    magnitude = abs(name_hash(name))
    hue = magnitude % 360
    saturation = 70 + (magnitude % 20)
    lightness = 45 + (magnitude % 15)
    return f"hsl({hue}, {saturation}%, {lightness}%)"
