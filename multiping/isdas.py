# multiping/isdas.py
"""ISD-AS identifiers: 16 bit ISD + 48 bit AS packed into one int."""

ISD_BITS = 16
AS_BITS = 48
MAX_ISD = (1 << ISD_BITS) - 1
MAX_AS = (1 << AS_BITS) - 1
MAX_BGP_AS = (1 << 32) - 1


def parse_as(text: str) -> int:
    parts = text.split(":")
    if len(parts) == 1:
        value = int(parts[0], 10)
        if value < 0 or value > MAX_BGP_AS:
            raise ValueError(f"AS number out of range: {text}")
        return value
    if len(parts) != 3:
        raise ValueError(f"bad AS: {text}")
    value = 0
    for part in parts:
        if not part:
            raise ValueError(f"empty AS group in {text}")
        group = int(part, 16)
        if group < 0 or group > 0xFFFF:
            raise ValueError(f"bad AS group in {text}")
        value = (value << 16) | group
    return value


def parse_ia(text: str) -> int:
    """Parse '1-ff00:0:110' or '64-559' into the packed int form."""
    isd_s, sep, as_s = text.strip().partition("-")
    if not sep:
        raise ValueError(f"bad ISD-AS: {text}")
    isd = int(isd_s, 10)
    if isd < 0 or isd > MAX_ISD:
        raise ValueError(f"ISD out of range: {text}")
    return (isd << AS_BITS) | parse_as(as_s)


def isd_of(isd_as: int) -> int:
    return isd_as >> AS_BITS


def as_of(isd_as: int) -> int:
    return isd_as & MAX_AS


def format_as(as_num: int) -> str:
    if as_num <= MAX_BGP_AS:
        return str(as_num)
    return f"{(as_num >> 32) & 0xFFFF:x}:{(as_num >> 16) & 0xFFFF:x}:{as_num & 0xFFFF:x}"


def format_ia(isd_as: int) -> str:
    return f"{isd_of(isd_as)}-{format_as(as_of(isd_as))}"
