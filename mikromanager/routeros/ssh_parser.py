"""Tolerant parsers for RouterOS CLI text output.

Only three columns are read from ``/ip firewall address-list print``: the
printed row index, the list name and the address, plus the ``;;;`` comment
line RouterOS prints above a commented row. Everything else on a line
(creation time, timeout, extra columns) is ignored, and lines that fit none
of the patterns below are skipped.

RouterOS 7 prints the comment on its own line before the row::

    ;;; blocked by admin
    0   Blocked_IPs  10.0.0.5  2024-01-01 10:00:00

RouterOS 6 puts the index on the comment line and indents the row::

     0   ;;; blocked by admin
         Blocked_IPs  10.0.0.5  jan/01/2024 10:00:00
"""

import re
from typing import List, Optional

from ..models import UNKNOWN, AddressListCollection, AddressListEntry, NativeId, TransportKind, group_entries


# Flag letters RouterOS prints between the index and the data columns
_FLAGS = r"(?:[XDI*]{1,3}\s+)?"

COMMENT_RE = re.compile(r"^\s*(?:(?P<index>\d+)\s+" + _FLAGS + r")?;;;\s?(?P<comment>.*?)\s*$")
ROW_RE = re.compile(r"^\s*(?P<index>\d+)\s+" + _FLAGS + r"(?P<list>\S+)\s+(?P<address>\S+)")
CONTINUATION_RE = re.compile(r"^\s+(?P<list>\S+)\s+(?P<address>\S+)")
# Value of the address column: IPv4/IPv6 (optionally with prefix or range) or a DNS name
ADDRESS_RE = re.compile(r"^[0-9A-Za-z][0-9A-Za-z.:/\-_]*$")


def parse_address_lists(output: str) -> AddressListCollection:
    entries: List[AddressListEntry] = []
    pending_comment = ""
    pending_index: Optional[str] = None

    for line in output.splitlines():
        if not line.strip():
            continue

        m = COMMENT_RE.match(line)
        if m:
            pending_comment = m.group("comment")
            pending_index = m.group("index")
            continue

        m = ROW_RE.match(line)
        index = m.group("index") if m else None
        if m is None and pending_index is not None:
            m = CONTINUATION_RE.match(line)
            index = pending_index
        if m is None or not ADDRESS_RE.match(m.group("address")):
            continue

        entries.append(
            AddressListEntry(
                list_name=m.group("list"),
                address=m.group("address"),
                comment=pending_comment,
                native_id=NativeId(TransportKind.SSH, index),
            )
        )
        pending_comment = ""
        pending_index = None

    return group_entries(entries)


def parse_value(output: str, key: str) -> str:
    """Value of ``key: value`` in ``print`` output of a single-object menu."""
    m = re.search(rf"^\s*{re.escape(key)}:\s*(.+?)\s*$", output, re.MULTILINE)
    return m.group(1) if m else UNKNOWN


def parse_ids(output: str) -> List[str]:
    """Internal ids printed by ``:put [find ...]``, e.g. ``*1A;*1B``."""
    return re.findall(r"\*[0-9A-Fa-f]+", output)
