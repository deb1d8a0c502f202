"""Spreadsheet exports of paid and unpaid registrations."""
import csv
import io
import re
from typing import Iterable, List, Sequence, Tuple

from openpyxl import Workbook

from models import Event, Registration

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
SHEET_TITLE_LIMIT = 31
_INVALID_SHEET_CHARS = re.compile(r"[\[\]:*?/\\]")

Table = Tuple[List[str], List[List[object]]]


def _export_to_csv(headers: List[str], rows: List[List[object]]) -> bytes:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(headers)
    writer.writerows(rows)
    return output.getvalue().encode("utf-8")


def _workbook_bytes(wb: Workbook) -> bytes:
    out = io.BytesIO()
    wb.save(out)
    out.seek(0)
    return out.read()


def _export_to_xlsx(headers: List[str], rows: List[List[object]]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.append(headers)
    for row in rows:
        ws.append(row)
    return _workbook_bytes(wb)


def other_members(registration: Registration):
    """Team members excluding the leader, in roster order."""
    return [m for m in sorted(registration.team_members, key=lambda m: m.position) if not m.is_leader]


def _member_columns(count: int, with_usn: bool) -> List[str]:
    columns = []
    for index in range(1, count + 1):
        columns.append(f"Member {index} Name")
        if with_usn:
            columns.append(f"Member {index} USN")
        columns.append(f"Member {index} Phone")
    return columns


def _member_cells(registration: Registration, count: int, with_usn: bool) -> List[object]:
    cells = []
    members = other_members(registration)
    for index in range(count):
        member = members[index] if index < len(members) else None
        cells.append(member.name if member else None)
        if with_usn:
            cells.append(member.usn if member else None)
        cells.append(member.phone if member else None)
    return cells


def paid_registrations_table(event: Event, registrations: Sequence[Registration]) -> Table:
    if event.is_team_event:
        width = max((len(other_members(reg)) for reg in registrations), default=0)
        headers = ["Registration ID", "Team Leader Name", "Team Leader College", "Team Leader Phone"]
        headers += _member_columns(width, with_usn=False)
        rows = [
            [reg.registration_id, reg.user.name, reg.user.college, reg.user.phone] + _member_cells(reg, width, False)
            for reg in registrations
        ]
        return headers, rows

    headers = ["Registration ID", "Name", "College", "Phone Number"]
    rows = [[reg.registration_id, reg.user.name, reg.user.college, reg.user.phone] for reg in registrations]
    return headers, rows


def unpaid_registrations_table(event: Event, registrations: Sequence[Registration]) -> Table:
    if event.is_team_event:
        width = max((len(other_members(reg)) for reg in registrations), default=0)
        headers = [
            "Registration ID", "Event", "Fee",
            "Team Leader Name", "Team Leader USN", "Team Leader College", "Team Leader Phone",
        ]
        headers += _member_columns(width, with_usn=True)
        rows = [
            [
                reg.registration_id, event.title, event.fee,
                reg.user.name, reg.user.usn, reg.user.college, reg.user.phone,
            ] + _member_cells(reg, width, True)
            for reg in registrations
        ]
        return headers, rows

    headers = ["Registration ID", "Event", "Fee", "Name", "USN", "College", "Phone Number"]
    rows = [
        [reg.registration_id, event.title, event.fee, reg.user.name, reg.user.usn, reg.user.college, reg.user.phone]
        for reg in registrations
    ]
    return headers, rows


def paid_registrations_workbook(event: Event, registrations: Sequence[Registration]) -> bytes:
    headers, rows = paid_registrations_table(event, registrations)
    return _export_to_xlsx(headers, rows)


def paid_registrations_csv(event: Event, registrations: Sequence[Registration]) -> bytes:
    headers, rows = paid_registrations_table(event, registrations)
    return _export_to_csv(headers, rows)


def sheet_title(title: str, used: set) -> str:
    base = _INVALID_SHEET_CHARS.sub(" ", title or "").strip() or "Event"
    candidate = base[:SHEET_TITLE_LIMIT]
    suffix = 2
    while candidate.lower() in used:
        tag = f" ({suffix})"
        candidate = f"{base[:SHEET_TITLE_LIMIT - len(tag)]}{tag}"
        suffix += 1
    used.add(candidate.lower())
    return candidate


def _group_by_event(registrations: Iterable[Registration]):
    groups = {}
    for reg in registrations:
        groups.setdefault(reg.event_id, (reg.event, []))[1].append(reg)
    return list(groups.values())


def unpaid_registrations_workbook(registrations: Iterable[Registration]) -> bytes:
    """One sheet per event holding its unpaid registrations."""
    wb = Workbook()
    wb.remove(wb.active)
    used = set()
    for event, event_registrations in _group_by_event(registrations):
        headers, rows = unpaid_registrations_table(event, event_registrations)
        ws = wb.create_sheet(title=sheet_title(event.title, used))
        ws.append(headers)
        for row in rows:
            ws.append(row)
    if not wb.worksheets:
        wb.create_sheet(title="Unpaid Registrations").append(["No unpaid registrations"])
    return _workbook_bytes(wb)
