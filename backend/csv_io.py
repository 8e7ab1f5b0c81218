import csv
import io
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from openpyxl import Workbook

from models import Participant
from time_utils import ensure_utc, isoformat_utc

PARTICIPANT_CSV_HEADERS = [
    "participantId",
    "name",
    "email",
    "phone",
    "role",
    "teamName",
    "institute",
    "labAllotted",
    "wifiSSID",
    "wifiPassword",
    "collegeCheckIn",
    "collegeCheckInTime",
    "labCheckIn",
    "labCheckInTime",
    "collegeCheckOut",
    "collegeCheckOutTime",
    "tempLabCheckOut",
    "tempLabCheckOutTime",
    "createdAt",
    "updatedAt",
]

# CSV column -> model attribute for the check-in/out pairs
CHECK_COLUMNS = [
    ("collegeCheckIn", "college_check_in"),
    ("labCheckIn", "lab_check_in"),
    ("collegeCheckOut", "college_check_out"),
    ("tempLabCheckOut", "temp_lab_check_out"),
]

TEXT_COLUMNS = [
    ("phone", "phone"),
    ("role", "role"),
    ("teamName", "team_name"),
    ("institute", "institute"),
    ("labAllotted", "lab_allotted"),
    ("wifiSSID", "wifi_ssid"),
    ("wifiPassword", "wifi_password"),
]

RECIPIENT_COLUMNS = ["name", "email", "role", "company", "phone"]
IDCARD_REQUIRED_COLUMNS = ["name", "email", "role", "company", "phone"]

SAMPLE_IDCARD_CSV = (
    "name,email,role,company,phone\n"
    "John Doe,john@example.com,Developer,TechCorp,+1234567890\n"
    "Jane Smith,jane@example.com,Designer,DesignCo,+0987654321\n"
    "Alex Johnson,alex@example.com,Manager,StartupXYZ,+1122334455"
)


class CSVFormatError(ValueError):
    pass


def escape_csv_cell(value: Any) -> str:
    text = "" if value is None else str(value)
    if "," in text or '"' in text or "\n" in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def _bool_cell(value: Optional[bool]) -> str:
    return "true" if value else "false"


def participant_csv_row(participant: Participant) -> List[str]:
    row: List[Any] = [
        participant.participant_id,
        participant.name,
        participant.email,
        participant.phone or "",
        participant.role or "",
        participant.team_name or "",
        participant.institute or "",
        participant.lab_allotted or "",
        participant.wifi_ssid or "",
        participant.wifi_password or "",
    ]
    for _, attr in CHECK_COLUMNS:
        row.append(_bool_cell(getattr(participant, attr)))
        row.append(isoformat_utc(getattr(participant, f"{attr}_time")))
    row.append(isoformat_utc(participant.created_at))
    row.append(isoformat_utc(participant.updated_at))
    return row


def participants_to_csv(participants: Iterable[Participant]) -> str:
    lines = [",".join(PARTICIPANT_CSV_HEADERS)]
    for participant in participants:
        lines.append(",".join(escape_csv_cell(cell) for cell in participant_csv_row(participant)))
    return "\n".join(lines)


def participants_to_xlsx(participants: Iterable[Participant]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Participants"
    ws.append(PARTICIPANT_CSV_HEADERS)
    for participant in participants:
        ws.append(participant_csv_row(participant))

    output = io.BytesIO()
    wb.save(output)
    return output.getvalue()


def read_csv_rows(text: str) -> Tuple[List[str], List[List[str]]]:
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    rows = [row for row in reader if any(cell.strip() for cell in row)]
    if not rows:
        return [], []
    headers = [h.strip() for h in rows[0]]
    return headers, rows[1:]


def _parse_timestamp(value: str) -> Optional[datetime]:
    if not value:
        return None
    normalized = value.strip()
    if normalized.endswith("Z"):
        normalized = normalized[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(normalized))


def parse_participant_import(text: str) -> Tuple[List[Dict[str, Any]], List[str]]:
    """Turn an exported participants CSV back into column values keyed by model attribute.

    Rows without a participantId are skipped and reported; ``Row N`` counts the
    header as row 1.
    """
    headers, rows = read_csv_rows(text)
    records: List[Dict[str, Any]] = []
    errors: List[str] = []

    for idx, row in enumerate(rows):
        obj = {header: (row[i] if i < len(row) else "").strip() for i, header in enumerate(headers)}
        row_number = idx + 2
        participant_id = obj.get("participantId")
        if not participant_id:
            errors.append(f"Row {row_number}: missing participantId - skipped")
            continue

        record: Dict[str, Any] = {
            "participant_id": participant_id,
            "name": obj.get("name", ""),
            "email": obj.get("email", ""),
        }
        for column, attr in TEXT_COLUMNS:
            record[attr] = obj.get(column) or None
        for column, attr in CHECK_COLUMNS:
            record[attr] = obj.get(column) == "true"
            try:
                record[f"{attr}_time"] = _parse_timestamp(obj.get(f"{column}Time", ""))
            except ValueError:
                record[f"{attr}_time"] = None
                errors.append(f"Row {row_number}: invalid {column}Time - ignored")
        try:
            record["created_at"] = _parse_timestamp(obj.get("createdAt", ""))
        except ValueError:
            record["created_at"] = None
            errors.append(f"Row {row_number}: invalid createdAt - ignored")
        records.append(record)

    return records, errors


def parse_recipients_csv(text: str) -> List[Dict[str, str]]:
    headers, rows = read_csv_rows(text)
    keys = [h.lower() for h in headers]
    recipients = []
    for row in rows:
        obj = {key: (row[i] if i < len(row) else "").strip() for i, key in enumerate(keys)}
        recipient = {column: obj.get(column, "") for column in RECIPIENT_COLUMNS}
        recipient["name"] = recipient["name"] or "N/A"
        if recipient["email"]:
            recipients.append(recipient)
    return recipients


def parse_idcard_csv(text: str) -> List[Dict[str, str]]:
    lines = text.strip().splitlines()
    if len(lines) < 2:
        raise CSVFormatError("CSV file is empty or invalid")

    headers, _ = read_csv_rows(lines[0])
    keys = [h.lower() for h in headers]
    missing = [column for column in IDCARD_REQUIRED_COLUMNS if column not in keys]
    if missing:
        raise CSVFormatError(f"Missing required columns: {', '.join(missing)}")

    cards = []
    for i in range(1, len(lines)):
        line = lines[i].strip()
        if not line:
            continue
        values = next(csv.reader([line]))
        obj = {key: (values[idx].strip() if idx < len(values) else "") for idx, key in enumerate(keys)}
        card = {column: obj.get(column, "") for column in IDCARD_REQUIRED_COLUMNS}
        card["participant_id"] = obj.get("participantid") or obj.get("participant_id") or f"PART-{i:04d}"
        cards.append(card)
    return cards
