import csv
from io import StringIO


class CsvDecodeError(ValueError):
    def __init__(self, exc: UnicodeDecodeError):
        super().__init__(f"CSV body is not valid UTF-8 (byte {exc.start}): {exc.reason}")
        self.position = exc.start


def parse_csv_rows(data: bytes | str) -> list[dict]:
    """Read CSV text into dicts keyed by trimmed header.

    Columns with an empty header and rows with no content are dropped; short
    rows are padded with empty strings.
    """
    if isinstance(data, bytes):
        try:
            text_data = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise CsvDecodeError(exc) from exc
    else:
        text_data = data.lstrip("\ufeff")
    reader = csv.reader(StringIO(text_data))

    header: list[str] | None = None
    rows: list[dict] = []
    for cells in reader:
        if not any((cell or "").strip() for cell in cells):
            continue
        if header is None:
            header = [(cell or "").strip() for cell in cells]
            continue
        record = {}
        for position, name in enumerate(header):
            if not name:
                continue
            record[name] = cells[position] if position < len(cells) else ""
        rows.append(record)
    return rows
