from app.plugins.base import SourceFormatPlugin

# Header text as it appears in the foundry's pour report spreadsheet, after
# whitespace inside the header has been collapsed.
_COLUMNS = {
    "Heat Number": "heat_number",
    "Date": "date",
    "Grade Name": "grade_name",
    "Stock Code": "stock_code",
    "Job Number": "job_number",
    "Cast Wgt": "cast_weight",
    "CMOP": "cmop",
    "Dash No.": "dash_number",
    "Die #": "die_number",
    "Shift": "shift",
    "Melter": "melter_id",
    "Furn No.": "furnace_number",
    "Power %": "power_percent",
    "New Lining N/Y ?": "new_lining",
    "Ladle No.": "ladle_number",
    "Start Time": "start_time",
    "TapTime": "tap_time",
    "Tap Temp": "tap_temp",
    "Pour Temp": "pour_temperature",
    "Liq. Canon Y/N": "liquid_canon",
    "Cannon PSI": "canon_psi",
    "Bath Weight Carried In": "bath_weight_carried_in",
    "Rice Hulls Amt.": "rice_hulls_amount",
    "Amt Liq.": "liquid_amount",
    "Liq. Type": "liquid_type",
    "Wash Thick": "wash_thickness",
    "Wash Pass": "wash_pass",
    "Pour Time (Sec)": "pour_time_seconds",
    "Wash Type": "wash_type",
    "Die Temp Before Pour": "die_temp_before_pour",
    "Die RPM": "die_rpm",
    "Baume": "baume",
    "Spin Time (Min)": "spin_time_minutes",
    "$ / Lb": "cost_per_pound",
    "Full Heat Number": "full_heat_number",
    "Comments": "comments",
}


def _collapse(header: str) -> str:
    return " ".join(str(header).split())


class SpreadsheetExportPlugin(SourceFormatPlugin):
    @property
    def source_format(self) -> str:
        return "SPREADSHEET"

    def to_canonical(self, row: dict) -> dict:
        out: dict = {}
        for header, value in row.items():
            if header is None:
                continue
            field = _COLUMNS.get(_collapse(header))
            if field is None:
                continue
            # Keep the first non-blank value when two headers collapse to the same column.
            if out.get(field) in (None, ""):
                out[field] = value
        return out
