import unittest

from diagnostics import START_NOT_FOUND
from extractor import detect_layout, extract_sheet
from flight_timetable import FLIGHT_TIMETABLE, column_names, find_tables
from sheet_grid import Grid, MergedRegion, resolve_merges


TIMETABLE_ROWS = [
    ["Document Number: TT-01", None, None, None, None, None, "Revision: 03"],
    ["Attachment 2: Loading timetable"],
    ["Ngày-Date: 15/04/2025", None, "Ca- shift: Ngày", None, None, None, "Ngày-Date:", "16/04/2025", "Ca- shift: Đêm"],
    ["Section: Ramp", None, "ACS Supervisor: Nguyen A", None, None, None, "Section: Ramp 2", None, "ACS Supervisor: Tran B"],
    ["Giám sát TPO\nTPO Supervisor\nLe C", None, None, None, None, None, "TPO Supervisor: Pham D"],
    [None, None, None, "TPO", None, None, None, None, None, "TPO", "Crew"],
    ["M/bay", "ETD/ETA", "Flt No", "FWD", "FWD", "No", "M/bay", "ETD/ETA", "Flt No", "MID", "AFT"],
    ["12", "08:30", "VN123", 2, 3, 1, "20", "22:00", "VN456", 4, 5],
    ["14", None, None, None, None, None, "21", "23:15", "VN789", None, 1],
    ["12", "09:00", "VN125", None, None, 2],
    ["Prepared by"],
]
# "TPO" spans both FWD columns of the day table
TIMETABLE_MERGES = [MergedRegion(5, 5, 3, 4)]


class TestTables(unittest.TestCase):
    def test_split_on_no_column(self):
        day, night = find_tables(Grid(TIMETABLE_ROWS))
        self.assertEqual((day.start_col, day.end_col, day.header_row), (0, 5, 6))
        self.assertEqual((night.start_col, night.end_col), (6, 10))

    def test_two_row_names_with_counter(self):
        g = resolve_merges(Grid(TIMETABLE_ROWS), TIMETABLE_MERGES)
        day, night = find_tables(g)
        self.assertEqual(column_names(g, day), {
            1: "ETD/ETA", 2: "FlightNo", 3: "TPO.FWD", 4: "TPO.FWD1", 5: "No",
        })
        self.assertEqual(column_names(g, night), {
            7: "ETD/ETA", 8: "FlightNo", 9: "TPO.MID", 10: "Crew.AFT",
        })

    def test_header_merged_down_uses_lower_row(self):
        rows = [
            ["M/bay", None, "No", "M/bay"],
            [None, "ETD/ETA", None, None, "ETD/ETA"],
            ["1", "07:00", 1, "2", "19:00"],
        ]
        g = resolve_merges(Grid(rows), [MergedRegion(0, 1, 0, 0), MergedRegion(0, 1, 2, 2), MergedRegion(0, 1, 3, 3)])
        day, night = find_tables(g)
        self.assertEqual(day.header_row, 1)
        self.assertEqual(column_names(g, day), {1: "ETD/ETA", 2: "No"})

    def test_no_split_row(self):
        self.assertIsNone(find_tables(Grid([["M/bay", "ETD/ETA"], ["1", "07:00"]])))


class TestTimetableExtraction(unittest.TestCase):
    def setUp(self):
        self.result = extract_sheet(Grid(TIMETABLE_ROWS), FLIGHT_TIMETABLE, TIMETABLE_MERGES, sheet_name="TT")

    def test_day_records(self):
        day = [r for r in self.result.records if r["table"] == "day"]
        self.assertEqual(day, [{
            "table": "day",
            "bay": "12",
            "ETD/ETA": "09:00",
            "FlightNo": "VN125",
            "TPO.FWD": 2,
            "TPO.FWD1": 3,
            "No": 2,
        }])

    def test_night_records(self):
        night = [r for r in self.result.records if r["table"] == "night"]
        self.assertEqual([r["bay"] for r in night], ["20", "21"])
        self.assertEqual(night[0]["TPO.MID"], 4)
        self.assertEqual(night[1], {"table": "night", "bay": "21", "ETD/ETA": "23:15", "FlightNo": "VN789", "Crew.AFT": 1})

    def test_document_metadata(self):
        meta = self.result.metadata
        self.assertEqual(meta["document_number"], "TT-01")
        self.assertEqual(meta["revision"], "03")
        self.assertEqual(meta["attachment"], "Attachment 2: Loading timetable")
        self.assertEqual(meta["header_row"], 6)

    def test_table_metadata(self):
        self.assertEqual(self.result.metadata["day"], {
            "date": "2025-04-15",
            "shift": "Ngày",
            "section": "Ramp",
            "ac_supervisor": "Nguyen A",
            "tpo_supervisor": "Le C",
        })
        self.assertEqual(self.result.metadata["night"], {
            "date": "2025-04-16",
            "shift": "Đêm",
            "section": "Ramp 2",
            "ac_supervisor": "Tran B",
            "tpo_supervisor": "Pham D",
        })

    def test_missing_header(self):
        result = extract_sheet(Grid([["Document Number: X"]]), FLIGHT_TIMETABLE)
        self.assertEqual(result.records, [])
        self.assertEqual([d.code for d in result.diagnostics], [START_NOT_FOUND])
        self.assertEqual(result.metadata["document_number"], "X")

    def test_detected(self):
        self.assertIs(detect_layout(Grid(TIMETABLE_ROWS)), FLIGHT_TIMETABLE)


if __name__ == "__main__":
    unittest.main()
